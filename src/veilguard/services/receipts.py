"""
Receipts - Selective-disclosure payment commitments.

commitment = keccak256(invoiceId || txHash), both bytes32.

Only the commitment goes on-chain (ReceiptStore.store). The merchant can
later hand an auditor the (invoiceId, txHash) pair, usually as a
verification link, and the auditor recomputes and compares. Nothing about
the payment is revealed until the merchant chooses to disclose it.

A zero commitment on-chain means "no receipt stored"; it is never valid.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

from web3 import Web3

from veilguard.networks import RECEIPT_STORE_ABI
from veilguard.wallet.crypto import HexOrBytes, keccak256, parse_hex, to_hex
from .transactions import contract_call

logger = logging.getLogger(__name__)

BYTES32_SIZE = 32
ZERO_BYTES32 = "0x" + "00" * BYTES32_SIZE

RECEIPT_VALID = "valid"
RECEIPT_NOT_FOUND = "not_found"
RECEIPT_MISMATCH = "mismatch"

STORE_GAS_LIMIT = 100_000


def to_bytes32(value: HexOrBytes, what: str = "value") -> bytes:
    """Normalize hex (left-padded) or raw bytes to exactly 32 bytes."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != BYTES32_SIZE:
            raise ValueError(f"{what} must be {BYTES32_SIZE} bytes, got {len(value)}")
        return bytes(value)
    return parse_hex(value, BYTES32_SIZE, what)


def make_commitment(invoice_id: HexOrBytes, tx_hash: HexOrBytes) -> str:
    """keccak256(invoiceId || txHash) as 0x hex."""
    packed = to_bytes32(invoice_id, "invoice id") + to_bytes32(tx_hash, "tx hash")
    return to_hex(keccak256(packed))


@dataclass(frozen=True)
class ReceiptVerification:
    """Outcome of a commitment check."""
    valid: bool
    status: str                   # valid | not_found | mismatch
    stored_commitment: str
    computed_commitment: str


def verify_commitment(
    stored: Optional[HexOrBytes],
    invoice_id: HexOrBytes,
    tx_hash: HexOrBytes,
) -> ReceiptVerification:
    """
    Compare a stored commitment with one recomputed from the disclosed pair.

    Comparison is case-insensitive. None or all-zero stored means not_found.
    """
    computed = make_commitment(invoice_id, tx_hash)
    stored_hex = ZERO_BYTES32 if stored is None else to_hex(to_bytes32(stored, "stored commitment"))

    if stored_hex == ZERO_BYTES32:
        status = RECEIPT_NOT_FOUND
    elif stored_hex.lower() == computed.lower():
        status = RECEIPT_VALID
    else:
        status = RECEIPT_MISMATCH

    return ReceiptVerification(
        valid=status == RECEIPT_VALID,
        status=status,
        stored_commitment=stored_hex,
        computed_commitment=computed,
    )


# ============================================
# Receipt Store Contract
# ============================================

def store_commitment_tx(
    receipt_store: str,
    invoice_id: HexOrBytes,
    commitment: HexOrBytes,
    gas: int = STORE_GAS_LIMIT,
) -> dict:
    """Unsigned ReceiptStore.store(invoiceId, commitment) transaction."""
    return contract_call(
        receipt_store,
        "store(bytes32,bytes32)",
        ["bytes32", "bytes32"],
        [to_bytes32(invoice_id, "invoice id"), to_bytes32(commitment, "commitment")],
        gas=gas,
    )


def read_commitment(w3: Web3, receipt_store: str, invoice_id: HexOrBytes) -> str:
    """ReceiptStore.receiptOf(invoiceId) as 0x hex."""
    contract = w3.eth.contract(address=Web3.to_checksum_address(receipt_store), abi=RECEIPT_STORE_ABI)
    stored = contract.functions.receiptOf(to_bytes32(invoice_id, "invoice id")).call()
    return to_hex(to_bytes32(bytes(stored), "stored commitment"))


def verify_commitment_on_chain(
    w3: Web3,
    receipt_store: str,
    invoice_id: HexOrBytes,
    tx_hash: HexOrBytes,
) -> ReceiptVerification:
    """Read the stored commitment and check it against the disclosed pair."""
    stored = read_commitment(w3, receipt_store, invoice_id)
    result = verify_commitment(stored, invoice_id, tx_hash)
    logger.info(f"Receipt check for invoice {to_hex(to_bytes32(invoice_id))}: {result.status}")
    return result


# ============================================
# Verification Links
# ============================================

def generate_receipt_link(invoice_id: HexOrBytes, tx_hash: HexOrBytes, base_url: str) -> str:
    """<base>/verify?invoiceId=0x..&txHash=0x.."""
    params = urlencode({
        "invoiceId": to_hex(to_bytes32(invoice_id, "invoice id")),
        "txHash": to_hex(to_bytes32(tx_hash, "tx hash")),
    })
    return f"{base_url.rstrip('/')}/verify?{params}"


def parse_receipt_link(url: str) -> tuple[Optional[str], Optional[str]]:
    """
    Extract (invoiceId, txHash) from a verification URL or bare query string.

    Missing parameters come back as None.
    """
    query = urlparse(url).query if "?" in url or "://" in url else url
    params = parse_qs(query.lstrip("?"))
    invoice_id = params.get("invoiceId", [None])[0]
    tx_hash = params.get("txHash", [None])[0]
    return invoice_id, tx_hash
