"""
Invoices - Creating stealth invoices and their on-chain effects.

Flow:
1. create_invoice_stealth: fresh stealth address (+ optional encrypted memo)
2. build_announce_tx: ERC-5564 announce on the stealth helper
3. build_create_invoice_tx: register the invoice on the invoice registry

Steps 2 and 3 are independent. A failed announcement leaves the invoice
payable; the merchant just won't find it by scanning until it is announced.
The plaintext memo is never written on-chain when it is encrypted into the
announcement metadata.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urlencode

from web3 import Web3
from web3.exceptions import Web3Exception
from web3.logs import DISCARD

from veilguard.models.invoice import Invoice
from veilguard.networks import (
    CONTRACT_INVOICE_REGISTRY,
    CONTRACT_STEALTH_HELPER,
    INVOICE_REGISTRY_ABI,
    NetworkConfig,
    get_token_address,
    require_network,
    TokenConfig,
)
from veilguard.wallet.crypto import to_hex
from veilguard.wallet.keys import MetaAddress
from veilguard.wallet.stealth import Erc5564Scheme, StealthResult, StealthScheme
from .transactions import contract_call, sign_and_send

logger = logging.getLogger(__name__)

ANNOUNCE_GAS_LIMIT = 150_000
CREATE_INVOICE_GAS_LIMIT = 200_000
MARK_PAID_GAS_LIMIT = 120_000


# ============================================
# Stealth Generation
# ============================================

def create_invoice_stealth(
    meta: MetaAddress,
    scheme: Optional[StealthScheme] = None,
    memo: str = "",
) -> StealthResult:
    """Fresh stealth address for one invoice; memo (if any) is encrypted into the metadata."""
    scheme = scheme or Erc5564Scheme()
    return scheme.generate(meta, memo=memo)


def to_token_units(amount: str, decimals: int) -> int:
    """
    Convert a decimal string ("12.5") to raw token units.

    Raises:
        ValueError: not a positive number, or more precision than the token has
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}") from None
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be positive, got {amount!r}")

    units = value.scaleb(decimals)
    if units != units.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    return int(units)


def new_invoice(
    meta: MetaAddress,
    chain_id: int,
    token: TokenConfig,
    amount: str,
    scheme: Optional[StealthScheme] = None,
    memo: str = "",
    merchant_address: Optional[str] = None,
) -> tuple[Invoice, StealthResult]:
    """
    Generate the stealth data and the local invoice record together.

    Returns:
        (invoice, stealth result). The result's ephemeral key is only needed
        until the announcement is sent.
    """
    require_network(chain_id)
    token_address = get_token_address(token, chain_id)
    to_token_units(amount, token.decimals)

    scheme = scheme or Erc5564Scheme()
    result = create_invoice_stealth(meta, scheme, memo)

    invoice = Invoice.create(
        chain_id=chain_id,
        token=token.symbol,
        token_address=token_address,
        amount=str(amount),
        stealth_address=result.stealth_address,
        ephemeral_pub_key=result.ephemeral_pub_key_hex,
        view_tag=result.view_tag_hex,
        scheme=scheme.name,
        encrypted_memo=to_hex(result.encrypted_memo) if result.encrypted_memo else None,
        merchant_address=merchant_address,
    )
    logger.info(f"Created invoice {invoice.id} for {invoice.format_amount()} ({scheme.name} scheme)")
    return invoice, result


# ============================================
# Contract Transactions
# ============================================

def build_announce_tx(helper: str, result: StealthResult, gas: int = ANNOUNCE_GAS_LIMIT) -> dict:
    """Unsigned announce(schemeId, stealthAddress, ephemeralPubKey, metadata)."""
    return contract_call(
        helper,
        "announce(uint256,address,bytes,bytes)",
        ["uint256", "address", "bytes", "bytes"],
        [result.scheme_id, Web3.to_checksum_address(result.stealth_address),
         result.ephemeral_pub_key, result.metadata],
        gas=gas,
    )


def build_create_invoice_tx(
    registry: str,
    token_address: str,
    amount_units: int,
    stealth_address: str,
    memo: str = "",
    gas: int = CREATE_INVOICE_GAS_LIMIT,
) -> dict:
    """
    Unsigned createInvoice(token, amount, stealthAddress, memo).

    `memo` is public on-chain; pass "" when the memo travels encrypted.
    """
    if amount_units <= 0:
        raise ValueError("Invoice amount must be positive")
    return contract_call(
        registry,
        "createInvoice(address,uint256,address,string)",
        ["address", "uint256", "address", "string"],
        [Web3.to_checksum_address(token_address), amount_units,
         Web3.to_checksum_address(stealth_address), memo],
        gas=gas,
    )


def build_mark_paid_tx(
    registry: str,
    invoice_id: bytes,
    amount_units: int,
    tx_hash_hint: bytes,
    gas: int = MARK_PAID_GAS_LIMIT,
) -> dict:
    """Unsigned markPaid(invoiceId, amount, txHashHint)."""
    return contract_call(
        registry,
        "markPaid(bytes32,uint256,bytes32)",
        ["bytes32", "uint256", "bytes32"],
        [invoice_id, amount_units, tx_hash_hint],
        gas=gas,
    )


def invoice_id_from_receipt(w3: Web3, registry: str, receipt) -> Optional[str]:
    """bytes32 invoiceId from the InvoiceCreated event in a receipt, if present."""
    contract = w3.eth.contract(address=Web3.to_checksum_address(registry), abi=INVOICE_REGISTRY_ABI)
    events = contract.events.InvoiceCreated().process_receipt(receipt, errors=DISCARD)
    if not events:
        return None
    return Web3.to_hex(events[0]["args"]["invoiceId"])


def publish_invoice(
    w3: Web3,
    private_key: bytes | str,
    network: NetworkConfig,
    invoice: Invoice,
    result: StealthResult,
    onchain_memo: str = "",
    token_decimals: int = 6,
) -> tuple[Optional[str], str]:
    """
    Announce the stealth address, then register the invoice.

    An announcement failure is logged and returns None for its hash; the
    registry call still runs. Registry failures propagate.

    Returns:
        (announce_tx_hash or None, create_tx_hash)
    """
    announce_hash = None
    try:
        announce_tx = build_announce_tx(network.contract_address(CONTRACT_STEALTH_HELPER), result)
        announce_hash = sign_and_send(w3, announce_tx, private_key)
    except (Web3Exception, ValueError, OSError) as e:
        logger.warning(f"Announcement failed for invoice {invoice.id}; invoice is still payable: {e}")

    create_tx = build_create_invoice_tx(
        network.contract_address(CONTRACT_INVOICE_REGISTRY),
        invoice.token_address,
        to_token_units(invoice.amount, token_decimals),
        invoice.stealth_address,
        memo=onchain_memo,
    )
    create_hash = sign_and_send(w3, create_tx, private_key)
    return announce_hash, create_hash


# ============================================
# Payment Links
# ============================================

def generate_payment_uri(
    token_address: str,
    recipient: str,
    amount: str,
    chain_id: int,
    decimals: int = 6,
) -> str:
    """EIP-681 ERC-20 transfer URI: ethereum:<token>@<chainId>/transfer?address=<to>&uint256=<units>"""
    units = to_token_units(amount, decimals)
    return (
        f"ethereum:{Web3.to_checksum_address(token_address)}@{chain_id}/transfer"
        f"?address={Web3.to_checksum_address(recipient)}&uint256={units}"
    )


def generate_payment_link(
    base_url: str,
    invoice_id: str,
    stealth_address: str,
    amount: str,
    token_address: str,
    ephemeral_pub_key: str,
    chain_id: int,
    merchant_name: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    """Customer-facing payment page link: <base>/pay/<invoiceId>?to=..&amount=.."""
    params = {
        "to": stealth_address,
        "amount": amount,
        "token": token_address,
        "ephemeralPubKey": ephemeral_pub_key,
        "chainId": str(chain_id),
    }
    if merchant_name:
        params["merchant"] = merchant_name
    if description:
        params["description"] = description
    return f"{base_url.rstrip('/')}/pay/{invoice_id}?{urlencode(params)}"
