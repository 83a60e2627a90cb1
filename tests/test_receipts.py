"""
Receipt commitment tests
"""

from unittest.mock import MagicMock

import pytest
from eth_abi import decode
from web3 import Web3

from veilguard.services.receipts import (
    RECEIPT_MISMATCH,
    RECEIPT_NOT_FOUND,
    RECEIPT_VALID,
    ZERO_BYTES32,
    generate_receipt_link,
    make_commitment,
    parse_receipt_link,
    store_commitment_tx,
    verify_commitment,
    verify_commitment_on_chain,
)
from veilguard.services.transactions import function_selector


INVOICE_ID = "0x" + "aa" * 32
TX_HASH = "0x" + "bb" * 32
OTHER_TX = "0x" + "cc" * 32
STORE = "0x" + "12" * 20


class TestCommitment:
    """Tests for commitment hashing."""

    def test_matches_solidity_keccak(self):
        expected = Web3.solidity_keccak(["bytes32", "bytes32"], [INVOICE_ID, TX_HASH])
        assert make_commitment(INVOICE_ID, TX_HASH) == Web3.to_hex(expected)

    def test_deterministic(self):
        assert make_commitment(INVOICE_ID, TX_HASH) == make_commitment(INVOICE_ID, TX_HASH)

    def test_accepts_bytes(self):
        assert make_commitment(b"\xaa" * 32, b"\xbb" * 32) == make_commitment(INVOICE_ID, TX_HASH)

    def test_different_tx(self):
        assert make_commitment(INVOICE_ID, OTHER_TX) != make_commitment(INVOICE_ID, TX_HASH)

    def test_order_matters(self):
        assert make_commitment(TX_HASH, INVOICE_ID) != make_commitment(INVOICE_ID, TX_HASH)

    def test_short_id_left_padded(self):
        assert make_commitment("0x01", TX_HASH) == make_commitment("0x" + "00" * 31 + "01", TX_HASH)

    def test_oversized_id_rejected(self):
        with pytest.raises(ValueError):
            make_commitment("0x" + "aa" * 33, TX_HASH)


class TestVerify:
    """Tests for commitment verification."""

    def test_valid(self):
        stored = make_commitment(INVOICE_ID, TX_HASH)
        result = verify_commitment(stored.upper().replace("0X", "0x"), INVOICE_ID, TX_HASH)
        assert result.valid
        assert result.status == RECEIPT_VALID

    def test_mismatch(self):
        stored = make_commitment(INVOICE_ID, TX_HASH)
        result = verify_commitment(stored, INVOICE_ID, OTHER_TX)
        assert not result.valid
        assert result.status == RECEIPT_MISMATCH
        assert result.stored_commitment == stored
        assert result.computed_commitment == make_commitment(INVOICE_ID, OTHER_TX)

    def test_zero_is_not_found(self):
        result = verify_commitment(ZERO_BYTES32, INVOICE_ID, TX_HASH)
        assert not result.valid
        assert result.status == RECEIPT_NOT_FOUND

    def test_none_is_not_found(self):
        assert verify_commitment(None, INVOICE_ID, TX_HASH).status == RECEIPT_NOT_FOUND

    def test_on_chain(self):
        w3 = MagicMock()
        stored = bytes.fromhex(make_commitment(INVOICE_ID, TX_HASH)[2:])
        w3.eth.contract.return_value.functions.receiptOf.return_value.call.return_value = stored

        result = verify_commitment_on_chain(w3, STORE, INVOICE_ID, TX_HASH)

        assert result.valid
        w3.eth.contract.return_value.functions.receiptOf.assert_called_once_with(b"\xaa" * 32)


class TestStoreTransaction:
    """Tests for ReceiptStore.store calldata."""

    def test_calldata(self):
        commitment = make_commitment(INVOICE_ID, TX_HASH)
        tx = store_commitment_tx(STORE, INVOICE_ID, commitment)

        data = bytes.fromhex(tx["data"][2:])
        assert data[:4] == function_selector("store(bytes32,bytes32)")
        invoice_id, stored = decode(["bytes32", "bytes32"], data[4:])
        assert invoice_id == b"\xaa" * 32
        assert Web3.to_hex(stored) == commitment
        assert tx["to"] == Web3.to_checksum_address(STORE)
        assert tx["value"] == 0


class TestReceiptLinks:
    """Tests for verification links."""

    def test_generate(self):
        link = generate_receipt_link(INVOICE_ID, TX_HASH, "https://veilguard.app/")
        assert link == f"https://veilguard.app/verify?invoiceId={INVOICE_ID}&txHash={TX_HASH}"

    def test_parse(self):
        link = generate_receipt_link(INVOICE_ID, TX_HASH, "https://veilguard.app")
        assert parse_receipt_link(link) == (INVOICE_ID, TX_HASH)

    def test_parse_query_only(self):
        assert parse_receipt_link(f"?invoiceId={INVOICE_ID}&txHash={TX_HASH}") == (INVOICE_ID, TX_HASH)

    def test_parse_missing(self):
        assert parse_receipt_link("https://veilguard.app/verify?invoiceId=0x01") == ("0x01", None)
