"""
Services package - Chain-facing services for VeilGuard.

Contains:
- scanner: announcement matching and log fetching (view-key inbox)
- receipts: selective-disclosure receipt commitments
- sweeper: stealth key re-derivation and fund recovery
- invoices: invoice creation, announce/create transactions, payment links
- transactions: calldata encoding and signing
- logging: logging configuration and daily log files
"""

from .scanner import (
    LogScanner,
    match_announcement,
    annotate_announcements,
    filter_mine,
    match_transfers_to_announcements,
)
from .receipts import (
    ReceiptVerification,
    make_commitment,
    verify_commitment,
    verify_commitment_on_chain,
    store_commitment_tx,
    generate_receipt_link,
    parse_receipt_link,
    RECEIPT_VALID,
    RECEIPT_NOT_FOUND,
    RECEIPT_MISMATCH,
)
from .sweeper import (
    SweepResult,
    derive_spending_key,
    build_token_transfer,
    sweep,
    refund,
)
from .invoices import (
    create_invoice_stealth,
    new_invoice,
    build_announce_tx,
    build_create_invoice_tx,
    build_mark_paid_tx,
    publish_invoice,
    generate_payment_uri,
    generate_payment_link,
    to_token_units,
)

__all__ = [
    # Scanner
    "LogScanner",
    "match_announcement",
    "annotate_announcements",
    "filter_mine",
    "match_transfers_to_announcements",
    # Receipts
    "ReceiptVerification",
    "make_commitment",
    "verify_commitment",
    "verify_commitment_on_chain",
    "store_commitment_tx",
    "generate_receipt_link",
    "parse_receipt_link",
    "RECEIPT_VALID",
    "RECEIPT_NOT_FOUND",
    "RECEIPT_MISMATCH",
    # Sweeper
    "SweepResult",
    "derive_spending_key",
    "build_token_transfer",
    "sweep",
    "refund",
    # Invoices
    "create_invoice_stealth",
    "new_invoice",
    "build_announce_tx",
    "build_create_invoice_tx",
    "build_mark_paid_tx",
    "publish_invoice",
    "generate_payment_uri",
    "generate_payment_link",
    "to_token_units",
]
