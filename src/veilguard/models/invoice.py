"""
Invoice model.

Local record of a stealth invoice. Holds only public data: the stealth
address, ephemeral public key and view tag are enough for the merchant to
re-derive the spending key later from their meta keys.

Status lifecycle:
- pending: Created, waiting for payment
- confirming: Transfer seen, waiting for confirmations
- paid: Payment confirmed (with tx_hash)
- expired: No longer payable
"""

import uuid
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from typing import Optional


# Valid status values
STATUS_PENDING = "pending"
STATUS_CONFIRMING = "confirming"
STATUS_PAID = "paid"
STATUS_EXPIRED = "expired"


@dataclass
class Invoice:
    """A stealth payment request."""
    id: str
    created_at: str                   # ISO format
    chain_id: int
    token: str                        # Token symbol (USDC, tUSDC, ...)
    token_address: str
    amount: str                       # Human-readable decimal string
    stealth_address: str
    ephemeral_pub_key: str            # 0x + 130 hex
    view_tag: str                     # 0x + 2 hex
    status: str = STATUS_PENDING      # pending | confirming | paid | expired
    scheme: str = "spec"              # Stealth scheme that produced the address
    encrypted_memo: Optional[str] = None   # 0x hex blob, None if no memo
    onchain_invoice_id: Optional[str] = None  # bytes32 from InvoiceCreated
    merchant_address: Optional[str] = None
    tx_hash: Optional[str] = None     # Payment tx hash once seen
    paid_at: Optional[str] = None

    VALID_STATUSES = (STATUS_PENDING, STATUS_CONFIRMING, STATUS_PAID, STATUS_EXPIRED)

    @classmethod
    def create(
        cls,
        chain_id: int,
        token: str,
        token_address: str,
        amount: str,
        stealth_address: str,
        ephemeral_pub_key: str,
        view_tag: str,
        scheme: str = "spec",
        encrypted_memo: Optional[str] = None,
        merchant_address: Optional[str] = None,
    ) -> "Invoice":
        """Create a new pending invoice record."""
        return cls(
            id=f"inv-{uuid.uuid4().hex[:12]}",
            created_at=datetime.now(timezone.utc).isoformat(),
            chain_id=chain_id,
            token=token,
            token_address=token_address,
            amount=amount,
            stealth_address=stealth_address,
            ephemeral_pub_key=ephemeral_pub_key,
            view_tag=view_tag,
            scheme=scheme,
            encrypted_memo=encrypted_memo,
            merchant_address=merchant_address,
        )

    def set_status(self, status: str) -> None:
        if status not in self.VALID_STATUSES:
            raise ValueError(f"Invalid status: {status}. Must be one of {self.VALID_STATUSES}")
        self.status = status

    def mark_confirming(self, tx_hash: str) -> None:
        self.status = STATUS_CONFIRMING
        self.tx_hash = tx_hash

    def mark_paid(self, tx_hash: Optional[str] = None) -> None:
        """Mark invoice as paid."""
        self.status = STATUS_PAID
        if tx_hash:
            self.tx_hash = tx_hash
        self.paid_at = datetime.now(timezone.utc).isoformat()

    def mark_expired(self) -> None:
        self.status = STATUS_EXPIRED

    @property
    def is_open(self) -> bool:
        return self.status in (STATUS_PENDING, STATUS_CONFIRMING)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Invoice":
        """Create from dictionary with input validation."""
        status = data.get("status", STATUS_PENDING)
        if status not in cls.VALID_STATUSES:
            raise ValueError(f"Invalid status: {status}. Must be one of {cls.VALID_STATUSES}")
        return cls(**data)

    def format_amount(self) -> str:
        return f"{self.amount} {self.token}"
