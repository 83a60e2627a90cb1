"""
Models package - Data models for VeilGuard.

Contains:
- Announcement, TransferLog: decoded on-chain events
- MatchedAnnouncement: matcher output
- Invoice: local invoice record
- InvoiceStore: JSON persistence
"""

from .announcement import Announcement, TransferLog, MatchedAnnouncement
from .invoice import (
    Invoice,
    STATUS_PENDING,
    STATUS_CONFIRMING,
    STATUS_PAID,
    STATUS_EXPIRED,
)
from .store import InvoiceStore

__all__ = [
    "Announcement",
    "TransferLog",
    "MatchedAnnouncement",
    "Invoice",
    "STATUS_PENDING",
    "STATUS_CONFIRMING",
    "STATUS_PAID",
    "STATUS_EXPIRED",
    "InvoiceStore",
]
