"""
Invoice Store - JSON persistence for invoices.

Stores public invoice data only. Meta keys and stealth private keys never
pass through here.
"""

import os
import json
import logging
import shutil
from pathlib import Path
from typing import Optional

from .invoice import Invoice

# Secure file permissions (Unix only)
SECURE_FILE_MODE = 0o600  # Owner read/write only


def _set_secure_permissions(filepath: Path) -> None:
    """Set restrictive file permissions on Unix systems."""
    if os.name == 'posix':
        try:
            os.chmod(filepath, SECURE_FILE_MODE)
        except OSError:
            pass

logger = logging.getLogger(__name__)


class InvoiceStore:
    """Manages storage of invoices (most recent first)."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.invoices_file = self.data_dir / "invoices.json"

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._invoices: list[Invoice] = []
        self._load()

    def _load(self) -> None:
        if not self.invoices_file.exists():
            return
        try:
            with open(self.invoices_file, "r") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("expected a list of invoices")
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load invoices: {e}")
            self._backup_unreadable()
            return

        skipped = 0
        for item in data:
            try:
                self._invoices.append(Invoice.from_dict(item))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to load invoice record: {e}")
                skipped += 1
        if skipped:
            self._backup_unreadable()

    def _backup_unreadable(self) -> Path:
        """Copy invoices.json aside before the next save rewrites it."""
        backup = self.invoices_file.with_name(self.invoices_file.name + ".corrupt")
        n = 1
        while backup.exists():
            backup = self.invoices_file.with_name(f"{self.invoices_file.name}.corrupt.{n}")
            n += 1
        shutil.copy2(self.invoices_file, backup)
        _set_secure_permissions(backup)
        logger.warning(f"Unreadable invoice data backed up to {backup}")
        return backup

    def _save(self) -> None:
        data = [inv.to_dict() for inv in self._invoices]
        temp_path = self.invoices_file.with_suffix('.tmp')
        with open(temp_path, "w") as f:
            json.dump(data, f, indent=2)
        _set_secure_permissions(temp_path)
        temp_path.replace(self.invoices_file)

    def add(self, invoice: Invoice) -> None:
        """Add a new invoice."""
        self._invoices.insert(0, invoice)
        self._save()

    def get(self, invoice_id: str) -> Optional[Invoice]:
        """Get an invoice by local ID or on-chain invoice ID."""
        for inv in self._invoices:
            if inv.id == invoice_id or (
                inv.onchain_invoice_id and inv.onchain_invoice_id.lower() == invoice_id.lower()
            ):
                return inv
        return None

    def get_by_stealth_address(self, address: str) -> Optional[Invoice]:
        for inv in self._invoices:
            if inv.stealth_address.lower() == address.lower():
                return inv
        return None

    def update(self, invoice: Invoice) -> None:
        """Update an existing invoice."""
        for i, existing in enumerate(self._invoices):
            if existing.id == invoice.id:
                self._invoices[i] = invoice
                self._save()
                return

    def get_all(self) -> list[Invoice]:
        """Get all invoices (most recent first)."""
        return self._invoices.copy()

    def get_by_status(self, status: str) -> list[Invoice]:
        return [inv for inv in self._invoices if inv.status == status]

    def delete(self, invoice_id: str) -> bool:
        for i, existing in enumerate(self._invoices):
            if existing.id == invoice_id:
                del self._invoices[i]
                self._save()
                return True
        return False
