"""
VeilGuard - Private invoicing with ERC-5564 stealth addresses.

Packages:
- wallet: keys, stealth schemes, memo encryption, encrypted keystore
- models: announcements, invoices, invoice store
- services: scanning, sweeping, receipts, invoice transactions, logging
"""

__version__ = "0.1.0"
