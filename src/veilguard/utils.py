"""
Shared utility functions for VeilGuard.

Contains path helpers and settings persistence used across packages.
"""

import os
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

APP_DIR_ENV_VAR = "VEILGUARD_HOME"

DEFAULT_SETTINGS = {
    "stealth_mode": "spec",
    "chain_id": 137,
    "rpc_urls": {},
    "log_retention_days": 7,
    "scan_workers": 4,
    "receipt_base_url": "https://veilguard.app",
}


def get_app_dir() -> Path:
    """Get the application data directory ($VEILGUARD_HOME or ~/.veilguard)."""
    override = os.environ.get(APP_DIR_ENV_VAR)
    app_dir = Path(override) if override else Path.home() / ".veilguard"
    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


def get_settings_path() -> Path:
    """Get path to settings file."""
    return get_app_dir() / "settings.json"


def get_keystore_path() -> Path:
    """Get path to the encrypted meta-key keystore."""
    return get_app_dir() / "keystore.json"


def get_invoices_dir() -> Path:
    """Get the invoice store directory."""
    return get_app_dir() / "invoices"


def get_logs_dir() -> Path:
    """Get the logs directory."""
    logs_dir = get_app_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def load_settings() -> dict:
    """Load settings merged over defaults. A corrupt file falls back to defaults."""
    settings = dict(DEFAULT_SETTINGS)
    path = get_settings_path()
    if path.exists():
        try:
            with open(path, "r") as f:
                settings.update(json.load(f))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load settings: {e}")
    return settings

