"""
Keystore - Password-protected storage for merchant meta keys.

Used by the CLI only; the stealth engine itself takes keys by value.

- Argon2id key derivation (memory-hard)
- AES-256-GCM authenticated encryption
- Atomic write, owner-only permissions

The public meta-address is stored in clear so it can be shown without a
password.
"""

import os
import json
import secrets
from datetime import datetime, timezone
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from argon2.low_level import hash_secret_raw, Type

from .errors import DecryptionFailure
from .keys import MetaAddress, MetaPrivateKeys


# ============================================
# Security Constants
# ============================================

KEYSTORE_VERSION = 1

# Argon2id parameters (OWASP recommendations for high-security)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32  # 256 bits for AES-256

SALT_SIZE = 16
AES_IV_SIZE = 12
AES_TAG_SIZE = 16

SECURE_FILE_MODE = 0o600  # Owner read/write only


def set_secure_permissions(filepath: Path) -> None:
    """Set mode 0600 on Unix. No-op on Windows."""
    if os.name == 'posix':
        try:
            os.chmod(filepath, SECURE_FILE_MODE)
        except OSError:
            # Best effort - don't fail save operation if chmod fails
            pass


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive an AES-256 key from a password using Argon2id."""
    return hash_secret_raw(
        secret=password.encode('utf-8'),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID
    )


# ============================================
# Save / Load
# ============================================

def save_meta_keys(filepath: str | Path, keys: MetaPrivateKeys, password: str) -> MetaAddress:
    """
    Encrypt and write meta keys to `filepath`.

    Returns:
        The public MetaAddress that was stored alongside
    """
    if not password:
        raise ValueError("A password is required to encrypt the keystore")

    filepath = Path(filepath)
    meta = keys.meta_address()

    salt = secrets.token_bytes(SALT_SIZE)
    iv = secrets.token_bytes(AES_IV_SIZE)
    aesgcm = AESGCM(derive_key(password, salt))

    plaintext = json.dumps(keys.to_dict()).encode('utf-8')
    ciphertext_and_tag = aesgcm.encrypt(iv, plaintext, None)

    data = {
        "version": KEYSTORE_VERSION,
        "created_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "kdf": {
            "algorithm": "argon2id",
            "salt": salt.hex(),
            "time_cost": ARGON2_TIME_COST,
            "memory_cost": ARGON2_MEMORY_COST,
            "parallelism": ARGON2_PARALLELISM
        },
        "iv": iv.hex(),
        "ciphertext": ciphertext_and_tag[:-AES_TAG_SIZE].hex(),
        "tag": ciphertext_and_tag[-AES_TAG_SIZE:].hex(),
        "meta_address": meta.encode(),
    }

    filepath.parent.mkdir(parents=True, exist_ok=True)
    temp_path = filepath.with_suffix('.tmp')
    with open(temp_path, 'w') as f:
        json.dump(data, f, indent=2)

    temp_path.replace(filepath)
    set_secure_permissions(filepath)
    return meta


def _read(filepath: str | Path) -> dict:
    with open(Path(filepath), 'r') as f:
        data = json.load(f)
    if data.get("version") != KEYSTORE_VERSION:
        raise ValueError(f"Unsupported keystore version: {data.get('version')}")
    return data


def load_meta_keys(filepath: str | Path, password: str) -> MetaPrivateKeys:
    """
    Decrypt meta keys from `filepath`.

    Raises:
        FileNotFoundError: If the keystore doesn't exist
        DecryptionFailure: If the password is wrong or the file is tampered
    """
    data = _read(filepath)
    kdf = data["kdf"]

    key = hash_secret_raw(
        secret=password.encode('utf-8'),
        salt=bytes.fromhex(kdf["salt"]),
        time_cost=kdf.get("time_cost", ARGON2_TIME_COST),
        memory_cost=kdf.get("memory_cost", ARGON2_MEMORY_COST),
        parallelism=kdf.get("parallelism", ARGON2_PARALLELISM),
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID
    )
    ciphertext_and_tag = bytes.fromhex(data["ciphertext"]) + bytes.fromhex(data["tag"])

    try:
        plaintext = AESGCM(key).decrypt(bytes.fromhex(data["iv"]), ciphertext_and_tag, None)
    except InvalidTag:
        raise DecryptionFailure("Wrong password or corrupted keystore") from None

    return MetaPrivateKeys.from_dict(json.loads(plaintext.decode('utf-8')))


def read_meta_address(filepath: str | Path) -> MetaAddress:
    """Public meta-address from a keystore (no password needed)."""
    return MetaAddress.parse(_read(filepath)["meta_address"])


def keystore_exists(filepath: str | Path) -> bool:
    return Path(filepath).exists()
