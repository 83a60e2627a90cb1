"""
Encrypted Memos - ECIES over the stealth shared secret.

The payer encrypts with ECDH(ephPriv, viewPub); the merchant decrypts with
ECDH(viewPriv, ephPub). Both produce the same point, so only the holder of
the view key (or the one-time ephemeral key) can read the memo.

Wire format: iv (12 bytes) || ciphertext || tag (16 bytes).
An absent memo is the empty byte string.
"""

import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .crypto import HexOrBytes, ecdh, hex_to_bytes
from .errors import DecryptionFailure, InvalidKeyEncoding


# ============================================
# Memo Constants
# ============================================

MEMO_HKDF_SALT = b"VeilGuard-Memo-v1"
MEMO_HKDF_INFO = b"encrypted-memo"

AES_KEY_SIZE = 32   # AES-256
AES_IV_SIZE = 12    # 96 bits (recommended for GCM)
AES_TAG_SIZE = 16   # 128-bit tag

# Shown in place of a memo that belongs to us but cannot be decrypted
ENCRYPTED_MEMO_SENTINEL = "[encrypted]"


def derive_memo_key(shared_point: bytes) -> bytes:
    """HKDF-SHA256 over the shared point's X||Y (the 04 prefix is dropped)."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=AES_KEY_SIZE,
        salt=MEMO_HKDF_SALT,
        info=MEMO_HKDF_INFO,
    )
    return hkdf.derive(shared_point[1:])


def encrypt_memo(memo: str, eph_priv: HexOrBytes, view_pub: HexOrBytes) -> bytes:
    """
    Encrypt a memo for the merchant (payer side).

    Args:
        memo: Plaintext memo; empty or whitespace-only means "no memo"
        eph_priv: The invoice's ephemeral private key
        view_pub: Merchant's viewing public key

    Returns:
        iv || ciphertext || tag, or b"" when there is no memo
    """
    if not memo or not memo.strip():
        return b""

    key = derive_memo_key(ecdh(eph_priv, view_pub))
    iv = secrets.token_bytes(AES_IV_SIZE)

    aesgcm = AESGCM(key)
    ciphertext_and_tag = aesgcm.encrypt(iv, memo.encode('utf-8'), None)

    return iv + ciphertext_and_tag


def decrypt_memo(blob: HexOrBytes, view_priv: HexOrBytes, eph_pub: HexOrBytes) -> str:
    """
    Decrypt a memo (merchant side).

    Returns "" for an empty blob.

    Raises:
        DecryptionFailure: tag mismatch, truncated blob or non-UTF-8 plaintext
        InvalidKeyEncoding: malformed view key or ephemeral key
    """
    try:
        data = hex_to_bytes(blob, "memo")
    except InvalidKeyEncoding as e:
        raise DecryptionFailure(str(e)) from None

    if not data:
        return ""
    if len(data) < AES_IV_SIZE + AES_TAG_SIZE:
        raise DecryptionFailure(f"Memo blob too short ({len(data)} bytes)")

    key = derive_memo_key(ecdh(view_priv, eph_pub))
    iv, ciphertext_and_tag = data[:AES_IV_SIZE], data[AES_IV_SIZE:]

    aesgcm = AESGCM(key)
    try:
        plaintext = aesgcm.decrypt(iv, ciphertext_and_tag, None)
    except InvalidTag:
        raise DecryptionFailure("Memo authentication failed (wrong key or tampered data)") from None

    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError:
        raise DecryptionFailure("Memo plaintext is not valid UTF-8") from None


def is_encrypted_memo(value: HexOrBytes) -> bool:
    """
    Does this metadata tail carry a memo ciphertext?

    Any non-empty, even-length hex (or bytes). Truncated blobs count: they
    fail in decrypt_memo rather than reading as "no memo".
    """
    try:
        return len(hex_to_bytes(value)) > 0
    except InvalidKeyEncoding:
        return False
