"""
Wallet package - Stealth key material and cryptography for VeilGuard.

Contains:
- crypto: secp256k1 / keccak primitives
- MetaAddress, MetaPrivateKeys, EphemeralKeyPair: merchant and sender keys
- StealthScheme, Erc5564Scheme, DemoScheme: address generation and recovery
- Memo encryption bound to the stealth shared secret
- Exception hierarchy rooted at StealthError
- Keystore: password-encrypted storage for meta keys (CLI use)
"""

from .errors import (
    StealthError,
    InvalidKeyEncoding,
    DerivationError,
    KeyMismatch,
    DecryptionFailure,
    ConfigurationError,
)
from .keys import (
    MetaAddress,
    MetaPrivateKeys,
    EphemeralKeyPair,
    generate_meta_keys,
)
from .stealth import (
    StealthScheme,
    Erc5564Scheme,
    DemoScheme,
    StealthResult,
    StealthKeys,
    SCHEME_ID_SECP256K1,
    DEFAULT_STEALTH_MODE,
    resolve_stealth_mode,
    get_scheme,
    generate_stealth,
    derive_stealth_keys,
)
from .memo import (
    encrypt_memo,
    decrypt_memo,
    is_encrypted_memo,
    ENCRYPTED_MEMO_SENTINEL,
)
from .keystore import (
    save_meta_keys,
    load_meta_keys,
    read_meta_address,
    keystore_exists,
)

__all__ = [
    # Errors
    "StealthError",
    "InvalidKeyEncoding",
    "DerivationError",
    "KeyMismatch",
    "DecryptionFailure",
    "ConfigurationError",
    # Keys
    "MetaAddress",
    "MetaPrivateKeys",
    "EphemeralKeyPair",
    "generate_meta_keys",
    # Stealth
    "StealthScheme",
    "Erc5564Scheme",
    "DemoScheme",
    "StealthResult",
    "StealthKeys",
    "SCHEME_ID_SECP256K1",
    "DEFAULT_STEALTH_MODE",
    "resolve_stealth_mode",
    "get_scheme",
    "generate_stealth",
    "derive_stealth_keys",
    # Memo
    "encrypt_memo",
    "decrypt_memo",
    "is_encrypted_memo",
    "ENCRYPTED_MEMO_SENTINEL",
    # Keystore
    "save_meta_keys",
    "load_meta_keys",
    "read_meta_address",
    "keystore_exists",
]
