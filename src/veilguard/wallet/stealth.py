"""
Stealth Addresses - ERC-5564 generation and recovery.

Two implementations share one interface:

- Erc5564Scheme ("spec"): P = spendPub + H(S)*G with S = ECDH(eph, view).
  The recipient recovers k = H(S) + spendPriv and can spend.
- DemoScheme ("demo"): legacy hash-only derivation. Addresses have no
  known private key and the meta keys come from a wallet address, so
  there is no unlinkability. Kept only for old demo invoices.

The scheme is always chosen explicitly (argument, env var, or setting).
Unknown names fail; nothing falls back to demo.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from .crypto import (
    HexOrBytes,
    SECP256K1_N,
    address_of,
    address_of_private,
    ecdh,
    ecdh_compressed,
    int_to_scalar,
    keccak256,
    normalize_address,
    point_add,
    public_from,
    scalar_add,
    scalar_to_int,
    to_hex,
    to_point_bytes,
)
from .errors import ConfigurationError, StealthError
from .keys import EphemeralKeyPair, MetaAddress, MetaPrivateKeys
from .memo import encrypt_memo

logger = logging.getLogger(__name__)


# ERC-5564 scheme id for secp256k1 with view tags
SCHEME_ID_SECP256K1 = 1

STEALTH_MODE_SPEC = "spec"
STEALTH_MODE_DEMO = "demo"
DEFAULT_STEALTH_MODE = STEALTH_MODE_SPEC
STEALTH_MODE_ENV_VAR = "VEILGUARD_STEALTH_MODE"
STEALTH_MODE_SETTING = "stealth_mode"


# ============================================
# Results
# ============================================

@dataclass(frozen=True)
class StealthResult:
    """
    Sender-side output for one invoice.

    `ephemeral` is kept so the caller can encrypt a memo later; discard it
    once the invoice is announced. Never reuse it for another invoice.
    """
    stealth_address: str
    ephemeral_pub_key: bytes
    view_tag: int
    metadata: bytes
    scheme_id: int = SCHEME_ID_SECP256K1
    ephemeral: Optional[EphemeralKeyPair] = field(default=None, repr=False, compare=False)

    @property
    def ephemeral_pub_key_hex(self) -> str:
        return to_hex(self.ephemeral_pub_key)

    @property
    def view_tag_hex(self) -> str:
        return f"0x{self.view_tag:02x}"

    @property
    def metadata_hex(self) -> str:
        return to_hex(self.metadata)

    @property
    def encrypted_memo(self) -> bytes:
        """Memo ciphertext carried after the view tag (b"" if none)."""
        return self.metadata[1:]


@dataclass(frozen=True)
class StealthKeys:
    """Recipient-side derivation: stealth address and (spec only) its key."""
    stealth_address: str
    stealth_priv: Optional[bytes] = field(default=None, repr=False)

    @property
    def stealth_priv_hex(self) -> Optional[str]:
        if self.stealth_priv is None:
            return None
        return to_hex(self.stealth_priv)


def view_tag_of(shared_secret: bytes) -> int:
    """First byte of keccak256(shared secret)."""
    return keccak256(shared_secret)[0]


# ============================================
# Scheme Interface
# ============================================

class StealthScheme(ABC):
    """Common interface for stealth derivation schemes."""

    name: str = ""
    scheme_id: int = SCHEME_ID_SECP256K1
    # False means addresses can be linked (or keys guessed) without the view key
    unlinkable: bool = True

    @abstractmethod
    def shared_secret(self, priv: HexOrBytes, pub: HexOrBytes) -> bytes:
        """Scheme-specific ECDH encoding (both sides must agree)."""

    @abstractmethod
    def address_from_shared(self, spend_pub: bytes, shared: bytes) -> str:
        """Sender side: stealth address from public meta key + shared secret."""

    @abstractmethod
    def derive_keys(self, keys: MetaPrivateKeys, ephemeral_pub_key: HexOrBytes) -> StealthKeys:
        """Recipient side: recompute the stealth address (and key if possible)."""

    def generate(
        self,
        meta: MetaAddress,
        memo: str = "",
        ephemeral: Optional[EphemeralKeyPair] = None,
    ) -> StealthResult:
        """
        Create a one-time stealth address for `meta`.

        Args:
            meta: Recipient meta-address
            memo: Optional memo, encrypted and appended after the view tag
            ephemeral: Pre-generated keypair (tests); fresh one otherwise

        Returns:
            StealthResult with metadata = view_tag || encrypted memo
        """
        if ephemeral is None:
            ephemeral = EphemeralKeyPair.generate()

        shared = self.shared_secret(ephemeral.eph_priv, meta.view_pub)
        tag = view_tag_of(shared)
        stealth_address = self.address_from_shared(meta.spend_pub, shared)

        metadata = bytes([tag])
        if memo:
            metadata += encrypt_memo(memo, ephemeral.eph_priv, meta.view_pub)

        return StealthResult(
            stealth_address=stealth_address,
            ephemeral_pub_key=ephemeral.eph_pub,
            view_tag=tag,
            metadata=metadata,
            scheme_id=self.scheme_id,
            ephemeral=ephemeral,
        )

    def view_tag_for(self, view_priv: HexOrBytes, ephemeral_pub_key: HexOrBytes) -> int:
        """Recipient side: the view tag an owned announcement must carry."""
        return view_tag_of(self.shared_secret(view_priv, ephemeral_pub_key))

    def recompute_address(self, keys: MetaPrivateKeys, ephemeral_pub_key: HexOrBytes) -> str:
        return self.derive_keys(keys, ephemeral_pub_key).stealth_address

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, unlinkable={self.unlinkable})"


# ============================================
# ERC-5564 (spec)
# ============================================

class Erc5564Scheme(StealthScheme):
    """
    ERC-5564 secp256k1 scheme.

    Sender:    S = eph*V,  h = keccak256(S),  P = spendPub + (h mod n)*G
    Recipient: S = v*Eph,  k = (h mod n + spendPriv) mod n,  P = k*G

    Both sides agree because eph*(v*G) == v*(eph*G).
    """

    name = STEALTH_MODE_SPEC
    unlinkable = True

    def shared_secret(self, priv: HexOrBytes, pub: HexOrBytes) -> bytes:
        return ecdh(priv, pub)

    def _tweak(self, shared: bytes) -> int:
        return scalar_to_int(keccak256(shared)) % SECP256K1_N

    def address_from_shared(self, spend_pub: bytes, shared: bytes) -> str:
        tweak = self._tweak(shared)
        if tweak == 0:
            return address_of(spend_pub)
        stealth_pub = point_add(spend_pub, public_from(int_to_scalar(tweak)))
        return address_of(stealth_pub)

    def derive_keys(self, keys: MetaPrivateKeys, ephemeral_pub_key: HexOrBytes) -> StealthKeys:
        shared = self.shared_secret(keys.view_priv, ephemeral_pub_key)
        k = scalar_add(self._tweak(shared), scalar_to_int(keys.spend_priv))
        stealth_priv = int_to_scalar(k)
        return StealthKeys(
            stealth_address=address_of_private(stealth_priv),
            stealth_priv=stealth_priv,
        )


# ============================================
# Demo (legacy, not unlinkable)
# ============================================

class DemoScheme(StealthScheme):
    """
    Legacy demo derivation.

    address = last20(keccak256(S_compressed || spendPub)). There is no
    private key for these addresses, so funds sent to them cannot be swept
    by this package.
    """

    name = STEALTH_MODE_DEMO
    unlinkable = False

    def __init__(self):
        logger.warning(
            "Demo stealth scheme selected: addresses are NOT unlinkable and "
            "cannot be swept. Use 'spec' for real payments."
        )

    def shared_secret(self, priv: HexOrBytes, pub: HexOrBytes) -> bytes:
        return ecdh_compressed(priv, pub)

    def address_from_shared(self, spend_pub: bytes, shared: bytes) -> str:
        seed = keccak256(shared + to_point_bytes(spend_pub))
        return normalize_address(seed[-20:])

    def derive_keys(self, keys: MetaPrivateKeys, ephemeral_pub_key: HexOrBytes) -> StealthKeys:
        raise StealthError("The demo stealth scheme cannot derive spending keys")

    def recompute_address(self, keys: MetaPrivateKeys, ephemeral_pub_key: HexOrBytes) -> str:
        shared = self.shared_secret(keys.view_priv, ephemeral_pub_key)
        return self.address_from_shared(public_from(keys.spend_priv), shared)

    @staticmethod
    def keys_from_wallet(wallet_address: str) -> MetaPrivateKeys:
        """
        Deterministic demo keys: keccak256("spending" || addr), keccak256("viewing" || addr).

        Anyone who knows the wallet address can recompute these.
        """
        addr = bytes.fromhex(normalize_address(wallet_address)[2:])
        return MetaPrivateKeys(
            spend_priv=keccak256(b"spending" + addr),
            view_priv=keccak256(b"viewing" + addr),
        )


# ============================================
# Scheme Selection
# ============================================

STEALTH_SCHEMES: dict[str, type[StealthScheme]] = {
    STEALTH_MODE_SPEC: Erc5564Scheme,
    STEALTH_MODE_DEMO: DemoScheme,
}


def _normalize_mode(value: Optional[str], source: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or value.strip().lower() not in STEALTH_SCHEMES:
        raise ConfigurationError(
            f"Invalid stealth mode from {source}: {value!r}. "
            f"Valid options: {', '.join(sorted(STEALTH_SCHEMES))}"
        )
    return value.strip().lower()


def resolve_stealth_mode(mode: Optional[str] = None, settings: Optional[dict] = None) -> str:
    """
    Resolve the stealth mode name.

    Precedence: explicit argument, VEILGUARD_STEALTH_MODE, the
    `stealth_mode` setting, then "spec".
    """
    for value, source in (
        (mode, "argument"),
        (os.environ.get(STEALTH_MODE_ENV_VAR), STEALTH_MODE_ENV_VAR),
        ((settings or {}).get(STEALTH_MODE_SETTING), "settings"),
    ):
        resolved = _normalize_mode(value, source)
        if resolved is not None:
            return resolved
    return DEFAULT_STEALTH_MODE


def get_scheme(mode: Optional[str] = None, settings: Optional[dict] = None) -> StealthScheme:
    """Return a scheme instance for the resolved mode."""
    return STEALTH_SCHEMES[resolve_stealth_mode(mode, settings)]()


# ============================================
# Spec-mode Shortcuts
# ============================================

_SPEC_SCHEME = Erc5564Scheme()


def generate_stealth(meta: MetaAddress, memo: str = "") -> StealthResult:
    """ERC-5564 stealth address for `meta` with a fresh ephemeral key."""
    return _SPEC_SCHEME.generate(meta, memo=memo)


def derive_stealth_keys(keys: MetaPrivateKeys, ephemeral_pub_key: HexOrBytes) -> StealthKeys:
    """ERC-5564 recipient recovery: stealth private key and address."""
    return _SPEC_SCHEME.derive_keys(keys, ephemeral_pub_key)
