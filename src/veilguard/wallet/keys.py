"""
Meta Keys - Merchant key material for stealth payments.

A merchant holds two independent secp256k1 keypairs:
- spend: controls funds at every stealth address
- view: detects payments and decrypts memos, cannot move funds

The public halves form the shareable meta-address. The private halves are
plain values: this package never stores them and never caches them. Key
lifetime (and zeroing) belongs to the calling application.
"""

from dataclasses import dataclass, field

from .crypto import (
    COMPRESSED_PUBKEY_SIZE,
    PUBKEY_SIZE,
    HexOrBytes,
    decompress_point,
    hex_to_bytes,
    public_from,
    random_scalar,
    to_hex,
    to_point_bytes,
    to_scalar_bytes,
)
from .errors import InvalidKeyEncoding


# ERC-5564 meta-address prefix: st:<chain>:0x<spendPub><viewPub>
META_ADDRESS_PREFIX = "st"
DEFAULT_META_CHAIN = "eth"


@dataclass(frozen=True)
class MetaAddress:
    """Shareable payment destination (spending + viewing public keys)."""
    spend_pub: bytes
    view_pub: bytes

    def __post_init__(self):
        object.__setattr__(self, "spend_pub", to_point_bytes(self.spend_pub, "spend public key"))
        object.__setattr__(self, "view_pub", to_point_bytes(self.view_pub, "view public key"))

    @property
    def spend_pub_hex(self) -> str:
        return to_hex(self.spend_pub)

    @property
    def view_pub_hex(self) -> str:
        return to_hex(self.view_pub)

    def encode(self, chain: str = DEFAULT_META_CHAIN) -> str:
        """Format as st:<chain>:0x<spendPub><viewPub> (uncompressed keys)."""
        return f"{META_ADDRESS_PREFIX}:{chain}:0x{self.spend_pub.hex()}{self.view_pub.hex()}"

    @classmethod
    def parse(cls, text: str) -> "MetaAddress":
        """
        Parse an st:<chain>:0x... meta-address.

        Accepts either two 65-byte uncompressed keys or two 33-byte
        compressed keys (the ERC-5564 wire form). The chain tag is not
        checked; a bare 0x... payload is also accepted.
        """
        if not isinstance(text, str):
            raise InvalidKeyEncoding("meta-address must be a string")

        parts = text.strip().split(":")
        if len(parts) == 3 and parts[0] == META_ADDRESS_PREFIX:
            payload = parts[2]
        elif len(parts) == 1:
            payload = parts[0]
        else:
            raise InvalidKeyEncoding(f"Unrecognized meta-address format: {text!r}")

        raw = hex_to_bytes(payload, "meta-address")
        if len(raw) == 2 * PUBKEY_SIZE:
            half = PUBKEY_SIZE
        elif len(raw) == 2 * COMPRESSED_PUBKEY_SIZE:
            half = COMPRESSED_PUBKEY_SIZE
        else:
            raise InvalidKeyEncoding(
                f"meta-address payload must be {2 * PUBKEY_SIZE} or "
                f"{2 * COMPRESSED_PUBKEY_SIZE} bytes, got {len(raw)}"
            )
        return cls(
            spend_pub=decompress_point(raw[:half], "spend public key"),
            view_pub=decompress_point(raw[half:], "view public key"),
        )

    def to_dict(self) -> dict:
        return {"spend_pub": self.spend_pub_hex, "view_pub": self.view_pub_hex}

    @classmethod
    def from_dict(cls, data: dict) -> "MetaAddress":
        return cls(spend_pub=data["spend_pub"], view_pub=data["view_pub"])


@dataclass(frozen=True)
class MetaPrivateKeys:
    """Merchant spend/view private scalars. Secret - never logged or repr'd."""
    spend_priv: bytes = field(repr=False)
    view_priv: bytes = field(repr=False)

    def __post_init__(self):
        object.__setattr__(self, "spend_priv", to_scalar_bytes(self.spend_priv, "spend private key"))
        object.__setattr__(self, "view_priv", to_scalar_bytes(self.view_priv, "view private key"))

    @property
    def spend_priv_hex(self) -> str:
        return to_hex(self.spend_priv)

    @property
    def view_priv_hex(self) -> str:
        return to_hex(self.view_priv)

    def meta_address(self) -> MetaAddress:
        """Public meta-address for these keys."""
        return MetaAddress(
            spend_pub=public_from(self.spend_priv),
            view_pub=public_from(self.view_priv),
        )

    def to_dict(self) -> dict:
        return {"spend_priv": self.spend_priv_hex, "view_priv": self.view_priv_hex}

    @classmethod
    def from_dict(cls, data: dict) -> "MetaPrivateKeys":
        return cls(spend_priv=data["spend_priv"], view_priv=data["view_priv"])


@dataclass(frozen=True)
class EphemeralKeyPair:
    """
    One-time sender keypair.

    Must be generated fresh for every invoice. Reusing eph_priv across
    invoices links their stealth addresses; nothing here can detect reuse
    once the key has been handed out.
    """
    eph_priv: bytes = field(repr=False)
    eph_pub: bytes

    @classmethod
    def generate(cls) -> "EphemeralKeyPair":
        priv = random_scalar()
        return cls(eph_priv=priv, eph_pub=public_from(priv))

    @classmethod
    def from_private(cls, eph_priv: HexOrBytes) -> "EphemeralKeyPair":
        priv = to_scalar_bytes(eph_priv, "ephemeral private key")
        return cls(eph_priv=priv, eph_pub=public_from(priv))

    @property
    def eph_pub_hex(self) -> str:
        return to_hex(self.eph_pub)


def generate_meta_keys() -> tuple[MetaPrivateKeys, MetaAddress]:
    """
    Generate a fresh merchant identity.

    Spend and view scalars are drawn independently from the OS CSPRNG;
    neither is derived from the other.
    """
    keys = MetaPrivateKeys(spend_priv=random_scalar(), view_priv=random_scalar())
    return keys, keys.meta_address()
