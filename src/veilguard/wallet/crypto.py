"""
Wallet Crypto - secp256k1 and keccak primitives.

Everything above this module works with raw bytes:
- 32-byte scalars (private keys, tweaks)
- 65-byte uncompressed points (0x04 || X || Y)
- 20-byte Ethereum addresses (checksummed strings)

Point arithmetic runs in libsecp256k1 via coincurve. Hashing and address
formatting use web3, so addresses match what eth_account derives.

All functions are pure and safe to call from any thread.
"""

import re
import secrets
from typing import Union

from coincurve import PrivateKey, PublicKey
from web3 import Web3

from .errors import DerivationError, InvalidKeyEncoding


# ============================================
# Curve Constants
# ============================================

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

SCALAR_SIZE = 32
PUBKEY_SIZE = 65          # 0x04 || X || Y
COMPRESSED_PUBKEY_SIZE = 33
PUBKEY_PREFIX = 0x04
ADDRESS_SIZE = 20

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")

HexOrBytes = Union[str, bytes, bytearray]


# ============================================
# Hex Helpers
# ============================================

def strip_0x(value: str) -> str:
    """Remove a leading 0x/0X prefix if present."""
    if value[:2] in ("0x", "0X"):
        return value[2:]
    return value


def to_hex(data: bytes) -> str:
    """Encode bytes as a 0x-prefixed lowercase hex string."""
    return "0x" + bytes(data).hex()


def parse_hex(value: str, length: int, what: str = "value") -> bytes:
    """
    Parse a hex string into exactly `length` bytes.

    Short input is left-padded with zeros. Long input is rejected, never
    truncated.

    Raises:
        InvalidKeyEncoding: if the input is not hex or is too long
    """
    if not isinstance(value, str):
        raise InvalidKeyEncoding(f"{what} must be a hex string, got {type(value).__name__}")

    body = strip_0x(value.strip())
    if not _HEX_RE.match(body):
        raise InvalidKeyEncoding(f"{what} is not valid hex")
    if len(body) > length * 2:
        raise InvalidKeyEncoding(
            f"{what} too long: {len(body)} hex chars, expected {length * 2}"
        )
    return bytes.fromhex(body.rjust(length * 2, "0"))


def hex_to_bytes(value: HexOrBytes, what: str = "value") -> bytes:
    """
    Decode variable-length hex (or pass bytes through).

    Unlike parse_hex there is no canonical length, so odd-length input is
    rejected instead of padded.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise InvalidKeyEncoding(f"{what} must be hex or bytes, got {type(value).__name__}")

    body = strip_0x(value.strip())
    if not _HEX_RE.match(body) or len(body) % 2:
        raise InvalidKeyEncoding(f"{what} is not valid even-length hex")
    return bytes.fromhex(body)


# ============================================
# Validation
# ============================================

def to_scalar_bytes(value: HexOrBytes, what: str = "private key") -> bytes:
    """
    Normalize a private scalar to 32 bytes and check it is in [1, n-1].

    Accepts raw bytes (must be exactly 32) or hex (left-padded to 64 chars).
    """
    if isinstance(value, (bytes, bytearray)):
        data = bytes(value)
        if len(data) != SCALAR_SIZE:
            raise InvalidKeyEncoding(f"{what} must be {SCALAR_SIZE} bytes, got {len(data)}")
    else:
        data = parse_hex(value, SCALAR_SIZE, what)

    k = int.from_bytes(data, "big")
    if not 0 < k < SECP256K1_N:
        raise InvalidKeyEncoding(f"{what} is outside the secp256k1 scalar range")
    return data


def to_point_bytes(value: HexOrBytes, what: str = "public key") -> bytes:
    """
    Normalize a public key to its 65-byte uncompressed encoding.

    The point must carry the 0x04 prefix and lie on the curve.
    """
    if isinstance(value, (bytes, bytearray)):
        data = bytes(value)
        if len(data) != PUBKEY_SIZE:
            raise InvalidKeyEncoding(f"{what} must be {PUBKEY_SIZE} bytes, got {len(data)}")
    else:
        data = parse_hex(value, PUBKEY_SIZE, what)

    if data[0] != PUBKEY_PREFIX:
        raise InvalidKeyEncoding(f"{what} is not an uncompressed point (missing 04 prefix)")
    try:
        PublicKey(data)
    except ValueError:
        raise InvalidKeyEncoding(f"{what} is not a point on secp256k1") from None
    return data


def decompress_point(value: HexOrBytes, what: str = "public key") -> bytes:
    """Accept a compressed (33-byte) or uncompressed point, return 65 bytes."""
    data = hex_to_bytes(value, what)
    if len(data) == COMPRESSED_PUBKEY_SIZE:
        try:
            return PublicKey(data).format(compressed=False)
        except ValueError:
            raise InvalidKeyEncoding(f"{what} is not a point on secp256k1") from None
    return to_point_bytes(data, what)


# ============================================
# Scalar Arithmetic (mod n)
# ============================================

def scalar_to_int(scalar: bytes) -> int:
    return int.from_bytes(scalar, "big")


def int_to_scalar(k: int) -> bytes:
    """Encode an integer in [1, n-1] as 32 big-endian bytes."""
    if not 0 < k < SECP256K1_N:
        raise DerivationError("scalar reduced to zero or exceeds the group order")
    return k.to_bytes(SCALAR_SIZE, "big")


def scalar_add(a: int, b: int) -> int:
    return (a + b) % SECP256K1_N


def random_scalar() -> bytes:
    """Draw a uniformly random private scalar from the OS CSPRNG."""
    while True:
        candidate = secrets.token_bytes(SCALAR_SIZE)
        if 0 < int.from_bytes(candidate, "big") < SECP256K1_N:
            return candidate


# ============================================
# Point Arithmetic
# ============================================

def public_from(priv: HexOrBytes) -> bytes:
    """Uncompressed public key priv*G."""
    return PrivateKey(to_scalar_bytes(priv)).public_key.format(compressed=False)


def point_add(p: HexOrBytes, q: HexOrBytes) -> bytes:
    """P + Q as an uncompressed point."""
    a = PublicKey(to_point_bytes(p))
    b = PublicKey(to_point_bytes(q))
    try:
        return PublicKey.combine_keys([a, b]).format(compressed=False)
    except ValueError:
        raise DerivationError("point addition produced the point at infinity") from None


def point_mul(point: HexOrBytes, scalar: HexOrBytes) -> bytes:
    """scalar*P as an uncompressed point."""
    pub = PublicKey(to_point_bytes(point))
    return pub.multiply(to_scalar_bytes(scalar, "scalar")).format(compressed=False)


def ecdh(priv: HexOrBytes, pub: HexOrBytes) -> bytes:
    """
    Raw ECDH shared point priv*pub, 65 bytes uncompressed.

    This is the full point, not coincurve's hashed ECDH output, so both
    sides can hash or slice it the same way.
    """
    return point_mul(pub, priv)


def ecdh_compressed(priv: HexOrBytes, pub: HexOrBytes) -> bytes:
    """Raw ECDH shared point in 33-byte compressed form."""
    pub_key = PublicKey(to_point_bytes(pub))
    return pub_key.multiply(to_scalar_bytes(priv)).format(compressed=True)


# ============================================
# Hashing & Addresses
# ============================================

def keccak256(data: bytes) -> bytes:
    return bytes(Web3.keccak(bytes(data)))


def address_of(pub: HexOrBytes) -> str:
    """Ethereum address: last 20 bytes of keccak256(X || Y), checksummed."""
    body = to_point_bytes(pub)[1:]
    return Web3.to_checksum_address(to_hex(keccak256(body)[-ADDRESS_SIZE:]))


def address_of_private(priv: HexOrBytes) -> str:
    return address_of(public_from(priv))


def normalize_address(value: HexOrBytes, what: str = "address") -> str:
    """Checksum a 20-byte address given as hex or raw bytes."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != ADDRESS_SIZE:
            raise InvalidKeyEncoding(f"{what} must be {ADDRESS_SIZE} bytes, got {len(value)}")
        value = to_hex(value)
    if not isinstance(value, str) or not Web3.is_address(value.lower()):
        raise InvalidKeyEncoding(f"{what} is not a valid 20-byte address: {value!r}")
    return Web3.to_checksum_address(value.lower())


def addresses_equal(a: str, b: str) -> bool:
    """Case-insensitive address comparison."""
    return a.lower() == b.lower()
