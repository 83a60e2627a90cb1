"""
Announcement models.

Records decoded from on-chain logs:
- Announcement: ERC-5564 Announcement(schemeId, stealthAddress, initiator,
  ephemeralPubKey, metadata)
- TransferLog: ERC-20 Transfer into a stealth address
- MatchedAnnouncement: an announcement annotated by the matcher
"""

from dataclasses import dataclass
from typing import Any, Optional

from web3 import Web3

from veilguard.wallet.crypto import hex_to_bytes, to_hex


def _tx_hash_hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value)


@dataclass
class Announcement:
    """A stealth address announcement."""
    scheme_id: int
    stealth_address: str
    initiator: str
    ephemeral_pub_key: bytes
    metadata: bytes
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None

    def __post_init__(self):
        self.ephemeral_pub_key = hex_to_bytes(self.ephemeral_pub_key, "ephemeral public key")
        self.metadata = hex_to_bytes(self.metadata, "metadata")

    @classmethod
    def from_event(cls, event: Any) -> "Announcement":
        """Build from a web3 decoded event (AttributeDict or plain dict)."""
        args = event["args"]
        return cls(
            scheme_id=int(args["schemeId"]),
            stealth_address=args["stealthAddress"],
            initiator=args["initiator"],
            ephemeral_pub_key=bytes(args["ephemeralPubKey"]),
            metadata=bytes(args["metadata"]),
            block_number=event.get("blockNumber"),
            tx_hash=_tx_hash_hex(event.get("transactionHash")),
        )

    @property
    def view_tag(self) -> Optional[int]:
        """metadata[0], or None for empty metadata."""
        return self.metadata[0] if self.metadata else None

    @property
    def memo_ciphertext(self) -> bytes:
        return self.metadata[1:]

    def to_dict(self) -> dict:
        return {
            "scheme_id": self.scheme_id,
            "stealth_address": self.stealth_address,
            "initiator": self.initiator,
            "ephemeral_pub_key": to_hex(self.ephemeral_pub_key),
            "metadata": to_hex(self.metadata),
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Announcement":
        return cls(**data)


@dataclass
class TransferLog:
    """An ERC-20 Transfer event."""
    from_address: str
    to_address: str
    value: int
    block_number: Optional[int] = None
    tx_hash: Optional[str] = None

    @classmethod
    def from_event(cls, event: Any) -> "TransferLog":
        args = event["args"]
        return cls(
            from_address=args["from"],
            to_address=args["to"],
            value=int(args["value"]),
            block_number=event.get("blockNumber"),
            tx_hash=_tx_hash_hex(event.get("transactionHash")),
        )

    def to_dict(self) -> dict:
        return {
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
        }


@dataclass
class MatchedAnnouncement:
    """
    Matcher output for one announcement.

    memo is the decrypted plaintext, "[encrypted]" when it belongs to us but
    cannot be read (memo_error says why), or None when there is no memo.
    """
    announcement: Announcement
    is_mine: bool = False
    memo: Optional[str] = None
    memo_error: Optional[str] = None
    transfer: Optional[TransferLog] = None

    @property
    def stealth_address(self) -> str:
        return self.announcement.stealth_address

    @property
    def ephemeral_pub_key(self) -> bytes:
        return self.announcement.ephemeral_pub_key

    def to_dict(self) -> dict:
        data = self.announcement.to_dict()
        data.update({
            "is_mine": self.is_mine,
            "memo": self.memo,
            "memo_error": self.memo_error,
            "transfer": self.transfer.to_dict() if self.transfer else None,
        })
        return data
