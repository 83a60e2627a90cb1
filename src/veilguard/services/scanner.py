"""
Scanner - View-key inbox for stealth payments.

Two halves:
- Matcher (pure): decides which announcements belong to a merchant by
  recomputing each stealth address from the view key and the announced
  ephemeral key. The view tag is only a cheap pre-filter; the address
  comparison is authoritative.
- LogScanner (web3): pulls Announcement and ERC-20 Transfer logs in block
  chunks and decodes them into models.

Per-announcement failures are logged and reported as "not mine"; they never
abort a batch. Results keep input order.
"""

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Iterable, Optional, Union

from web3 import Web3

from veilguard.models.announcement import Announcement, MatchedAnnouncement, TransferLog
from veilguard.networks import ERC20_ABI, STEALTH_HELPER_ABI, NetworkConfig, make_web3
from veilguard.wallet.crypto import addresses_equal
from veilguard.wallet.errors import DecryptionFailure, InvalidKeyEncoding, StealthError
from veilguard.wallet.keys import MetaPrivateKeys
from veilguard.wallet.memo import ENCRYPTED_MEMO_SENTINEL, decrypt_memo, is_encrypted_memo
from veilguard.wallet.stealth import Erc5564Scheme, StealthScheme

logger = logging.getLogger(__name__)

DEFAULT_SCAN_WORKERS = 4
DEFAULT_BLOCK_CHUNK = 2000
# When scanning "from genesis", look back this many blocks (~6 hours on Polygon)
DEFAULT_LOOKBACK_BLOCKS = 10_000

BlockId = Union[int, str]


# ============================================
# Matcher
# ============================================

def _attach_memo(result: MatchedAnnouncement, keys: MetaPrivateKeys) -> None:
    blob = result.announcement.memo_ciphertext
    if not is_encrypted_memo(blob):
        return
    try:
        result.memo = decrypt_memo(blob, keys.view_priv, result.announcement.ephemeral_pub_key)
    except (DecryptionFailure, InvalidKeyEncoding) as e:
        result.memo = ENCRYPTED_MEMO_SENTINEL
        result.memo_error = str(e)
        logger.debug(f"Memo for {result.stealth_address} not readable: {e}")


def match_announcement(
    announcement: Announcement,
    keys: MetaPrivateKeys,
    scheme: Optional[StealthScheme] = None,
    use_view_tag: bool = True,
) -> MatchedAnnouncement:
    """
    Check one announcement against the merchant's keys.

    Args:
        announcement: Decoded announcement
        keys: Merchant meta keys (only the view key is used for the tag check)
        scheme: Stealth scheme; ERC-5564 if omitted
        use_view_tag: Skip address recomputation when the view tag differs

    Returns:
        MatchedAnnouncement with is_mine and, for owned announcements, the memo
    """
    scheme = scheme or Erc5564Scheme()
    result = MatchedAnnouncement(announcement=announcement)

    if announcement.scheme_id != scheme.scheme_id:
        return result

    try:
        if use_view_tag and announcement.view_tag is not None:
            expected_tag = scheme.view_tag_for(keys.view_priv, announcement.ephemeral_pub_key)
            if expected_tag != announcement.view_tag:
                return result

        derived = scheme.recompute_address(keys, announcement.ephemeral_pub_key)
    except (StealthError, ValueError) as e:
        logger.debug(f"Skipping announcement {announcement.tx_hash}: {e}")
        return result

    if not addresses_equal(derived, announcement.stealth_address):
        return result

    result.is_mine = True
    _attach_memo(result, keys)
    return result


def _match_isolated(announcement: Announcement, keys: MetaPrivateKeys,
                    scheme: StealthScheme, use_view_tag: bool) -> MatchedAnnouncement:
    try:
        return match_announcement(announcement, keys, scheme, use_view_tag)
    except Exception as e:
        logger.warning(f"Error matching announcement {announcement.tx_hash}: {e}")
        return MatchedAnnouncement(announcement=announcement)


def annotate_announcements(
    announcements: Iterable[Announcement],
    keys: MetaPrivateKeys,
    scheme: Optional[StealthScheme] = None,
    use_view_tag: bool = True,
    max_workers: int = DEFAULT_SCAN_WORKERS,
) -> list[MatchedAnnouncement]:
    """Match every announcement, in input order. Work fans out over a thread pool."""
    scheme = scheme or Erc5564Scheme()
    announcements = list(announcements)
    match = partial(_match_isolated, keys=keys, scheme=scheme, use_view_tag=use_view_tag)

    if max_workers <= 1 or len(announcements) <= 1:
        return [match(a) for a in announcements]

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(match, announcements))


def filter_mine(
    announcements: Iterable[Announcement],
    keys: MetaPrivateKeys,
    scheme: Optional[StealthScheme] = None,
    use_view_tag: bool = True,
    max_workers: int = DEFAULT_SCAN_WORKERS,
) -> list[MatchedAnnouncement]:
    """Only the announcements that belong to `keys`, in input order."""
    annotated = annotate_announcements(announcements, keys, scheme, use_view_tag, max_workers)
    mine = [m for m in annotated if m.is_mine]
    logger.info(f"Matched {len(mine)} of {len(annotated)} announcements")
    return mine


def match_transfers_to_announcements(
    matched: Iterable[MatchedAnnouncement],
    transfers: Iterable[TransferLog],
) -> list[MatchedAnnouncement]:
    """Pair each announcement with the first transfer into its stealth address."""
    transfers = list(transfers)
    paired = []
    for item in matched:
        transfer = next(
            (t for t in transfers if addresses_equal(t.to_address, item.stealth_address)),
            None,
        )
        paired.append(dataclasses.replace(item, transfer=transfer))
    return paired


# ============================================
# Log Source
# ============================================

class LogScanner:
    """
    Fetches stealth-related logs from a chain.

    Block ranges are paged in `block_chunk` sized windows so public RPCs
    with range limits can be used.
    """

    def __init__(self, w3: Web3, block_chunk: int = DEFAULT_BLOCK_CHUNK,
                 lookback_blocks: int = DEFAULT_LOOKBACK_BLOCKS):
        if block_chunk <= 0:
            raise ValueError("block_chunk must be positive")
        self.w3 = w3
        self.block_chunk = block_chunk
        self.lookback_blocks = lookback_blocks

    @classmethod
    def for_network(cls, network: NetworkConfig, rpc_url: Optional[str] = None, **kwargs) -> "LogScanner":
        return cls(make_web3(network, rpc_url), **kwargs)

    def resolve_range(self, from_block: BlockId = 0, to_block: BlockId = "latest") -> tuple[int, int]:
        """
        Turn (from, to) into concrete block numbers.

        from_block == 0 means "recent history": the last lookback_blocks
        blocks before to_block.
        """
        end = self.w3.eth.block_number if to_block in (None, "latest") else int(to_block)
        start = int(from_block or 0)
        if start == 0:
            start = max(0, end - self.lookback_blocks)
        return start, end

    def _windows(self, start: int, end: int):
        while start <= end:
            stop = min(start + self.block_chunk - 1, end)
            yield start, stop
            start = stop + 1

    def _get_logs(self, event, start: int, end: int, argument_filters: Optional[dict] = None) -> list:
        logs = []
        for window_start, window_end in self._windows(start, end):
            logs.extend(event.get_logs(
                from_block=window_start,
                to_block=window_end,
                argument_filters=argument_filters,
            ))
        return logs

    def get_announcements(
        self,
        helper_address: str,
        from_block: BlockId = 0,
        to_block: BlockId = "latest",
        scheme_id: Optional[int] = None,
    ) -> list[Announcement]:
        """Announcement events from the stealth helper contract."""
        start, end = self.resolve_range(from_block, to_block)
        logger.info(f"Scanning announcements in blocks {start} to {end}")

        contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(helper_address),
            abi=STEALTH_HELPER_ABI,
        )
        filters = {"schemeId": scheme_id} if scheme_id is not None else None
        logs = self._get_logs(contract.events.Announcement, start, end, filters)
        return [Announcement.from_event(log) for log in logs]

    def get_incoming_transfers(
        self,
        token_address: str,
        to_address: str,
        from_block: BlockId = 0,
        to_block: BlockId = "latest",
    ) -> list[TransferLog]:
        """ERC-20 Transfer events into `to_address`."""
        start, end = self.resolve_range(from_block, to_block)

        contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI,
        )
        filters = {"to": Web3.to_checksum_address(to_address)}
        logs = self._get_logs(contract.events.Transfer, start, end, filters)
        return [TransferLog.from_event(log) for log in logs]

    def scan(
        self,
        helper_address: str,
        keys: MetaPrivateKeys,
        scheme: Optional[StealthScheme] = None,
        from_block: BlockId = 0,
        to_block: BlockId = "latest",
        token_address: Optional[str] = None,
        max_workers: int = DEFAULT_SCAN_WORKERS,
    ) -> list[MatchedAnnouncement]:
        """
        Fetch announcements, keep the merchant's, and optionally attach the
        first incoming `token_address` transfer for each.
        """
        scheme = scheme or Erc5564Scheme()
        start, end = self.resolve_range(from_block, to_block)
        announcements = self.get_announcements(helper_address, start, end, scheme.scheme_id)
        mine = filter_mine(announcements, keys, scheme, max_workers=max_workers)

        if token_address is None or not mine:
            return mine

        transfers = []
        for item in mine:
            transfers.extend(self.get_incoming_transfers(token_address, item.stealth_address, start, end))
        return match_transfers_to_announcements(mine, transfers)
