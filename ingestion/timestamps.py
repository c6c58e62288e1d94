# ingestion/timestamps.py
from __future__ import annotations

from typing import Any, Callable, Dict

from common.utils import to_int


class BlockTimestampCache:
    """
    block hash -> timestamp, scoped to a single cycle.
    Only successful lookups are stored, so a failed fetch is retried by the next log.
    """

    def __init__(self, fetch_block: Callable[[str], Dict[str, Any]]):
        self._fetch_block = fetch_block
        self._timestamps: Dict[str, int] = {}
        self.fetches = 0

    def get(self, block_hash: str) -> int:
        key = block_hash.lower()
        if key in self._timestamps:
            return self._timestamps[key]
        self.fetches += 1
        block = self._fetch_block(block_hash)
        ts = to_int(block["timestamp"])
        self._timestamps[key] = ts
        return ts

    def __contains__(self, block_hash: str) -> bool:
        return block_hash.lower() in self._timestamps

    def __len__(self) -> int:
        return len(self._timestamps)
