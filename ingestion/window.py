# ingestion/window.py
from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ~3.5 hours of mainnet blocks. Larger windows get us rate limited by providers.
MAX_LOOKBACK = 1000


@dataclass(frozen=True)
class BlockWindow:
    from_block: int
    to_block: int
    checkpoint: int
    clamped: bool = False

    @property
    def is_empty(self) -> bool:
        return self.from_block > self.to_block

    @property
    def skipped_blocks(self) -> int:
        """Blocks between the checkpoint and the clamped start that are never ingested."""
        if not self.clamped:
            return 0
        return self.from_block - self.checkpoint

    def span(self) -> int:
        return 0 if self.is_empty else self.to_block - self.from_block + 1


def compute_window(last_ingested: int, latest: int, max_lookback: int = MAX_LOOKBACK) -> BlockWindow:
    """
    Inclusive [from, to] range for one cycle.

    The start is max(last_ingested, latest - max_lookback). Falling further
    behind than max_lookback drops the older blocks for good; that is logged
    as a warning, not raised.
    """
    if last_ingested < 0 or latest < 0:
        raise ValueError("block numbers must be non negative")
    if max_lookback < 0:
        raise ValueError("max_lookback must be non negative")

    if last_ingested > latest:
        # head went backwards (lagging node), nothing to do this cycle
        return BlockWindow(from_block=last_ingested, to_block=latest, checkpoint=last_ingested)

    floor = max(0, latest - max_lookback)
    if latest - last_ingested > max_lookback:
        logger.warning(
            "Last ingested block (%d) is more than %d blocks behind the current block (%d); "
            "only looking back to %d, events in blocks %d..%d will be missing.",
            last_ingested, max_lookback, latest, floor, last_ingested, floor - 1,
        )
        return BlockWindow(from_block=floor, to_block=latest, checkpoint=last_ingested, clamped=True)

    return BlockWindow(from_block=last_ingested, to_block=latest, checkpoint=last_ingested)
