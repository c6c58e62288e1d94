# ingestion/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from common.utils import to_int


@dataclass(frozen=True)
class RawLog:
    address: str
    topics: Tuple[str, ...]
    data: str
    blockNumber: int
    blockHash: str
    transactionHash: Optional[str] = None
    logIndex: Optional[int] = None

    @classmethod
    def from_rpc(cls, lg: Dict[str, Any]) -> "RawLog":
        """Build from an eth_getLogs entry; hex quantities become ints."""
        if not lg or "topics" not in lg:
            raise ValueError("Invalid log JSON")
        log_index = lg.get("logIndex")
        return cls(
            address=lg.get("address") or "",
            topics=tuple(lg.get("topics") or ()),
            data=lg.get("data") or "0x",
            blockNumber=to_int(lg["blockNumber"]),
            blockHash=lg["blockHash"],
            transactionHash=lg.get("transactionHash"),
            logIndex=to_int(log_index) if log_index is not None else None,
        )

    @property
    def topic0(self) -> Optional[str]:
        return self.topics[0] if self.topics else None
