# etl/abi.py
"""
Interface schema: the events of a contract ABI, keyed by their topic0.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from eth_utils import collapse_if_tuple, event_signature_to_log_topic


@dataclass(frozen=True)
class EventInput:
    name: str
    type: str
    indexed: bool = False
    components: Tuple["EventInput", ...] = ()

    @classmethod
    def from_abi(cls, item: Dict[str, Any]) -> "EventInput":
        return cls(
            name=item.get("name") or "",
            type=item["type"],
            indexed=bool(item.get("indexed", False)),
            components=tuple(cls.from_abi(c) for c in item.get("components") or ()),
        )

    def as_abi(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "type": self.type}
        if self.components:
            out["components"] = [c.as_abi() for c in self.components]
        return out

    @property
    def canonical_type(self) -> str:
        """Type string as used in signatures and by eth_abi, tuples collapsed."""
        return collapse_if_tuple(self.as_abi())

    @property
    def is_reference(self) -> bool:
        # indexed reference types only leave their keccak hash in the topic
        t = self.type
        return t in ("string", "bytes") or t.endswith("]") or t.startswith("tuple")


@dataclass(frozen=True)
class EventFragment:
    name: str
    inputs: Tuple[EventInput, ...]
    anonymous: bool = False
    signature: str = field(init=False)
    topic: str = field(init=False)

    def __post_init__(self):
        sig = f"{self.name}({','.join(i.canonical_type for i in self.inputs)})"
        object.__setattr__(self, "signature", sig)
        object.__setattr__(self, "topic", "0x" + event_signature_to_log_topic(sig).hex())

    @classmethod
    def from_abi(cls, item: Dict[str, Any]) -> "EventFragment":
        if not item.get("name"):
            raise ValueError("event entry without a name")
        return cls(
            name=item["name"],
            inputs=tuple(EventInput.from_abi(i) for i in item.get("inputs") or ()),
            anonymous=bool(item.get("anonymous", False)),
        )


class InterfaceSchema:
    """Immutable topic0 -> EventFragment lookup, built once at startup."""

    def __init__(self, fragments: Iterable[EventFragment]):
        self._by_topic: Dict[str, EventFragment] = {}
        for frag in fragments:
            self._by_topic[frag.topic.lower()] = frag

    @classmethod
    def from_abi(cls, abi: List[Dict[str, Any]]) -> "InterfaceSchema":
        if not isinstance(abi, list):
            raise ValueError("contract ABI must be a JSON array")
        return cls(EventFragment.from_abi(item) for item in abi
                   if isinstance(item, dict) and item.get("type") == "event")

    def get_event(self, topic0: Optional[str]) -> Optional[EventFragment]:
        if not topic0:
            return None
        t = str(topic0).lower()
        if not t.startswith("0x"):
            t = "0x" + t
        return self._by_topic.get(t)

    @property
    def events(self) -> List[EventFragment]:
        return list(self._by_topic.values())

    def __len__(self) -> int:
        return len(self._by_topic)


def load_abi(text: str) -> InterfaceSchema:
    try:
        abi = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"contract ABI is not valid JSON: {e}") from e
    return InterfaceSchema.from_abi(abi)
