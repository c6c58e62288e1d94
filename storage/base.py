# storage/base.py
from __future__ import annotations

import json
from typing import Any, Optional


def to_json(props: dict) -> str:
    # Decimal / bytes leftovers from custom sinks are stringified, not rejected
    return json.dumps(props, default=str, sort_keys=True)


class StorageManager:
    """
    A backend is both the key-value store behind the checkpoint and the
    event sink records are emitted to.
    """

    def setup(self) -> None:
        raise NotImplementedError

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def emit(self, event_name: str, record) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass
