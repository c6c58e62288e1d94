import json
import os
from typing import Optional

STORAGE_KEY = "ethereum-events-plugin-lastIngestedBlockNumber"


class CheckpointError(Exception):
    pass


def _validated(block_number: int) -> int:
    if isinstance(block_number, bool) or not isinstance(block_number, int) or block_number < 0:
        raise CheckpointError(f"Checkpoint must be a non negative integer, got {block_number!r}")
    return block_number


class Checkpoint:
    """JSON file holding {key: last_block}. Other keys in the file are preserved."""

    def __init__(self, path: str, key: str = STORAGE_KEY):
        self.path = path
        self.key = key

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError, json.JSONDecodeError) as e:
            raise CheckpointError(f"Failed to read checkpoint: {e}")
        if not isinstance(data, dict):
            raise CheckpointError(f"Failed to read checkpoint: expected an object in {self.path}")
        return data

    def get_last(self) -> Optional[int]:
        """Return the last ingested block number, or None if none."""
        data = self._read()
        if self.key not in data or data[self.key] is None:
            return None
        try:
            return int(data[self.key])
        except (TypeError, ValueError) as e:
            raise CheckpointError(f"Failed to read checkpoint: {e}")

    def update(self, block_number: int):
        """Atomically update the checkpoint to block_number."""
        data = self._read()
        data[self.key] = _validated(block_number)
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except OSError as e:
            raise CheckpointError(f"Failed to write checkpoint: {e}")


class StorageCheckpoint:
    """Same contract as Checkpoint, kept in a storage backend's key-value table."""

    def __init__(self, storage, key: str = STORAGE_KEY):
        self.storage = storage
        self.key = key

    def get_last(self) -> Optional[int]:
        try:
            value = self.storage.get(self.key, None)
        except Exception as e:
            raise CheckpointError(f"Failed to read checkpoint: {e}") from e
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise CheckpointError(f"Failed to read checkpoint: {e}")

    def update(self, block_number: int):
        value = _validated(block_number)
        try:
            self.storage.set(self.key, value)
        except Exception as e:
            raise CheckpointError(f"Failed to write checkpoint: {e}") from e
