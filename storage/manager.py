# storage/manager.py
from __future__ import annotations
from typing import Any, Dict

from storage.base import StorageManager
from storage.sqlite_backend import SQLiteStorage


def get_storage(backend: str, **opts: Dict[str, Any]) -> StorageManager:
    """
    Factory for storage backends. Accepts flexible option names.
      - sqlite: db_path | sqlite_path | path
      - postgres: dsn
    """
    b = (backend or "").lower()
    if b == "sqlite":
        db_path = opts.get("db_path") or opts.get("sqlite_path") or opts.get("path") or "data/events.db"
        return SQLiteStorage(db_path)
    elif b in ("postgres", "postgresql", "pg"):
        dsn = opts.get("dsn")
        if not dsn:
            raise ValueError("Postgres backend requires a dsn")
        # imported lazily so sqlite-only installs never load the driver
        from storage.postgres_backend import PostgresStorage
        return PostgresStorage(dsn=dsn)
    else:
        raise ValueError(f"Unknown storage backend: {backend!r}")
