from __future__ import annotations

import json
import sqlite3
from typing import Dict, Any, Optional, List, Tuple

from storage.base import StorageManager, to_json


def _distinct_text(v) -> Optional[str]:
    if v is None:
        return None
    return v if isinstance(v, str) else json.dumps(v, default=str)


class SQLiteStorage(StorageManager):
    def __init__(self, path: str):
        self.path = path
        self.conn: Optional[sqlite3.Connection] = None

    def _ensure(self) -> None:
        if self.conn is not None:
            return
        self.setup()

    def _exec(self, sql: str, params: Tuple = ()) -> None:
        self.conn.execute(sql, params)

    def setup(self) -> None:
        con = sqlite3.connect(self.path)
        con.row_factory = sqlite3.Row
        con.execute("""
            CREATE TABLE IF NOT EXISTS kv_store(
              key   TEXT PRIMARY KEY,
              value TEXT NOT NULL
            )
        """)
        con.execute("""
            CREATE TABLE IF NOT EXISTS captured_events(
              id           INTEGER PRIMARY KEY AUTOINCREMENT,
              event        TEXT NOT NULL,
              distinct_id  TEXT,
              block_number INTEGER NOT NULL,
              block_hash   TEXT NOT NULL,
              timestamp    INTEGER NOT NULL,
              properties   TEXT NOT NULL,
              captured_at  TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        con.execute("CREATE INDEX IF NOT EXISTS idx_captured_events_block ON captured_events(block_number)")
        con.commit()
        self.conn = con

    # ——— key value store ———

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        self._ensure()
        row = self.conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return json.loads(row["value"]) if row else default

    def set(self, key: str, value: Any) -> None:
        self._ensure()
        self._exec(
            "INSERT INTO kv_store(key, value) VALUES(?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, json.dumps(value)),
        )
        self.conn.commit()

    # ——— event sink ———

    def emit(self, event_name: str, record) -> None:
        """
        Persist one normalized record. Properties are stored as JSON text so
        big integer fields rendered as strings survive untouched.
        """
        self._ensure()
        self._exec(
            "INSERT INTO captured_events(event, distinct_id, block_number, block_hash, timestamp, properties) "
            "VALUES(?,?,?,?,?,?)",
            (
                event_name,
                _distinct_text(record.distinct_id),
                int(record.block_number),
                record.block_hash,
                int(record.timestamp),
                to_json(record.properties()),
            ),
        )
        self.conn.commit()

    def read_events(self, event_name: Optional[str] = None) -> List[Dict[str, Any]]:
        self._ensure()
        if event_name is None:
            cur = self.conn.execute("SELECT * FROM captured_events ORDER BY id")
        else:
            cur = self.conn.execute("SELECT * FROM captured_events WHERE event = ? ORDER BY id", (event_name,))
        out = []
        for r in cur.fetchall():
            row = dict(r)
            row["properties"] = json.loads(row["properties"])
            out.append(row)
        return out

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None
