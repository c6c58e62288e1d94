import json
from typing import Any, Optional

import psycopg2

from .base import StorageManager, to_json
from .schema import CREATE_TABLE_KV, CREATE_TABLE_EVENTS, CREATE_INDEX_EVENTS_BLOCK


class PostgresStorage(StorageManager):
    def __init__(self, dsn: str):
        self.dsn = dsn
        self.conn = None

    def setup(self) -> None:
        self.conn = psycopg2.connect(self.dsn)
        cur = self.conn.cursor()
        cur.execute(CREATE_TABLE_KV)
        cur.execute(CREATE_TABLE_EVENTS)
        cur.execute(CREATE_INDEX_EVENTS_BLOCK)
        self.conn.commit()

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        cur = self.conn.cursor()
        cur.execute("SELECT value FROM kv_store WHERE key = %s", (key,))
        r = cur.fetchone()
        return json.loads(r[0]) if r else default

    def set(self, key: str, value: Any) -> None:
        sql = """
        INSERT INTO kv_store (key, value)
        VALUES (%s, %s)
        ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
        """
        cur = self.conn.cursor()
        cur.execute(sql, (key, json.dumps(value)))
        self.conn.commit()

    def emit(self, event_name: str, record) -> None:
        sql = """
        INSERT INTO captured_events
        (event, distinct_id, block_number, block_hash, timestamp, properties)
        VALUES (%s, %s, %s, %s, %s, %s::jsonb)
        """
        did = record.distinct_id
        data = (
            event_name,
            None if did is None else (did if isinstance(did, str) else json.dumps(did, default=str)),
            int(record.block_number),
            record.block_hash,
            int(record.timestamp),
            to_json(record.properties()),
        )
        cur = self.conn.cursor()
        cur.execute(sql, data)
        self.conn.commit()

    def count_events(self, event_name: str) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM captured_events WHERE event = %s", (event_name,))
        return cur.fetchone()[0]

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None
