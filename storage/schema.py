# storage/schema.py
CREATE_TABLE_KV = """
CREATE TABLE IF NOT EXISTS kv_store (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

CREATE_TABLE_EVENTS = """
CREATE TABLE IF NOT EXISTS captured_events (
    id           BIGSERIAL PRIMARY KEY,
    event        TEXT NOT NULL,
    distinct_id  TEXT,
    block_number BIGINT NOT NULL,
    block_hash   TEXT NOT NULL,
    timestamp    BIGINT NOT NULL,
    properties   JSONB NOT NULL,
    captured_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

CREATE_INDEX_EVENTS_BLOCK = """
CREATE INDEX IF NOT EXISTS idx_captured_events_block ON captured_events (block_number);
"""
