"""Database initialisation for Parallax.

Holds what survives between pipeline runs: past queries with their cost
breakdown, and observed per-endpoint success counts.  The database path is
taken from the ``PARALLAX_DATA_DIR`` environment variable (default:
``./data``).

Usage::

    from parallax.db import get_db, init_db
    init_db()                  # idempotent — safe to call multiple times
    conn = get_db()            # returns a per-thread connection
"""

from __future__ import annotations

import os
import sqlite3
import threading
from pathlib import Path

_DB_PATH: Path | None = None
_LOCAL = threading.local()


def _db_path() -> Path:
    global _DB_PATH
    if _DB_PATH is None:
        data_dir = Path(os.environ.get("PARALLAX_DATA_DIR", "./data"))
        data_dir.mkdir(parents=True, exist_ok=True)
        _DB_PATH = data_dir / "parallax.db"
    return _DB_PATH


def set_db_path(path: str | Path) -> None:
    """Override the database path (useful for tests)."""
    global _DB_PATH, _LOCAL
    _DB_PATH = Path(path)
    _LOCAL = threading.local()


def get_db() -> sqlite3.Connection:
    """Return a per-thread SQLite connection (WAL mode, FK enabled)."""
    conn = getattr(_LOCAL, "conn", None)
    if conn is None:
        conn = sqlite3.connect(str(_db_path()), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        _LOCAL.conn = conn
    return conn


def init_db(path: str | Path | None = None) -> None:
    """Create all tables (idempotent — safe to run multiple times)."""
    if path:
        set_db_path(path)
    conn = get_db()
    conn.executescript(_SCHEMA_SQL)
    conn.commit()


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS query_history (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    query              TEXT NOT NULL,
    tier               TEXT NOT NULL,
    total_cost_usd     REAL NOT NULL,
    x402_cost_usd      REAL NOT NULL,
    llm_cost_usd       REAL NOT NULL,
    total_latency_ms   INTEGER NOT NULL,
    sub_task_count     INTEGER NOT NULL,
    calls_succeeded    INTEGER NOT NULL,
    calls_failed       INTEGER NOT NULL,
    created_at         TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS query_costs (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    query_id     INTEGER NOT NULL REFERENCES query_history(id) ON DELETE CASCADE,
    cost_type    TEXT NOT NULL CHECK (cost_type IN ('x402', 'llm')),
    description  TEXT NOT NULL,
    cost_usd     REAL NOT NULL,
    timestamp_ms INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_query_costs_query ON query_costs(query_id);

CREATE TABLE IF NOT EXISTS endpoint_stats (
    endpoint_id  TEXT PRIMARY KEY,
    successes    INTEGER NOT NULL DEFAULT 0,
    failures     INTEGER NOT NULL DEFAULT 0,
    updated_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""
