"""SQLite session shared by every component.

One ``JournalDatabase`` is opened per process and handed to each
component. Calls are serialized through a FIFO lock, run on a worker
thread, and retried with a growing backoff while SQLite reports lock
contention.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from .errors import StorageLockError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Statement = Tuple[str, Sequence[Any]]

SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY NOT NULL,
    date TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_entries_date ON entries(date DESC);

CREATE VIRTUAL TABLE IF NOT EXISTS entries_fts USING fts5(
    content,
    content='entries',
    content_rowid='rowid'
);
CREATE TRIGGER IF NOT EXISTS entries_ai AFTER INSERT ON entries BEGIN
    INSERT INTO entries_fts(rowid, content) VALUES (NEW.rowid, NEW.content);
END;
CREATE TRIGGER IF NOT EXISTS entries_ad AFTER DELETE ON entries BEGIN
    INSERT INTO entries_fts(entries_fts, rowid, content) VALUES ('delete', OLD.rowid, OLD.content);
END;
CREATE TRIGGER IF NOT EXISTS entries_au AFTER UPDATE ON entries BEGIN
    INSERT INTO entries_fts(entries_fts, rowid, content) VALUES ('delete', OLD.rowid, OLD.content);
    INSERT INTO entries_fts(rowid, content) VALUES (NEW.rowid, NEW.content);
END;

CREATE TABLE IF NOT EXISTS embedding_chunks (
    id TEXT PRIMARY KEY NOT NULL,
    entry_id TEXT NOT NULL,
    entry_date TEXT NOT NULL,
    content TEXT NOT NULL,
    embedding BLOB NOT NULL,
    chunk_index INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_embedding_chunks_entry ON embedding_chunks(entry_id);
CREATE INDEX IF NOT EXISTS idx_embedding_chunks_date ON embedding_chunks(entry_date);

CREATE TABLE IF NOT EXISTS journal_insights (
    id TEXT PRIMARY KEY,
    entry_id TEXT NOT NULL,
    entry_date TEXT NOT NULL,
    insight_type TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_insights_entry ON journal_insights(entry_id);
CREATE INDEX IF NOT EXISTS idx_insights_type ON journal_insights(insight_type);
CREATE INDEX IF NOT EXISTS idx_insights_date ON journal_insights(entry_date);

CREATE TABLE IF NOT EXISTS analytics_queue (
    id TEXT PRIMARY KEY,
    entry_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    retry_count INTEGER NOT NULL DEFAULT 0,
    error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_analytics_queue_entry ON analytics_queue(entry_id);
CREATE INDEX IF NOT EXISTS idx_analytics_queue_status ON analytics_queue(status);
"""


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "database is locked" in message or "database table is locked" in message or "busy" in message


class JournalDatabase:
    """Explicit storage session: open once, pass around, close on shutdown."""

    def __init__(self, db_path: str, lock_retries: int = 10, lock_base_delay: float = 0.04):
        self.db_path = db_path
        self.lock_retries = lock_retries
        self.lock_base_delay = lock_base_delay
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self.conn is not None

    async def open(self) -> None:
        if self.conn is not None:
            return
        self.conn = await asyncio.to_thread(self._connect)
        logger.debug("Opened journal database at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None: transactions are opened explicitly in execute_batch
        conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        if self.db_path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        return conn

    async def close(self) -> None:
        if self.conn is None:
            return
        async with self._lock:
            conn, self.conn = self.conn, None
            await asyncio.to_thread(conn.close)
        logger.debug("Closed journal database at %s", self.db_path)

    async def __aenter__(self) -> "JournalDatabase":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def select(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        def run(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
            return [dict(row) for row in conn.execute(query, tuple(params)).fetchall()]

        return await self._run(run)

    async def execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Run one write statement and return the number of rows affected."""

        def run(conn: sqlite3.Connection) -> int:
            return conn.execute(query, tuple(params)).rowcount

        return await self._run(run)

    async def execute_batch(self, statements: Sequence[Statement]) -> None:
        """Run several statements in one IMMEDIATE transaction."""
        if not statements:
            return

        def run(conn: sqlite3.Connection) -> None:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for query, params in statements:
                    conn.execute(query, tuple(params))
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

        await self._run(run)

    async def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        async with self._lock:
            conn = self.conn
            if conn is None:
                raise RuntimeError("Journal database session is not open")
            for attempt in range(self.lock_retries + 1):
                try:
                    return await asyncio.to_thread(operation, conn)
                except sqlite3.OperationalError as exc:
                    if not _is_lock_error(exc):
                        raise
                    if attempt == self.lock_retries:
                        raise StorageLockError(
                            f"Database still locked after {self.lock_retries} retries"
                        ) from exc
                    delay = self.lock_base_delay * (attempt + 1)
                    logger.debug("Database locked, retry %d in %.2fs", attempt + 1, delay)
                    await asyncio.sleep(delay)
        raise AssertionError("unreachable")
