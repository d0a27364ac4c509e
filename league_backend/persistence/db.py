"""
Database connection, transactions and initialization.

Connections run in autocommit mode (isolation_level=None): every statement outside
transaction() commits on its own. Multi-statement writes that must be all-or-nothing
go through transaction(), which takes SQLite's write lock up front (BEGIN IMMEDIATE)
so concurrent writers are serialized instead of interleaved.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .schema import all_schema_sql

logger = logging.getLogger(__name__)

# Seconds a writer waits for the lock held by a concurrent transaction
BUSY_TIMEOUT_SECONDS = 10.0


def get_connection(db_path: str | Path) -> sqlite3.Connection:
    """
    Return a new SQLite connection.
    Use as context manager or ensure close() is called.
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(path),
        timeout=BUSY_TIMEOUT_SECONDS,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block as one atomic unit. Rolls back and re-raises on any exception."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def init_db(db_path: str | Path) -> None:
    """Create or ensure all tables exist."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(path)
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(all_schema_sql())
        logger.debug("Database schema ensured", extra={"db_path": str(path)})
    finally:
        conn.close()
