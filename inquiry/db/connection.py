"""SQLite connection factory for the document store.

Usage::

    from inquiry.db.connection import get_connection

    with get_connection() as conn:
        cursor = conn.execute("SELECT 1")
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from inquiry.config import settings

# Serialises writers sharing one connection across threads (the API shares a
# single connection between request handlers).
_write_lock = threading.RLock()


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Open and configure a SQLite connection.

    Steps performed on every new connection:
    1. Enable ``PRAGMA foreign_keys = ON``.
    2. Switch to WAL journal mode for concurrent readers.

    Args:
        db_path: Override the DB path.  Defaults to ``settings.db_path``.

    Returns:
        A configured :class:`sqlite3.Connection` with ``row_factory`` set to
        :class:`sqlite3.Row` so columns can be accessed by name.
    """
    path = db_path or settings.db_path

    # Create parent directory if needed (no-op for `:memory:`)
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")

    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a read-modify-write sequence under a write lock.

    ``BEGIN IMMEDIATE`` takes the database write lock before the first read,
    so two writers updating the same document are serialised rather than
    overwriting each other.  Commits on success, rolls back on any error.
    """
    with _write_lock:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()


@contextmanager
def write_scope(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Commit on exit unless an enclosing :func:`transaction` owns the commit."""
    with _write_lock:
        if conn.in_transaction:
            yield conn
            return
        with conn:
            yield conn
