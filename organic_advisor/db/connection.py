"""
SQLite connection management for the record store.

Two entry points:

  ``get_connection(db_path, ...)``   raw path / pragma arguments
  ``open_database(config)``          the same, driven by ``DatabaseConfig``

Both yield a connection with ``sqlite3.Row`` rows, foreign keys ON, the busy
timeout set, and WAL enabled for file databases.  The connection commits on
clean exit, rolls back on any exception, and is always closed.

Candidate retrieval filters list-valued columns with the JSON1 functions, so
every new connection checks that this SQLite build has them.

Usage::

    from organic_advisor.db.connection import open_database

    with open_database(config.database) as conn:
        conn.execute("SELECT count(*) FROM candidates")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator

if TYPE_CHECKING:
    from organic_advisor.config import DatabaseConfig

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Yield a configured SQLite connection.

    Args:
        db_path: Database file; parent directories are created.  ``":memory:"``
            is accepted but lives only as long as this connection.
        wal_mode: Enable WAL journal mode (ignored for ``":memory:"``).
        busy_timeout_ms: How long to wait on a locked database.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened, is locked,
            or lacks the JSON1 functions.
    """
    in_memory = db_path == MEMORY_DB
    if not in_memory:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row
    try:
        _prepare(conn, wal_mode=wal_mode and not in_memory, busy_timeout_ms=busy_timeout_ms)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def open_database(config: "DatabaseConfig") -> Generator[sqlite3.Connection, None, None]:
    """``get_connection`` with the path and pragmas taken from ``config``."""
    with get_connection(
        config.db_path,
        wal_mode=config.wal_mode,
        busy_timeout_ms=config.busy_timeout_ms,
    ) as conn:
        yield conn


def _prepare(conn: sqlite3.Connection, wal_mode: bool, busy_timeout_ms: int) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    if wal_mode:
        conn.execute("PRAGMA journal_mode = WAL;")
    try:
        conn.execute("SELECT json_array_length('[]');")
    except sqlite3.OperationalError as exc:
        logger.error("SQLite %s was built without JSON1", sqlite3.sqlite_version)
        raise sqlite3.OperationalError(
            f"SQLite {sqlite3.sqlite_version} lacks the JSON1 functions the catalog needs."
        ) from exc
