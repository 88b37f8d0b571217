"""
Base repository with shared SQLite helpers.

Repositories receive an open ``sqlite3.Connection`` (normally from
``get_connection()``) and never commit or close it themselves.

Design:
  - No ORM; all SQL is explicit and lives in repository methods.
  - Repositories speak pydantic models or plain dicts, never ``sqlite3.Row``.
  - JSON columns go through ``to_json`` / ``from_json`` so a corrupt value
    degrades to an empty list instead of breaking a whole query.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Optional

logger = logging.getLogger(__name__)

Params = tuple[Any, ...] | dict[str, Any]


class BaseRepository:
    """Shared SQL execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %s", " ".join(sql.split()), params)
        return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()


def to_json(value: Any) -> str:
    """Serialise a list / dict column value."""
    return json.dumps(value, ensure_ascii=False)


def from_json(raw: Optional[str], default: Any = None) -> Any:
    """Deserialise a JSON column, returning ``default`` for NULL or bad JSON."""
    if raw is None:
        return [] if default is None else default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Unparseable JSON column value: %r", raw[:80] if isinstance(raw, str) else raw)
        return [] if default is None else default
