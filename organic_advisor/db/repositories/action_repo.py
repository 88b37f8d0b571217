"""
Repository for materialized actions and their completion state.

The full ``ActionInstance`` is stored as a JSON ``payload``; the indexed
columns (user, candidate, day, completion) exist for lookups only.
Saving the same ``action_id`` twice refreshes the payload but keeps any
completion already recorded.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from pydantic import ValidationError

from organic_advisor.db.repositories.base import BaseRepository
from organic_advisor.models.action import ActionFeedback, ActionInstance

logger = logging.getLogger(__name__)


class ActionRepository(BaseRepository):
    """Read/write access to the ``action_instances`` table."""

    def save(self, user_id: str, action: ActionInstance) -> None:
        self.execute(
            """
            INSERT INTO action_instances (
                action_id, user_id, candidate_id, source, context_day, payload
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(action_id) DO UPDATE SET
                payload = excluded.payload;
            """,
            (
                action.action_id,
                user_id,
                action.source_candidate_id,
                action.source.value,
                action.context_day.isoformat(),
                action.model_dump_json(),
            ),
        )

    def get_open(self, user_id: str, context_day: date) -> Optional[ActionInstance]:
        """Return the newest uncompleted action for ``user_id`` on ``context_day``."""
        row = self.fetchone(
            """
            SELECT payload FROM action_instances
            WHERE user_id = ? AND context_day = ? AND completed = 0
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1;
            """,
            (user_id, context_day.isoformat()),
        )
        return self._load(row["payload"]) if row is not None else None

    def mark_completed(self, action_id: str, feedback: ActionFeedback) -> bool:
        """Record completion.  Returns ``False`` if the action is unknown."""
        cur = self.execute(
            """
            UPDATE action_instances
            SET completed = 1, completed_at = ?, rating = ?, notes = ?
            WHERE action_id = ?;
            """,
            (
                feedback.completed_at.isoformat(),
                feedback.rating,
                feedback.notes,
                action_id,
            ),
        )
        return cur.rowcount > 0

    def usage_counts(self, candidate_id: str) -> tuple[int, int]:
        """Return ``(total, completed)`` actions materialized from ``candidate_id``."""
        row = self.fetchone(
            """
            SELECT COUNT(*) AS total, COALESCE(SUM(completed), 0) AS done
            FROM action_instances
            WHERE candidate_id = ?;
            """,
            (candidate_id,),
        )
        if row is None:
            return 0, 0
        return int(row["total"]), int(row["done"])

    def recent_for_user(self, user_id: str, limit: int) -> list[dict[str, Any]]:
        """Most recent actions for ``user_id``, newest first, as plain dicts."""
        rows = self.fetchall(
            """
            SELECT action_id, candidate_id, source, context_day, completed
            FROM action_instances
            WHERE user_id = ?
            ORDER BY context_day DESC, created_at DESC, rowid DESC
            LIMIT ?;
            """,
            (user_id, limit),
        )
        return [dict(r) for r in rows]

    def _load(self, payload: str) -> Optional[ActionInstance]:
        try:
            return ActionInstance.model_validate_json(payload)
        except ValidationError as exc:
            logger.warning("Discarding unreadable action payload: %s", exc)
            return None
