"""
SQLite-backed record store: the reference ``CandidateStore`` and
``UserRecordSource``.

Every method opens its own short-lived connection via ``get_connection()``,
commits on success, and closes.  Nothing is shared between calls, so the
store can be driven from ``asyncio.to_thread`` worker threads.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from organic_advisor.config import DatabaseConfig
from organic_advisor.db.connection import get_connection
from organic_advisor.db.repositories.action_repo import ActionRepository
from organic_advisor.db.repositories.candidate_repo import CandidateRepository
from organic_advisor.db.repositories.user_repo import UserRepository
from organic_advisor.db.schema import apply_schema
from organic_advisor.models.action import ActionFeedback, ActionInstance, CandidateRating
from organic_advisor.models.candidate import Candidate, CandidateFilter

logger = logging.getLogger(__name__)


class SqliteRecordStore:
    """Catalog, user records, and action history in one SQLite file."""

    def __init__(self, db_path: str, wal_mode: bool = True, busy_timeout_ms: int = 5000) -> None:
        if db_path == ":memory:":
            raise ValueError("SqliteRecordStore needs a file path; ':memory:' does not persist between calls.")
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "SqliteRecordStore":
        return cls(config.db_path, config.wal_mode, config.busy_timeout_ms)

    def _connect(self):
        return get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms)

    def initialize(self) -> None:
        with self._connect() as conn:
            apply_schema(conn)

    # ── Catalog ────────────────────────────────────────────────────────────────

    def upsert_candidates(self, candidates: Iterable[Candidate]) -> int:
        n = 0
        with self._connect() as conn:
            repo = CandidateRepository(conn)
            for candidate in candidates:
                repo.upsert(candidate)
                n += 1
        return n

    def fetch_candidates(self, flt: CandidateFilter) -> list[Candidate]:
        with self._connect() as conn:
            return CandidateRepository(conn).fetch(flt)

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        with self._connect() as conn:
            return CandidateRepository(conn).get(candidate_id)

    def rate_candidate(self, candidate_id: str, user_id: str, rating: CandidateRating) -> float:
        with self._connect() as conn:
            return CandidateRepository(conn).rate(candidate_id, user_id, rating)

    def candidate_usage(self, candidate_id: str) -> dict[str, Any]:
        """Usage and feedback counters for one candidate (see ``CandidateEffectiveness``)."""
        with self._connect() as conn:
            total, completed = ActionRepository(conn).usage_counts(candidate_id)
            usage: dict[str, Any] = {"total_usages": total, "completed_usages": completed}
            usage.update(CandidateRepository(conn).feedback_summary(candidate_id))
        return usage

    # ── Actions ────────────────────────────────────────────────────────────────

    def save_action_instance(self, user_id: str, action: ActionInstance) -> None:
        with self._connect() as conn:
            ActionRepository(conn).save(user_id, action)

    def get_open_action(self, user_id: str, context_day: date) -> Optional[ActionInstance]:
        with self._connect() as conn:
            return ActionRepository(conn).get_open(user_id, context_day)

    def mark_completed(self, action_id: str, feedback: ActionFeedback) -> bool:
        with self._connect() as conn:
            return ActionRepository(conn).mark_completed(action_id, feedback)

    # ── User records ───────────────────────────────────────────────────────────

    def save_profile(self, user_id: str, profile: Mapping[str, Any]) -> None:
        with self._connect() as conn:
            UserRepository(conn).upsert_profile(user_id, profile)

    def add_field(self, user_id: str, field: Mapping[str, Any]) -> int:
        with self._connect() as conn:
            return UserRepository(conn).add_field(user_id, field)

    def load_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        with self._connect() as conn:
            return UserRepository(conn).get_profile(user_id)

    def load_fields(self, user_id: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            return UserRepository(conn).get_fields(user_id)

    def load_recent_actions(self, user_id: str, limit: int) -> list[dict[str, Any]]:
        with self._connect() as conn:
            return ActionRepository(conn).recent_for_user(user_id, limit)
