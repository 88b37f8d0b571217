"""
Shared pytest fixtures for the Organic Advisor test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the schema
    applied. Created anew for each test that requests it.
  - ``make_candidate``: Factory for valid ``Candidate`` objects.
  - ``maize_spray`` / ``sample_catalog``: The reference catalog entries.
  - ``maize_context``: A maize farmer with an armyworm problem in summer.
  - ``FakeStore`` / ``fake_store``: In-memory ``CandidateStore`` +
    ``UserRecordSource`` with failure injection.
  - ``fixed_clock``: Deterministic UTC clock (2025-07-15 08:00).
"""

from __future__ import annotations

import sqlite3
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Generator, Optional

import pytest

from organic_advisor.config import PolicyConfig
from organic_advisor.db.schema import apply_schema
from organic_advisor.models.action import ActionFeedback, ActionInstance, CandidateRating
from organic_advisor.models.candidate import Candidate, CandidateFilter
from organic_advisor.models.context import UserContext
from organic_advisor.taxonomy.crop_taxonomy import CROP_WILDCARDS, Season

NOW = datetime(2025, 7, 15, 8, 0, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


# ── Sample domain object factories ────────────────────────────────────────────

def _candidate(**overrides: Any) -> Candidate:
    base: dict[str, Any] = {
        "candidate_id": "generic-remedy",
        "name": "Generic remedy",
        "category": "fertilizer",
        "target_crops": ["beans"],
        "target_issues": ["slow growth"],
        "ingredients": [{"name": "compost", "quantity": "1 kg"}],
        "instructions": ["Apply at the base"],
        "effectiveness_rating": 3.0,
        "cost_per_unit": 1.0,
        "organic_compliance": 100.0,
        "seasonality": [],
        "verified": True,
    }
    base.update(overrides)
    return Candidate(**base)


@pytest.fixture
def make_candidate() -> Callable[..., Candidate]:
    """Factory: ``make_candidate(candidate_id="x", effectiveness_rating=4.0)``."""
    return _candidate


@pytest.fixture
def maize_spray() -> Candidate:
    """Verified maize armyworm spray: scores 99 for a maize/armyworm farmer."""
    return _candidate(
        candidate_id="garlic-chili-maize-spray",
        name="Garlic-chili maize spray",
        category="pesticide",
        target_crops=["maize"],
        target_issues=["armyworm", "fall armyworm"],
        ingredients=[
            {"name": "garlic", "quantity": "10 cloves"},
            {"name": "hot chili", "quantity": "5 pods"},
            {"name": "water", "quantity": "2 L"},
        ],
        instructions=["Crush garlic and chili", "Soak overnight", "Strain and spray"],
        effectiveness_rating=4.5,
        cost_per_unit=3.0,
        organic_compliance=100.0,
        seasonality=["summer"],
        time_to_result="24-48 hours",
        purpose="Repels armyworm larvae",
    )


@pytest.fixture
def sample_catalog(maize_spray: Candidate) -> list[Candidate]:
    return [
        maize_spray,
        _candidate(
            candidate_id="neem-leaf-extract",
            name="Neem leaf extract",
            category="pesticide",
            target_crops=["all crops"],
            target_issues=["aphids", "caterpillars"],
            effectiveness_rating=4.2,
            cost_per_unit=2.0,
        ),
        _candidate(
            candidate_id="compost-tea",
            name="Compost tea",
            category="fertilizer",
            target_crops=["all"],
            target_issues=["nutrient deficiency"],
            effectiveness_rating=4.0,
        ),
        _candidate(
            candidate_id="sorghum-ash-dust",
            name="Sorghum ash dust",
            category="pesticide",
            target_crops=["sorghum"],
            target_issues=["stem borer"],
            effectiveness_rating=3.6,
            seasonality=["winter"],
        ),
        _candidate(
            candidate_id="unverified-tobacco",
            name="Tobacco infusion",
            category="pesticide",
            target_crops=["maize"],
            target_issues=["armyworm"],
            effectiveness_rating=5.0,
            verified=False,
        ),
    ]


@pytest.fixture
def maize_context() -> UserContext:
    return UserContext(
        user_id="farmer-1",
        crops=["maize"],
        issues=["armyworm"],
        region="Nakuru",
        season=Season.SUMMER,
        as_of=TODAY,
        available_materials=["Garlic", "water"],
    )


@pytest.fixture
def policy() -> PolicyConfig:
    return PolicyConfig()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: NOW


# ── In-memory store ───────────────────────────────────────────────────────────

class FakeStore:
    """In-memory ``CandidateStore`` + ``UserRecordSource``.

    Knobs:
      fail_saves        save_action_instance raises RuntimeError.
      fetch_delay_s     fetch_candidates sleeps (blocks its worker thread).
      ignore_filters    fetch_candidates returns every candidate unfiltered.
    """

    def __init__(self, candidates: Optional[list[Candidate]] = None) -> None:
        self.candidates: dict[str, Candidate] = {c.candidate_id: c for c in candidates or []}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.fields: dict[str, list[dict[str, Any]]] = {}
        self.actions: dict[str, tuple[str, ActionInstance]] = {}
        self.completed: dict[str, ActionFeedback] = {}
        self.ratings: dict[tuple[str, str], CandidateRating] = {}
        self.fetch_calls: list[CandidateFilter] = []
        self.fail_saves = False
        self.fetch_delay_s = 0.0
        self.ignore_filters = False

    # CandidateStore

    def fetch_candidates(self, flt: CandidateFilter) -> list[Candidate]:
        self.fetch_calls.append(flt)
        if self.fetch_delay_s:
            time.sleep(self.fetch_delay_s)
        if self.ignore_filters:
            return list(self.candidates.values())
        return [c for c in self.candidates.values() if self._matches(c, flt)]

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        return self.candidates.get(candidate_id)

    def save_action_instance(self, user_id: str, action: ActionInstance) -> None:
        if self.fail_saves:
            raise RuntimeError("disk full")
        self.actions[action.action_id] = (user_id, action)

    def mark_completed(self, action_id: str, feedback: ActionFeedback) -> bool:
        if action_id not in self.actions:
            return False
        self.completed[action_id] = feedback
        return True

    def rate_candidate(self, candidate_id: str, user_id: str, rating: CandidateRating) -> float:
        self.ratings[(candidate_id, user_id)] = rating
        return float(rating.effectiveness)

    def candidate_usage(self, candidate_id: str) -> dict[str, Any]:
        used = [aid for aid, (_, a) in self.actions.items() if a.source_candidate_id == candidate_id]
        ratings = [r for (cid, _), r in self.ratings.items() if cid == candidate_id]
        return {
            "total_usages": len(used),
            "completed_usages": sum(1 for aid in used if aid in self.completed),
            "feedback_count": len(ratings),
            "average_rating": sum(r.rating for r in ratings) / len(ratings) if ratings else None,
            "recommend_rate": (
                100.0 * sum(r.would_recommend for r in ratings) / len(ratings) if ratings else None
            ),
        }

    def get_open_action(self, user_id: str, context_day: date) -> Optional[ActionInstance]:
        for uid, action in self.actions.values():
            if uid == user_id and action.context_day == context_day and action.action_id not in self.completed:
                return action
        return None

    # UserRecordSource

    def load_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.profiles.get(user_id)

    def load_fields(self, user_id: str) -> list[dict[str, Any]]:
        return self.fields.get(user_id, [])

    def load_recent_actions(self, user_id: str, limit: int) -> list[dict[str, Any]]:
        rows = [
            {"action_id": a.action_id, "candidate_id": a.source_candidate_id}
            for uid, a in reversed(list(self.actions.values()))
            if uid == user_id
        ]
        return rows[:limit]

    @staticmethod
    def _matches(c: Candidate, flt: CandidateFilter) -> bool:
        if not c.verified:
            return False
        if flt.category is not None and c.category != flt.category:
            return False
        if flt.season is not None and c.seasonality and flt.season not in c.seasonality:
            return False
        if flt.crop is not None:
            crops = {x.lower() for x in c.target_crops}
            if flt.crop not in crops and not crops & CROP_WILDCARDS:
                return False
        return True


@pytest.fixture
def fake_store(sample_catalog: list[Candidate]) -> FakeStore:
    store = FakeStore(sample_catalog)
    store.profiles["farmer-1"] = {
        "region": "Nakuru",
        "crops": ["maize"],
        "issues": ["armyworm"],
        "available_materials": ["Garlic", "water"],
    }
    return store


@pytest.fixture
def store_factory() -> Callable[..., FakeStore]:
    """Build a ``FakeStore`` over any candidate list: ``store_factory([...])``."""
    return FakeStore
