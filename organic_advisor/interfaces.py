"""
Collaborator protocols the recommendation service depends on.

``CandidateStore`` and ``UserRecordSource`` are synchronous: the service runs
them through ``asyncio.to_thread`` with a timeout.  ``SqliteRecordStore``
implements both; tests substitute in-memory fakes.  The async
``EnrichmentCollaborator`` protocol lives beside ``attempt_enrichment``.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from organic_advisor.models.action import ActionFeedback, ActionInstance, CandidateRating
from organic_advisor.models.candidate import Candidate, CandidateFilter
from organic_advisor.taxonomy.crop_taxonomy import CandidateCategory


class CandidateStore(Protocol):
    def fetch_candidates(self, flt: CandidateFilter) -> list[Candidate]: ...

    def get_candidate(self, candidate_id: str) -> Optional[Candidate]: ...

    def save_action_instance(self, user_id: str, action: ActionInstance) -> None: ...

    def mark_completed(self, action_id: str, feedback: ActionFeedback) -> bool: ...

    def rate_candidate(self, candidate_id: str, user_id: str, rating: CandidateRating) -> float: ...

    def candidate_usage(self, candidate_id: str) -> Mapping[str, Any]: ...

    def get_open_action(self, user_id: str, context_day: date) -> Optional[ActionInstance]: ...


class UserRecordSource(Protocol):
    def load_profile(self, user_id: str) -> Optional[Mapping[str, Any]]: ...

    def load_fields(self, user_id: str) -> Sequence[Mapping[str, Any]]: ...

    def load_recent_actions(self, user_id: str, limit: int) -> Sequence[Mapping[str, Any]]: ...


class CandidateQuery(BaseModel):
    """Explicit browse / search query (no user context involved)."""

    model_config = ConfigDict(frozen=True)

    crop: Optional[str] = None
    issues: list[str] = Field(default_factory=list)
    category: Optional[CandidateCategory] = None

    @field_validator("crop")
    @classmethod
    def normalise_crop(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v and v.strip() else None

    @field_validator("issues")
    @classmethod
    def normalise_issues(cls, v: list[str]) -> list[str]:
        return [i.strip().lower() for i in v if i and i.strip()]
