"""
Materialized action models and caller-facing result types.

``ActionInstance`` is the concrete recommendation handed to the caller and
persisted (best-effort) by the store.  It is frozen: once materialized, an
action is a value.  Its completion / feedback lifecycle belongs to the store
(``mark_completed``), not to this model.

Source invariant: a ``catalog`` action references exactly one candidate via
``source_candidate_id``; an ``enrichment`` action references none.

``DailyActionResult`` wraps the outcome of ``get_daily_action``: either an
action, or an explicit "unavailable" status with a machine-readable reason so
callers can tell an empty catalog from a transient error.
"""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from organic_advisor.taxonomy.crop_taxonomy import (
    ActionSource,
    CandidateCategory,
    DifficultyLevel,
    Urgency,
)

# Fixed namespace so action ids are reproducible across processes.
ACTION_ID_NAMESPACE = uuid.UUID("6f1c2a7e-3b5d-4c8e-9a41-0d2e7b9c5f13")


def make_action_id(user_id: str, source_ref: str, context_day: date) -> str:
    """Return a deterministic action id for ``(user, source, day)``."""
    return str(uuid.uuid5(ACTION_ID_NAMESPACE, f"{user_id}|{source_ref}|{context_day.isoformat()}"))


class ResolvedIngredient(BaseModel):
    """An ingredient line after matching against the user's materials.

    Attributes:
        name:                     Catalog ingredient name.
        quantity:                 Catalog default quantity (kept either way).
        from_available_materials: ``True`` when the user already has it.
        matched_material:         The user's material that matched, if any.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    quantity: str
    from_available_materials: bool = False
    matched_material: Optional[str] = None


class ActionInstance(BaseModel):
    """A concrete, presentable organic action for one user and day.

    Attributes:
        action_id:                Deterministic UUID5 (see ``make_action_id``).
        user_id:                  Recipient.
        title:                    Headline, e.g. ``"Today's Organic Action: ..."``.
        description:              Two or three sentences of context.
        category:                 Treatment category.
        ingredients:              Resolved ingredient lines.
        steps:                    Ordered steps.
        urgency:                  ``immediate`` / ``today`` / ``this_week``.
        estimated_cost_savings:   Savings vs. the commercial alternative.
        estimated_time_to_result: Free text, e.g. ``"24-48 hours"``.
        organic_compliance:       0–100.
        source:                   ``catalog`` or ``enrichment``.
        source_candidate_id:      Catalog candidate id; ``None`` for enrichment.
        match_score:              Ranker score of the source candidate.
        relevance_reason:         Why this action was chosen.
        difficulty_level:         ``easy`` / ``medium`` / ``hard``.
        expected_yield_increase:  Banded estimate, e.g. ``"15-25%"``.
        context_day:              Day the action was generated for.
        generated_at:             UTC timestamp of materialization.
    """

    model_config = ConfigDict(frozen=True)

    action_id: str
    user_id: str
    title: str
    description: str
    category: CandidateCategory
    ingredients: list[ResolvedIngredient] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
    urgency: Urgency
    estimated_cost_savings: float
    estimated_time_to_result: str
    organic_compliance: float = 100.0
    source: ActionSource
    source_candidate_id: Optional[str] = None
    match_score: Optional[float] = None
    relevance_reason: str = ""
    difficulty_level: DifficultyLevel = DifficultyLevel.EASY
    expected_yield_increase: str = ""
    context_day: date
    generated_at: datetime

    @field_validator("title", "description")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty.")
        return v.strip()

    @field_validator("estimated_cost_savings")
    @classmethod
    def validate_savings(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError(f"estimated_cost_savings must be non-negative, got {v}.")
        return v

    @field_validator("organic_compliance")
    @classmethod
    def validate_compliance(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"organic_compliance must be in [0, 100], got {v}.")
        return v

    @model_validator(mode="after")
    def validate_source_reference(self) -> "ActionInstance":
        if self.source == ActionSource.CATALOG and not self.source_candidate_id:
            raise ValueError("catalog actions must reference a source candidate.")
        if self.source == ActionSource.ENRICHMENT and self.source_candidate_id is not None:
            raise ValueError("enrichment actions must not reference a candidate.")
        return self

    def without_timestamp(self) -> dict:
        """Dump everything except ``generated_at`` (for determinism checks)."""
        return self.model_dump(exclude={"generated_at"})


class ActionFeedback(BaseModel):
    """Completion feedback for a materialized action."""

    model_config = ConfigDict(frozen=True)

    rating: Optional[int] = None
    notes: Optional[str] = None
    completed_at: datetime

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= 5:
            raise ValueError(f"rating must be in [1, 5], got {v}.")
        return v


class CandidateRating(BaseModel):
    """A user's rating of a catalog candidate (all scores 1–5)."""

    model_config = ConfigDict(frozen=True)

    rating: int
    effectiveness: int
    ease_of_use: int
    cost_effectiveness: int
    feedback_text: Optional[str] = None
    would_recommend: bool = True

    @field_validator("rating", "effectiveness", "ease_of_use", "cost_effectiveness")
    @classmethod
    def validate_range(cls, v: int) -> int:
        if not 1 <= v <= 5:
            raise ValueError(f"scores must be in [1, 5], got {v}.")
        return v


class CandidateEffectiveness(BaseModel):
    """How a catalog candidate has performed in the field.

    Attributes:
        total_usages:     Actions materialized from this candidate.
        completed_usages: Of those, how many users marked completed.
        feedback_count:   Number of users who rated the candidate.
        average_rating:   Mean overall rating (1–5), ``None`` without feedback.
        recommend_rate:   Percentage of raters who would recommend it.
    """

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    name: str
    category: CandidateCategory
    effectiveness_rating: float
    total_usages: int = Field(default=0, ge=0)
    completed_usages: int = Field(default=0, ge=0)
    feedback_count: int = Field(default=0, ge=0)
    average_rating: Optional[float] = None
    recommend_rate: Optional[float] = None

    @property
    def success_rate(self) -> Optional[float]:
        """Percentage of usages that were completed, ``None`` if never used."""
        if self.total_usages == 0:
            return None
        return round(100.0 * self.completed_usages / self.total_usages, 1)


class DailyActionResult(BaseModel):
    """Caller-facing outcome of ``get_daily_action``.

    Attributes:
        status:  ``"ok"`` with ``action`` set, or ``"unavailable"``.
        action:  The recommended action when ``status == "ok"``.
        reason:  Machine-readable reason when unavailable (``"empty_catalog"``).
        message: Human-readable explanation when unavailable.
    """

    model_config = ConfigDict(frozen=True)

    status: Literal["ok", "unavailable"]
    action: Optional[ActionInstance] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @model_validator(mode="after")
    def validate_status_payload(self) -> "DailyActionResult":
        if self.status == "ok" and self.action is None:
            raise ValueError("status 'ok' requires an action.")
        if self.status == "unavailable" and not self.reason:
            raise ValueError("status 'unavailable' requires a reason.")
        return self

    @classmethod
    def ok(cls, action: ActionInstance) -> "DailyActionResult":
        return cls(status="ok", action=action)

    @classmethod
    def unavailable(cls, reason: str, message: str) -> "DailyActionResult":
        return cls(status="unavailable", reason=reason, message=message)
