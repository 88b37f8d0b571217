"""
Action materializer: turns the top-ranked Candidate into an ActionInstance.

Pure and idempotent: the same ``(candidate, context, policy, score)`` always
yields the same ActionInstance apart from ``generated_at``.  The action id is
a UUID5 of (user, candidate, context day), so re-materializing the same
recommendation on the same day produces the same id.

Derived fields
--------------
urgency:
    ``immediate`` if any candidate target issue contains an urgent term,
    ``today`` if any contains a moderate term, otherwise ``this_week``.
    Terms and issues are compared after lower-casing and folding ``_``/``-``
    to spaces ("pest_outbreak" matches "pest outbreak").

estimated_cost_savings:
    commercial_baselines[category] - cost_per_unit, floored at
    min_cost_savings, rounded to 2 decimals.

estimated_time_to_result:
    Catalog value, else default_time_to_result[category].

difficulty_level:
    +2 preparation > 24h, +1 preparation > 1h, +1 more than 5 ingredients,
    +1 more than 6 steps, +1 more than 2 safety notes.
    0–1 easy, 2–3 medium, 4+ hard.

expected_yield_increase:
    Banded from effectiveness rating (>= 4.5 → "15-25%", ... < 3.0 → "3-8%").
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from organic_advisor.config import PolicyConfig
from organic_advisor.models.action import ActionInstance, ResolvedIngredient, make_action_id
from organic_advisor.models.candidate import Candidate
from organic_advisor.models.context import UNKNOWN_REGION, UserContext
from organic_advisor.recommendations.ranker import ScoredCandidate
from organic_advisor.taxonomy.crop_taxonomy import (
    MIXED_CROPS,
    ActionSource,
    CandidateCategory,
    DifficultyLevel,
    Urgency,
)
from organic_advisor.utils.time_utils import utcnow

# (min effectiveness rating, yield band), checked top-down.
_YIELD_BANDS: tuple[tuple[float, str], ...] = (
    (4.5, "15-25%"),
    (4.0, "10-20%"),
    (3.5, "8-15%"),
    (3.0, "5-12%"),
)
_YIELD_FLOOR_BAND = "3-8%"


def materialize_action(
    candidate:    Candidate,
    context:      UserContext,
    policy:       PolicyConfig,
    scored:       ScoredCandidate | None = None,
    generated_at: datetime | None = None,
) -> ActionInstance:
    """Materialize ``candidate`` into a concrete action for ``context``.

    Args:
        candidate:    The top-ranked candidate.
        context:      The requesting user's context.
        policy:       Baselines, vocabularies, and default times.
        scored:       The candidate's ranking entry, for score and reason.
        generated_at: Timestamp to stamp; defaults to now (UTC).

    Returns:
        A fully populated catalog-sourced ActionInstance.
    """
    return ActionInstance(
        action_id=make_action_id(context.user_id, candidate.candidate_id, context.as_of),
        user_id=context.user_id,
        title=f"Today's Organic Action: {candidate.name}",
        description=_describe(candidate, context),
        category=candidate.category,
        ingredients=resolve_ingredients(candidate, context.available_materials),
        steps=list(candidate.instructions) or ["Follow the organic recipe instructions"],
        urgency=determine_urgency(candidate.target_issues, policy),
        estimated_cost_savings=estimate_cost_savings(
            candidate.category, candidate.cost_per_unit, policy
        ),
        estimated_time_to_result=(
            candidate.time_to_result
            or policy.default_time_to_result[candidate.category.value]
        ),
        organic_compliance=candidate.organic_compliance,
        source=ActionSource.CATALOG,
        source_candidate_id=candidate.candidate_id,
        match_score=scored.match_score if scored is not None else None,
        relevance_reason=scored.reason if scored is not None else "",
        difficulty_level=estimate_difficulty(candidate),
        expected_yield_increase=expected_yield_increase(candidate.effectiveness_rating),
        context_day=context.as_of,
        generated_at=generated_at or utcnow(),
    )


def resolve_ingredients(
    candidate:           Candidate,
    available_materials: Iterable[str],
) -> list[ResolvedIngredient]:
    """Match catalog ingredients against the user's available materials.

    A match is a case-insensitive substring in either direction.  The catalog
    quantity is always kept; only the availability marker changes.
    """
    materials = [m for m in available_materials if m and m.strip()]
    resolved: list[ResolvedIngredient] = []
    for spec in candidate.ingredients:
        name = spec.name.lower()
        match = next(
            (m for m in materials if m.strip().lower() in name or name in m.strip().lower()),
            None,
        )
        resolved.append(
            ResolvedIngredient(
                name=spec.name,
                quantity=spec.quantity,
                from_available_materials=match is not None,
                matched_material=match,
            )
        )
    return resolved


def determine_urgency(target_issues: Iterable[str], policy: PolicyConfig) -> Urgency:
    """Classify urgency from a candidate's target issues.

    Rules (evaluated in order, first match wins):
        1. IMMEDIATE : any issue contains an urgent term
        2. TODAY     : any issue contains a moderate term
        3. THIS_WEEK : everything else (including no issues)
    """
    issues = [_fold(i) for i in target_issues if i]
    if _any_term(issues, policy.urgent_terms):
        return Urgency.IMMEDIATE
    if _any_term(issues, policy.moderate_terms):
        return Urgency.TODAY
    return Urgency.THIS_WEEK


def estimate_cost_savings(
    category:      CandidateCategory,
    cost_per_unit: float,
    policy:        PolicyConfig,
) -> float:
    """Savings versus the commercial alternative, floored at the policy minimum."""
    baseline = policy.commercial_baselines[category.value]
    return round(max(baseline - cost_per_unit, policy.min_cost_savings), 2)


def estimate_difficulty(candidate: Candidate) -> DifficultyLevel:
    score = 0
    if candidate.preparation_time_min > 1440:
        score += 2
    elif candidate.preparation_time_min > 60:
        score += 1
    if len(candidate.ingredients) > 5:
        score += 1
    if len(candidate.instructions) > 6:
        score += 1
    if len(candidate.safety_notes) > 2:
        score += 1

    if score <= 1:
        return DifficultyLevel.EASY
    if score <= 3:
        return DifficultyLevel.MEDIUM
    return DifficultyLevel.HARD


def expected_yield_increase(effectiveness_rating: float) -> str:
    for threshold, band in _YIELD_BANDS:
        if effectiveness_rating >= threshold:
            return band
    return _YIELD_FLOOR_BAND


# ── Helpers ───────────────────────────────────────────────────────────────────

def _describe(candidate: Candidate, context: UserContext) -> str:
    purpose = candidate.purpose.strip().rstrip(".") or f"Organic {candidate.category.value.replace('_', ' ')}"
    crops = ", ".join(context.crops) if context.crops != [MIXED_CROPS] else "crops"
    place = f"{context.region} " if context.region != UNKNOWN_REGION else ""
    return (
        f"{purpose}. Suited to your {place}{crops} this {context.season.value}, "
        f"with an effectiveness rating of {candidate.effectiveness_rating:g}/5."
    )


def _fold(text: str) -> str:
    return text.lower().replace("_", " ").replace("-", " ").strip()


def _any_term(issues: list[str], terms: Iterable[str]) -> bool:
    folded = [_fold(t) for t in terms if t]
    return any(term in issue for issue in issues for term in folded)
