"""
Enrichment request / response shaping.

``build_context_summary`` produces the compact dict handed to a collaborator.
``parse_enriched_action`` turns whatever the collaborator returned into a
validated ``ActionInstance`` or raises ``EnrichmentFailure``; nothing about
the response shape is trusted.

Accepted response shapes
------------------------
- A mapping.
- JSON text, optionally wrapped in ```` ```json ```` fences.

Field mapping
-------------
  title, description, steps       required, non-empty
  category                        parsed leniently; falls back to the hint
  urgency                         high/medium/low → immediate/today/this_week
                                  (native values accepted as-is)
  ingredients                     {name: qty}, list of dicts, or strings
  moneySaved / estimated_cost_savings   coerced, clamped to [0, 1e6];
                                  missing → commercial baseline
  timeToResults / estimated_time_to_result   missing → category default
  preparationTime                 minutes → difficulty
  yieldBoost                      free text
  whyNow / targetProblem          relevance reason
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from organic_advisor.config import PolicyConfig
from organic_advisor.errors import EnrichmentFailure
from organic_advisor.models.action import ActionInstance, ResolvedIngredient, make_action_id
from organic_advisor.models.candidate import coerce_ingredients
from organic_advisor.models.context import UserContext
from organic_advisor.taxonomy.crop_taxonomy import (
    ActionSource,
    CandidateCategory,
    DifficultyLevel,
    Urgency,
    parse_category,
)
from organic_advisor.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

# Source reference used in enrichment action ids (no candidate to point at).
ENRICHMENT_SOURCE_REF = "enrichment"

MAX_SAVINGS = 1_000_000.0

_URGENCY_ALIASES: dict[str, Urgency] = {
    "high":      Urgency.IMMEDIATE,
    "urgent":    Urgency.IMMEDIATE,
    "medium":    Urgency.TODAY,
    "low":       Urgency.THIS_WEEK,
    "immediate": Urgency.IMMEDIATE,
    "today":     Urgency.TODAY,
    "this_week": Urgency.THIS_WEEK,
    "this week": Urgency.THIS_WEEK,
}

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def build_context_summary(
    context:       UserContext,
    category_hint: Optional[CandidateCategory] = None,
) -> dict[str, Any]:
    """Compact, JSON-serialisable view of ``context`` for a collaborator."""
    return {
        "user_id":             context.user_id,
        "region":              context.region,
        "crops":               list(context.crops),
        "primary_crop":        context.primary_crop,
        "issues":              list(context.issues),
        "season":              context.season.value,
        "date":                context.as_of.isoformat(),
        "farm_size_ha":        context.farm_size_ha,
        "available_materials": list(context.available_materials),
        "soil_type":           context.soil_type,
        "category_hint":       category_hint.value if category_hint else None,
    }


def parse_enriched_action(
    raw:           Any,
    context:       UserContext,
    policy:        PolicyConfig,
    category_hint: Optional[CandidateCategory] = None,
    generated_at:  Optional[datetime] = None,
) -> ActionInstance:
    """Validate a collaborator response and build an enrichment action.

    Raises:
        EnrichmentFailure: If the response is not a mapping / JSON object,
            lacks a title, description, or steps, or fails model validation.
    """
    data = _as_mapping(raw)

    title = _text(data.get("title"))
    description = _text(data.get("description"))
    steps = [s.strip() for s in _list(data.get("steps")) if isinstance(s, str) and s.strip()]
    if not title or not description or not steps:
        raise EnrichmentFailure("enrichment response lacks title, description, or steps")

    category = _category(data.get("category"), category_hint)

    try:
        ingredients = [
            ResolvedIngredient(name=spec.name, quantity=spec.quantity)
            for spec in coerce_ingredients(data.get("ingredients"))
        ]
        return ActionInstance(
            action_id=make_action_id(context.user_id, ENRICHMENT_SOURCE_REF, context.as_of),
            user_id=context.user_id,
            title=title,
            description=description,
            category=category,
            ingredients=ingredients,
            steps=steps,
            urgency=_urgency(data.get("urgency")),
            estimated_cost_savings=_savings(data, category, policy),
            estimated_time_to_result=(
                _text(data.get("timeToResults"))
                or _text(data.get("estimated_time_to_result"))
                or policy.default_time_to_result[category.value]
            ),
            organic_compliance=100.0,
            source=ActionSource.ENRICHMENT,
            source_candidate_id=None,
            relevance_reason=(
                _text(data.get("whyNow"))
                or _text(data.get("targetProblem"))
                or f"Generated for your {', '.join(context.crops)}"
            ),
            difficulty_level=_difficulty(data.get("preparationTime")),
            expected_yield_increase=_text(data.get("yieldBoost")),
            context_day=context.as_of,
            generated_at=generated_at or utcnow(),
        )
    except ValidationError as exc:
        raise EnrichmentFailure(f"enrichment response failed validation: {exc}") from exc


# ── Helpers ───────────────────────────────────────────────────────────────────

def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        raise EnrichmentFailure(f"unsupported enrichment response type: {type(raw).__name__}")
    cleaned = _FENCE_RE.sub("", raw).replace("```", "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise EnrichmentFailure(f"enrichment response is not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise EnrichmentFailure("enrichment response JSON is not an object")
    return data


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _category(value: Any, hint: Optional[CandidateCategory]) -> CandidateCategory:
    if isinstance(value, str):
        try:
            return parse_category(value)
        except ValueError:
            logger.debug("Unknown enrichment category %r; using hint", value)
    return hint or CandidateCategory.FERTILIZER


def _urgency(value: Any) -> Urgency:
    if isinstance(value, str):
        return _URGENCY_ALIASES.get(value.strip().lower(), Urgency.THIS_WEEK)
    return Urgency.THIS_WEEK


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return num if math.isfinite(num) else None


def _savings(data: Mapping[str, Any], category: CandidateCategory, policy: PolicyConfig) -> float:
    value = _number(data.get("moneySaved"))
    if value is None:
        value = _number(data.get("estimated_cost_savings"))
    if value is None:
        value = policy.commercial_baselines[category.value]
    return round(min(max(value, 0.0), MAX_SAVINGS), 2)


def _difficulty(prep_minutes: Any) -> DifficultyLevel:
    minutes = _number(prep_minutes)
    if minutes is None or minutes <= 60:
        return DifficultyLevel.EASY
    if minutes <= 1440:
        return DifficultyLevel.MEDIUM
    return DifficultyLevel.HARD
