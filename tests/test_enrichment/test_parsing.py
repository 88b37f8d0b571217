"""
Tests for organic_advisor/enrichment/parsing.py.

What we test
------------
build_context_summary():
  - Carries crops, issues, season, date, materials and the category hint.

parse_enriched_action():
  - Accepts a mapping, plain JSON text, and fenced JSON text.
  - Missing title / description / steps → EnrichmentFailure.
  - Urgency aliases; unknown urgency → this_week.
  - Savings coerced and clamped; missing or not representable as a float
    → commercial baseline.
  - Category falls back to the hint, then fertilizer.
  - Source is enrichment with no candidate reference.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from organic_advisor.enrichment.parsing import (
    MAX_SAVINGS,
    build_context_summary,
    parse_enriched_action,
)
from organic_advisor.errors import EnrichmentFailure
from organic_advisor.taxonomy.crop_taxonomy import (
    ActionSource,
    CandidateCategory,
    DifficultyLevel,
    Urgency,
)

_T0 = datetime(2025, 7, 15, 8, 0, tzinfo=timezone.utc)


def _payload(**overrides) -> dict:
    base = {
        "title": "Neem and garlic spray",
        "description": "Protects your maize from armyworm this week.",
        "urgency": "high",
        "category": "pesticide",
        "targetProblem": "armyworm",
        "ingredients": {"neem leaves": "1 kg", "garlic": "5 cloves"},
        "steps": ["Pound the leaves", "Soak overnight", "Spray at dusk"],
        "preparationTime": 30,
        "yieldBoost": "10-15%",
        "moneySaved": 18,
        "timeToResults": "3 days",
        "whyNow": "Larvae are young and easiest to control now",
    }
    base.update(overrides)
    return base


# ── Context summary ────────────────────────────────────────────────────────────

def test_context_summary(maize_context):
    summary = build_context_summary(maize_context, CandidateCategory.PESTICIDE)
    assert summary["crops"] == ["maize"]
    assert summary["primary_crop"] == "maize"
    assert summary["issues"] == ["armyworm"]
    assert summary["season"] == "summer"
    assert summary["date"] == "2025-07-15"
    assert summary["category_hint"] == "pesticide"
    assert summary["available_materials"] == ["Garlic", "water"]
    json.dumps(summary)  # serialisable


def test_context_summary_without_hint(maize_context):
    assert build_context_summary(maize_context)["category_hint"] is None


# ── Response shapes ────────────────────────────────────────────────────────────

class TestResponseShapes:
    def test_mapping(self, maize_context, policy):
        action = parse_enriched_action(_payload(), maize_context, policy, generated_at=_T0)
        assert action.title == "Neem and garlic spray"
        assert action.source == ActionSource.ENRICHMENT
        assert action.source_candidate_id is None
        assert action.urgency == Urgency.IMMEDIATE
        assert action.estimated_cost_savings == 18.0
        assert action.estimated_time_to_result == "3 days"
        assert action.relevance_reason == "Larvae are young and easiest to control now"
        assert action.expected_yield_increase == "10-15%"
        assert [i.name for i in action.ingredients] == ["neem leaves", "garlic"]
        assert action.context_day == maize_context.as_of

    def test_json_text(self, maize_context, policy):
        action = parse_enriched_action(json.dumps(_payload()), maize_context, policy)
        assert action.category == CandidateCategory.PESTICIDE

    def test_fenced_json_text(self, maize_context, policy):
        raw = "```json\n" + json.dumps(_payload()) + "\n```"
        action = parse_enriched_action(raw, maize_context, policy)
        assert action.steps == ["Pound the leaves", "Soak overnight", "Spray at dusk"]

    @pytest.mark.parametrize("raw", ["not json", "[1, 2, 3]", 42, None])
    def test_unusable_payloads(self, maize_context, policy, raw):
        with pytest.raises(EnrichmentFailure):
            parse_enriched_action(raw, maize_context, policy)

    @pytest.mark.parametrize("missing", ["title", "description", "steps"])
    def test_required_fields(self, maize_context, policy, missing):
        data = _payload()
        del data[missing]
        with pytest.raises(EnrichmentFailure):
            parse_enriched_action(data, maize_context, policy)

    def test_blank_steps_rejected(self, maize_context, policy):
        with pytest.raises(EnrichmentFailure):
            parse_enriched_action(_payload(steps=["", "  "]), maize_context, policy)


# ── Field mapping ──────────────────────────────────────────────────────────────

class TestFieldMapping:
    @pytest.mark.parametrize("raw,expected", [
        ("high", Urgency.IMMEDIATE),
        ("Medium", Urgency.TODAY),
        ("low", Urgency.THIS_WEEK),
        ("today", Urgency.TODAY),
        ("whenever", Urgency.THIS_WEEK),
        (3, Urgency.THIS_WEEK),
    ])
    def test_urgency(self, maize_context, policy, raw, expected):
        action = parse_enriched_action(_payload(urgency=raw), maize_context, policy)
        assert action.urgency == expected

    @pytest.mark.parametrize("raw,expected", [
        (-5, 0.0),
        ("12.346", 12.35),
        (1e12, MAX_SAVINGS),
        (10 ** 400, 25.0),
        ("1e400", 25.0),
        ("lots", 25.0),
        (None, 25.0),
    ])
    def test_savings(self, maize_context, policy, raw, expected):
        action = parse_enriched_action(_payload(moneySaved=raw), maize_context, policy)
        assert action.estimated_cost_savings == expected

    def test_oversized_json_integer_uses_baseline(self, maize_context, policy):
        payload = {k: v for k, v in _payload().items() if k != "moneySaved"}
        raw = json.dumps(payload)[:-1] + ', "moneySaved": 1' + "0" * 400 + "}"
        action = parse_enriched_action(raw, maize_context, policy)
        assert action.estimated_cost_savings == 25.0

    def test_category_hint_used_for_unknown_category(self, maize_context, policy):
        action = parse_enriched_action(
            _payload(category="magic"), maize_context, policy,
            category_hint=CandidateCategory.SOIL_AMENDMENT,
        )
        assert action.category == CandidateCategory.SOIL_AMENDMENT

    def test_category_defaults_to_fertilizer(self, maize_context, policy):
        data = _payload()
        del data["category"]
        assert parse_enriched_action(data, maize_context, policy).category == CandidateCategory.FERTILIZER

    def test_time_to_result_default(self, maize_context, policy):
        data = _payload()
        del data["timeToResults"]
        action = parse_enriched_action(data, maize_context, policy)
        assert action.estimated_time_to_result == policy.default_time_to_result["pesticide"]

    @pytest.mark.parametrize("minutes,level", [
        (30, DifficultyLevel.EASY),
        (120, DifficultyLevel.MEDIUM),
        (3000, DifficultyLevel.HARD),
        ("soon", DifficultyLevel.EASY),
    ])
    def test_difficulty(self, maize_context, policy, minutes, level):
        action = parse_enriched_action(_payload(preparationTime=minutes), maize_context, policy)
        assert action.difficulty_level == level

    def test_reason_fallbacks(self, maize_context, policy):
        data = _payload()
        del data["whyNow"]
        assert parse_enriched_action(data, maize_context, policy).relevance_reason == "armyworm"
        del data["targetProblem"]
        assert parse_enriched_action(data, maize_context, policy).relevance_reason == (
            "Generated for your maize"
        )
