"""
Tests for organic_advisor/recommendations/materializer.py.

What we test
------------
materialize_action():
  - Reference maize example: title, urgency, savings, time, score, reason.
  - Same inputs → same action (apart from generated_at), same action id.
  - Missing instructions / time fall back to policy defaults.

resolve_ingredients():
  - Case-insensitive substring match in either direction; quantity kept.

determine_urgency():
  - immediate > today > this_week; "_" / "-" fold to spaces.

estimate_cost_savings():
  - Baseline minus cost, floored at the policy minimum.

estimate_difficulty() / expected_yield_increase():
  - Band boundaries.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from organic_advisor.models.action import make_action_id
from organic_advisor.models.context import UNKNOWN_REGION
from organic_advisor.recommendations.materializer import (
    determine_urgency,
    estimate_cost_savings,
    estimate_difficulty,
    expected_yield_increase,
    materialize_action,
    resolve_ingredients,
)
from organic_advisor.recommendations.ranker import rank_candidates, score_candidates
from organic_advisor.taxonomy.crop_taxonomy import (
    ActionSource,
    CandidateCategory,
    DifficultyLevel,
    Urgency,
)

_T0 = datetime(2025, 7, 15, 8, 0, tzinfo=timezone.utc)
_T1 = datetime(2025, 7, 15, 9, 30, tzinfo=timezone.utc)


# ── materialize_action ─────────────────────────────────────────────────────────

class TestMaterializeAction:
    def test_reference_example(self, maize_spray, maize_context, policy):
        top = rank_candidates(score_candidates([maize_spray], maize_context))[0]
        action = materialize_action(maize_spray, maize_context, policy, top, generated_at=_T0)

        assert action.title == "Today's Organic Action: Garlic-chili maize spray"
        assert action.urgency == Urgency.IMMEDIATE
        assert action.estimated_cost_savings == 22.0
        assert action.estimated_time_to_result == "24-48 hours"
        assert action.match_score == 99.0
        assert action.relevance_reason == top.reason
        assert action.source == ActionSource.CATALOG
        assert action.source_candidate_id == "garlic-chili-maize-spray"
        assert action.category == CandidateCategory.PESTICIDE
        assert action.expected_yield_increase == "15-25%"
        assert action.context_day == maize_context.as_of
        assert action.steps == list(maize_spray.instructions)

    def test_description_mentions_context(self, maize_spray, maize_context, policy):
        action = materialize_action(maize_spray, maize_context, policy, generated_at=_T0)
        assert action.description.startswith("Repels armyworm larvae.")
        assert "Nakuru maize this summer" in action.description

    def test_deterministic_apart_from_timestamp(self, maize_spray, maize_context, policy):
        a = materialize_action(maize_spray, maize_context, policy, generated_at=_T0)
        b = materialize_action(maize_spray, maize_context, policy, generated_at=_T1)
        assert a.without_timestamp() == b.without_timestamp()
        assert a.action_id == make_action_id("farmer-1", "garlic-chili-maize-spray", maize_context.as_of)

    def test_without_score(self, maize_spray, maize_context, policy):
        action = materialize_action(maize_spray, maize_context, policy, generated_at=_T0)
        assert action.match_score is None
        assert action.relevance_reason == ""

    def test_defaults_for_sparse_candidate(self, make_candidate, maize_context, policy):
        c = make_candidate(instructions=[], time_to_result=None, category="soil_amendment")
        action = materialize_action(c, maize_context, policy, generated_at=_T0)
        assert action.steps == ["Follow the organic recipe instructions"]
        assert action.estimated_time_to_result == policy.default_time_to_result["soil_amendment"]

    def test_unknown_region_not_mentioned(self, maize_spray, maize_context, policy):
        ctx = maize_context.model_copy(update={"region": UNKNOWN_REGION})
        action = materialize_action(maize_spray, ctx, policy, generated_at=_T0)
        assert UNKNOWN_REGION not in action.description
        assert "your maize this summer" in action.description


# ── Ingredients ────────────────────────────────────────────────────────────────

class TestResolveIngredients:
    def test_marks_available_materials(self, maize_spray):
        resolved = resolve_ingredients(maize_spray, ["Garlic", "water"])
        by_name = {r.name: r for r in resolved}
        assert by_name["garlic"].from_available_materials is True
        assert by_name["garlic"].matched_material == "Garlic"
        assert by_name["garlic"].quantity == "10 cloves"
        assert by_name["hot chili"].from_available_materials is False
        assert by_name["water"].from_available_materials is True

    def test_substring_in_either_direction(self, maize_spray):
        resolved = resolve_ingredients(maize_spray, ["chili"])
        assert {r.name for r in resolved if r.from_available_materials} == {"hot chili"}
        resolved = resolve_ingredients(maize_spray, ["fresh garlic bulbs"])
        assert {r.name for r in resolved if r.from_available_materials} == {"garlic"}
        resolved = resolve_ingredients(maize_spray, ["rain water"])
        assert {r.name for r in resolved if r.from_available_materials} == {"water"}

    def test_blank_materials_ignored(self, maize_spray):
        resolved = resolve_ingredients(maize_spray, ["", "   "])
        assert not any(r.from_available_materials for r in resolved)


# ── Urgency ────────────────────────────────────────────────────────────────────

class TestUrgency:
    @pytest.mark.parametrize("issues,expected", [
        (["fall armyworm"], Urgency.IMMEDIATE),
        (["Pest_Outbreak"], Urgency.IMMEDIATE),
        (["nutrient-deficiency"], Urgency.IMMEDIATE),
        (["late blight"], Urgency.TODAY),
        (["soil_health"], Urgency.TODAY),
        (["slow growth"], Urgency.THIS_WEEK),
        ([], Urgency.THIS_WEEK),
    ])
    def test_classification(self, policy, issues, expected):
        assert determine_urgency(issues, policy) == expected

    def test_immediate_wins_over_today(self, policy):
        assert determine_urgency(["blight", "aphids"], policy) == Urgency.IMMEDIATE


# ── Savings ────────────────────────────────────────────────────────────────────

class TestCostSavings:
    def test_baseline_minus_cost(self, policy):
        assert estimate_cost_savings(CandidateCategory.FERTILIZER, 4.5, policy) == 10.5

    def test_floor(self, policy):
        assert estimate_cost_savings(CandidateCategory.PESTICIDE, 40.0, policy) == policy.min_cost_savings

    def test_rounded(self, policy):
        assert estimate_cost_savings(CandidateCategory.PESTICIDE, 3.333, policy) == 21.67


# ── Difficulty & yield ─────────────────────────────────────────────────────────

class TestDifficulty:
    def test_easy(self, make_candidate):
        assert estimate_difficulty(make_candidate(preparation_time_min=30)) == DifficultyLevel.EASY

    def test_medium(self, make_candidate):
        c = make_candidate(preparation_time_min=2000)
        assert estimate_difficulty(c) == DifficultyLevel.MEDIUM

    def test_hard(self, make_candidate):
        c = make_candidate(
            preparation_time_min=2000,
            ingredients=[{"name": f"item {i}"} for i in range(6)],
            instructions=[f"step {i}" for i in range(7)],
        )
        assert estimate_difficulty(c) == DifficultyLevel.HARD


class TestYieldBands:
    @pytest.mark.parametrize("rating,band", [
        (5.0, "15-25%"),
        (4.5, "15-25%"),
        (4.2, "10-20%"),
        (3.5, "8-15%"),
        (3.0, "5-12%"),
        (1.0, "3-8%"),
    ])
    def test_bands(self, rating, band):
        assert expected_yield_increase(rating) == band
