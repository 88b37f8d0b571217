"""
Tests for organic_advisor/context/builder.py.

What we test
------------
build_user_context():
  - No records at all → every default ("unknown region", ["mixed crops"], ...).
  - Crops: field crop_type first, then profile crops; lower-cased, de-duplicated.
  - Issues merged from profile and fields (issues / current_issues).
  - Region precedence: profile.region > profile.location > fields[0].location.
  - Farm size is the sum of field sizes.
  - History: candidate_id / legacy recipe_id, newest first, window-bounded;
    a zero window keeps no history.
  - Season derived from as_of and hemisphere.
  - Malformed values fall back to defaults per field and log a warning.
"""

from __future__ import annotations

import logging
from datetime import date

from organic_advisor.context.builder import build_user_context
from organic_advisor.models.context import UNKNOWN_REGION, UNKNOWN_SOIL
from organic_advisor.taxonomy.crop_taxonomy import MIXED_CROPS, Season

DAY = date(2025, 7, 15)


def _build(profile=None, fields=None, history=None, **kw):
    return build_user_context("u1", profile, fields, history, as_of=DAY, **kw)


class TestDefaults:
    def test_no_records(self):
        ctx = _build()
        assert ctx.crops == [MIXED_CROPS]
        assert ctx.issues == []
        assert ctx.region == UNKNOWN_REGION
        assert ctx.farm_size_ha == 0.0
        assert ctx.recent_candidate_ids == []
        assert ctx.soil_type == UNKNOWN_SOIL
        assert ctx.season == Season.SUMMER
        assert ctx.as_of == DAY


class TestExtraction:
    def test_crops_from_fields_then_profile(self):
        ctx = _build(
            profile={"crops": ["Beans", "maize"]},
            fields=[{"crop_type": "Maize"}, {"crop_type": "tomato"}],
        )
        assert ctx.crops == ["maize", "tomato", "beans"]

    def test_issues_merged(self):
        ctx = _build(
            profile={"issues": ["Armyworm"]},
            fields=[{"issues": ["blight"], "current_issues": ["armyworm", "aphids"]}],
        )
        assert ctx.issues == ["armyworm", "blight", "aphids"]

    def test_region_precedence(self):
        assert _build(profile={"region": "Nakuru", "location": "Kenya"}).region == "Nakuru"
        assert _build(profile={"location": "Kenya"}).region == "Kenya"
        assert _build(fields=[{"location": "Field town"}]).region == "Field town"

    def test_farm_size_sum(self):
        ctx = _build(fields=[{"size": 1.5}, {"size": "2"}, {}])
        assert ctx.farm_size_ha == 3.5

    def test_history_window_and_legacy_key(self):
        history = [
            {"candidate_id": "c3"},
            {"recipe_id": "c2"},
            {"candidate_id": "c3"},
            {"candidate_id": "c1"},
        ]
        ctx = _build(history=history, recency_window=2)
        assert ctx.recent_candidate_ids == ["c3", "c2"]

    def test_zero_window_disables_recency(self):
        ctx = _build(history=[{"candidate_id": "x"}], recency_window=0)
        assert ctx.recent_candidate_ids == []

    def test_window_equal_to_history_keeps_all(self):
        history = [{"candidate_id": "c3"}, {"candidate_id": "c2"}, {"candidate_id": "c1"}]
        ctx = _build(history=history, recency_window=3)
        assert ctx.recent_candidate_ids == ["c3", "c2", "c1"]

    def test_southern_hemisphere(self):
        assert _build(hemisphere="south").season == Season.WINTER

    def test_materials_and_soil(self):
        ctx = _build(profile={"available_materials": ["ash", " "], "soil_type": "clay"})
        assert ctx.available_materials == ["ash"]
        assert ctx.soil_type == "clay"


class TestMalformedInput:
    def test_bad_crop_type_uses_default(self, caplog):
        with caplog.at_level(logging.WARNING):
            ctx = _build(fields=[{"crop_type": 42}])
        assert ctx.crops == [MIXED_CROPS]
        assert "crops" in caplog.text

    def test_bad_issues_type_uses_default(self):
        ctx = _build(profile={"issues": {"armyworm": True}, "region": "Nakuru"})
        assert ctx.issues == []
        assert ctx.region == "Nakuru"

    def test_bad_farm_size_uses_default(self):
        assert _build(fields=[{"size": "lots"}]).farm_size_ha == 0.0
        assert _build(fields=[{"size": -3}]).farm_size_ha == 0.0

    def test_non_mapping_records_dropped(self):
        ctx = _build(profile="oops", fields=["bad", {"crop_type": "beans"}], history="bad")
        assert ctx.crops == ["beans"]
        assert ctx.recent_candidate_ids == []
