"""
Candidate catalog models.

``Candidate`` is one curated organic remedy / recipe.  It is created by
catalog curation outside this system and is read-only here, so the model is
frozen.

``Candidate.from_record()`` is the validated boundary between loosely shaped
store records (JSON columns, seed files, older exports) and the typed model.
Every missing or differently shaped field resolves to a documented default:

  ==========================  ==========================================
  field                       default / accepted shapes
  ==========================  ==========================================
  target_crops/issues         ``[]``; a single string becomes ``[s]``
  ingredients                 ``[]``; ``{name: qty}`` dict, list of
                              ``{name|ingredient, quantity|amount}``
                              dicts, or plain strings (qty "as needed")
  instructions                ``[]`` (alias: ``method``, ``steps``)
  effectiveness_rating        ``0.0`` (alias: ``effectiveness_score``)
  cost_per_unit               ``0.0`` (alias: ``cost_per_liter``)
  organic_compliance          ``100.0``
  seasonality                 ``[]`` → applicable in every season
  verified                    ``False``
  ==========================  ==========================================

``CandidateFilter`` is the coarse retrieval filter passed to the store.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from organic_advisor.taxonomy.crop_taxonomy import (
    SEASON_WILDCARDS,
    CandidateCategory,
    Season,
    parse_category,
    parse_season,
)

DEFAULT_INGREDIENT_QUANTITY = "as needed"


class IngredientSpec(BaseModel):
    """One catalog ingredient with its default quantity."""

    model_config = ConfigDict(frozen=True)

    name: str
    quantity: str = DEFAULT_INGREDIENT_QUANTITY

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("ingredient name must not be empty.")
        return v.strip()


class Candidate(BaseModel):
    """A verified (or not-yet-verified) organic remedy in the catalog.

    Attributes:
        candidate_id:         Stable catalog identifier.
        name:                 Display name, e.g. ``"Garlic-chili maize spray"``.
        category:             Treatment category.
        target_crops:         Crops this remedy is for; may contain a wildcard.
        target_issues:        Pests / diseases / problems it addresses.
        ingredients:          Ingredient list with default quantities.
        instructions:         Ordered preparation and application steps.
        effectiveness_rating: Curated rating on a 0–5 scale.
        cost_per_unit:        Cost of one application (currency-agnostic).
        organic_compliance:   0–100; how fully the remedy avoids synthetics.
        seasonality:          Seasons the remedy applies in; empty = all.
        verified:             Whether curation has verified the entry.
        purpose:              One-line description of what it does.
        time_to_result:       Free text, e.g. ``"24-48 hours"``; optional.
        preparation_time_min: Preparation time in minutes.
        safety_notes:         Handling cautions.
    """

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    name: str
    category: CandidateCategory
    target_crops: list[str] = Field(default_factory=list)
    target_issues: list[str] = Field(default_factory=list)
    ingredients: list[IngredientSpec] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    effectiveness_rating: float = 0.0
    cost_per_unit: float = 0.0
    organic_compliance: float = 100.0
    seasonality: list[Season] = Field(default_factory=list)
    verified: bool = False
    purpose: str = ""
    time_to_result: Optional[str] = None
    preparation_time_min: int = 0
    safety_notes: list[str] = Field(default_factory=list)

    @field_validator("candidate_id", "name")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty.")
        return v.strip()

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, v: Any) -> Any:
        return parse_category(v) if isinstance(v, str) else v

    @field_validator("seasonality", mode="before")
    @classmethod
    def validate_seasonality(cls, v: Any) -> Any:
        # Wildcards collapse to the empty list, which means "every season".
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        seasons: list[Season] = []
        for s in v:
            if isinstance(s, str) and s.strip().lower() in SEASON_WILDCARDS:
                return []
            season = parse_season(s) if isinstance(s, str) else s
            if season not in seasons:
                seasons.append(season)
        return seasons

    @field_validator("effectiveness_rating")
    @classmethod
    def validate_effectiveness(cls, v: float) -> float:
        if not math.isfinite(v) or not 0.0 <= v <= 5.0:
            raise ValueError(f"effectiveness_rating must be in [0, 5], got {v}.")
        return v

    @field_validator("organic_compliance")
    @classmethod
    def validate_compliance(cls, v: float) -> float:
        if not math.isfinite(v) or not 0.0 <= v <= 100.0:
            raise ValueError(f"organic_compliance must be in [0, 100], got {v}.")
        return v

    @field_validator("cost_per_unit")
    @classmethod
    def validate_cost(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError(f"cost_per_unit must be a non-negative number, got {v}.")
        return v

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Candidate":
        """Build a ``Candidate`` from a loosely shaped store record.

        Args:
            record: Mapping with snake_case keys (camelCase and legacy names
                are accepted for the fields listed in the module docstring).

        Returns:
            Validated ``Candidate``.

        Raises:
            pydantic.ValidationError: If required fields are missing or a
                value cannot be coerced (e.g. unknown category).
            ValueError, TypeError, OverflowError: If a numeric field is not a
                number, or is infinite where an integer is needed.
        """
        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                val = record.get(key)
                if val is not None:
                    return val
            return default

        return cls(
            candidate_id=str(pick("candidate_id", "id", default="")),
            name=str(pick("name", "title", default="")),
            category=pick("category", default=""),
            target_crops=_as_str_list(pick("target_crops", "targetCrops", "crop_types")),
            target_issues=_as_str_list(
                pick("target_issues", "targetIssues", "target_problems")
            ),
            ingredients=coerce_ingredients(pick("ingredients")),
            instructions=_as_str_list(pick("instructions", "method", "steps")),
            effectiveness_rating=float(
                pick("effectiveness_rating", "effectivenessRating",
                     "effectiveness_score", default=0.0)
            ),
            cost_per_unit=float(
                pick("cost_per_unit", "costPerUnit", "cost_per_liter", default=0.0)
            ),
            organic_compliance=float(
                pick("organic_compliance", "organicCompliance", default=100.0)
            ),
            seasonality=_as_str_list(pick("seasonality", "seasons")),
            verified=bool(pick("verified", default=False)),
            purpose=str(pick("purpose", "description", default="")),
            time_to_result=pick("time_to_result", "timeToResult"),
            preparation_time_min=int(
                pick("preparation_time_min", "preparation_time", default=0)
            ),
            safety_notes=_as_str_list(pick("safety_notes", "safetyNotes")),
        )


class CandidateFilter(BaseModel):
    """Coarse retrieval filter passed to ``CandidateStore.fetch_candidates``.

    ``verified_only`` is always ``True``; it is kept as a field so the
    contract is explicit at every call site and in logs.
    """

    model_config = ConfigDict(frozen=True)

    verified_only: bool = True
    crop: Optional[str] = None
    season: Optional[Season] = None
    category: Optional[CandidateCategory] = None

    @field_validator("verified_only")
    @classmethod
    def validate_verified_only(cls, v: bool) -> bool:
        if not v:
            raise ValueError("verified_only cannot be disabled.")
        return v

    @field_validator("crop")
    @classmethod
    def normalise_crop(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else None

    def describe(self) -> str:
        """Compact ``key=value`` rendering for log lines."""
        parts = [
            f"{key}={val}"
            for key, val in (("crop", self.crop), ("season", self.season),
                             ("category", self.category))
            if val is not None
        ]
        return ",".join(parts) or "verified-only"


# ── Record coercion helpers ───────────────────────────────────────────────────

def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def coerce_ingredients(value: Any) -> list[IngredientSpec]:
    if not value:
        return []
    if isinstance(value, Mapping):
        return [
            IngredientSpec(name=str(name), quantity=str(qty or DEFAULT_INGREDIENT_QUANTITY))
            for name, qty in value.items()
            if str(name).strip()
        ]
    specs: list[IngredientSpec] = []
    if isinstance(value, (list, tuple)):
        for item in value:
            if isinstance(item, str):
                if item.strip():
                    specs.append(IngredientSpec(name=item))
            elif isinstance(item, Mapping):
                name = item.get("name") or item.get("ingredient")
                if not name or not str(name).strip():
                    continue
                qty = item.get("quantity") or item.get("amount") or DEFAULT_INGREDIENT_QUANTITY
                specs.append(IngredientSpec(name=str(name), quantity=str(qty)))
    return specs
