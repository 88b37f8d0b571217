"""
Per-request user context.

``UserContext`` is built fresh for every recommendation request by
``organic_advisor.context.builder.build_user_context()`` and is never
persisted.  It is frozen so the scorer and materializer can treat it as a
value.

Every field is populated: missing upstream data resolves to neutral defaults
(``"unknown region"``, ``["mixed crops"]``, empty issues/history).
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from organic_advisor.taxonomy.crop_taxonomy import MIXED_CROPS, Season

UNKNOWN_REGION = "unknown region"
UNKNOWN_SOIL = "unknown"


class UserContext(BaseModel):
    """Situational snapshot that drives scoring and materialization.

    Attributes:
        user_id:              Requesting user.
        crops:                Lower-cased crop identifiers, never empty.
        issues:               Free-form issue tags (pests, diseases, problems).
        region:               Geographic region label.
        season:               Season derived from ``as_of``.
        as_of:                Calendar date this context describes.
        farm_size_ha:         Total field area in hectares.
        available_materials:  Materials the farmer already has on hand.
        recent_candidate_ids: Most recent first; bounded by the recency window.
        soil_type:            Soil description, when known.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    crops: list[str] = Field(default_factory=lambda: [MIXED_CROPS])
    issues: list[str] = Field(default_factory=list)
    region: str = UNKNOWN_REGION
    season: Season
    as_of: date
    farm_size_ha: float = 0.0
    available_materials: list[str] = Field(default_factory=list)
    recent_candidate_ids: list[str] = Field(default_factory=list)
    soil_type: str = UNKNOWN_SOIL

    @field_validator("crops")
    @classmethod
    def validate_crops(cls, v: list[str]) -> list[str]:
        crops = [c.strip().lower() for c in v if c and c.strip()]
        return crops or [MIXED_CROPS]

    @field_validator("farm_size_ha")
    @classmethod
    def validate_farm_size(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"farm_size_ha must be non-negative, got {v}.")
        return v

    @property
    def primary_crop(self) -> str:
        """The first (main) crop; used for the narrowest retrieval filter."""
        return self.crops[0]
