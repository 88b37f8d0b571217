"""
Crop, season, and treatment taxonomy for organic action recommendation.

Three fixed vocabularies drive the whole pipeline:
  - ``CandidateCategory`` → what kind of treatment a catalog entry is.
  - ``Season``            → when a treatment is applicable.
  - ``Urgency``           → how soon a materialized action should be done.

``CROP_FAMILIES`` is the static crop → family lookup used by the scorer for
partial (same-family) crop matches.  Crops missing from the table belong to
the ``"other"`` family, which never produces a family match.

``CATEGORY_ALIASES`` maps alternative category spellings (as found in older
catalog exports and upstream clients) to the canonical enum values.

This module has NO imports from any other ``organic_advisor`` package.
"""

from enum import StrEnum


class CandidateCategory(StrEnum):
    """Treatment category of a catalog candidate."""

    PESTICIDE = "pesticide"
    """Pest control sprays, traps, and repellents."""

    FERTILIZER = "fertilizer"
    """Fertility inputs: liquid feeds, manures, teas."""

    SOIL_AMENDMENT = "soil_amendment"
    """Structure and biology amendments: biochar, compost, mulch."""

    GROWTH_ENHANCER = "growth_enhancer"
    """Growth promoters and foliar boosters."""


class Season(StrEnum):
    """Meteorological season."""

    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


class Urgency(StrEnum):
    """How soon a materialized action should be carried out."""

    IMMEDIATE = "immediate"
    TODAY = "today"
    THIS_WEEK = "this_week"


class ActionSource(StrEnum):
    """Where a materialized action came from."""

    CATALOG = "catalog"
    ENRICHMENT = "enrichment"


class DifficultyLevel(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


CATEGORY_ALIASES: dict[str, CandidateCategory] = {
    "pest-control":       CandidateCategory.PESTICIDE,
    "pest_control":       CandidateCategory.PESTICIDE,
    "fertility":          CandidateCategory.FERTILIZER,
    "nutrition":          CandidateCategory.FERTILIZER,
    "soil-amendment":     CandidateCategory.SOIL_AMENDMENT,
    "soil_health":        CandidateCategory.SOIL_AMENDMENT,
    "growth-enhancement": CandidateCategory.GROWTH_ENHANCER,
    "growth-enhancer":    CandidateCategory.GROWTH_ENHANCER,
    "growth_booster":     CandidateCategory.GROWTH_ENHANCER,
}

SEASON_ALIASES: dict[str, Season] = {
    "fall": Season.AUTUMN,
}

# Tokens that make a candidate apply to every crop / every season.
CROP_WILDCARDS: frozenset[str] = frozenset({"all", "all crops", "*"})
SEASON_WILDCARDS: frozenset[str] = frozenset({"all", "year-round", "*"})

# Placeholder used by the context builder when a user has no known crops.
MIXED_CROPS = "mixed crops"

UNKNOWN_FAMILY = "other"

CROP_FAMILIES: dict[str, str] = {
    "tomato":      "nightshade",
    "pepper":      "nightshade",
    "eggplant":    "nightshade",
    "potato":      "nightshade",
    "cabbage":     "brassica",
    "kale":        "brassica",
    "broccoli":    "brassica",
    "cauliflower": "brassica",
    "maize":       "grass",
    "sorghum":     "grass",
    "millet":      "grass",
    "rice":        "grass",
    "wheat":       "grass",
    "beans":       "legume",
    "peas":        "legume",
    "groundnuts":  "legume",
    "cowpeas":     "legume",
    "cucumber":    "cucurbit",
    "pumpkin":     "cucurbit",
    "watermelon":  "cucurbit",
}


def crop_family(crop: str) -> str:
    """Return the family of ``crop``, or ``"other"`` when unknown."""
    return CROP_FAMILIES.get(crop.strip().lower(), UNKNOWN_FAMILY)


def parse_category(value: str) -> CandidateCategory:
    """Parse a category string, accepting aliases.

    Raises:
        ValueError: If the value is neither a category nor a known alias.
    """
    key = value.strip().lower()
    if key in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[key]
    try:
        return CandidateCategory(key)
    except ValueError:
        raise ValueError(
            f"Unknown category '{value}'. "
            f"Must be one of {[c.value for c in CandidateCategory]}."
        ) from None


def parse_season(value: str) -> Season:
    """Parse a season string, accepting ``"fall"``.

    Raises:
        ValueError: If the value is not a recognised season.
    """
    key = value.strip().lower()
    if key in SEASON_ALIASES:
        return SEASON_ALIASES[key]
    return Season(key)
