"""
Date helpers for season-aware recommendation and day-scoped caching.

Key concepts:
  - Season derivation: meteorological seasons by calendar month, flipped for
    the southern hemisphere.
  - Context day: the calendar date a recommendation belongs to.  A new day
    means a new cache key and therefore a fresh recommendation.
  - End of day: the latest instant a day-scoped cache entry may live.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from organic_advisor.taxonomy.crop_taxonomy import Season

# Northern-hemisphere month → season.  Southern hemisphere is the opposite.
_NORTHERN_SEASON_BY_MONTH: dict[int, Season] = {
    12: Season.WINTER, 1: Season.WINTER, 2: Season.WINTER,
    3: Season.SPRING, 4: Season.SPRING, 5: Season.SPRING,
    6: Season.SUMMER, 7: Season.SUMMER, 8: Season.SUMMER,
    9: Season.AUTUMN, 10: Season.AUTUMN, 11: Season.AUTUMN,
}

_OPPOSITE_SEASON: dict[Season, Season] = {
    Season.WINTER: Season.SUMMER,
    Season.SUMMER: Season.WINTER,
    Season.SPRING: Season.AUTUMN,
    Season.AUTUMN: Season.SPRING,
}

VALID_HEMISPHERES: frozenset[str] = frozenset({"north", "south"})


def season_for_date(check_date: date, hemisphere: str = "north") -> Season:
    """Return the meteorological season of ``check_date``.

    Args:
        check_date: Date to classify.
        hemisphere: ``"north"`` or ``"south"``.

    Returns:
        The ``Season`` for that month.

    Raises:
        ValueError: If ``hemisphere`` is not recognised.
    """
    if hemisphere not in VALID_HEMISPHERES:
        raise ValueError(
            f"hemisphere must be one of {sorted(VALID_HEMISPHERES)}, got '{hemisphere}'."
        )
    season = _NORTHERN_SEASON_BY_MONTH[check_date.month]
    return _OPPOSITE_SEASON[season] if hemisphere == "south" else season


def end_of_day(day: date) -> datetime:
    """Return the first UTC instant of the day after ``day``.

    An entry scoped to ``day`` is expired once ``now >= end_of_day(day)``.
    """
    return datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone.utc)


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)
