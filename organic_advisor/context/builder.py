"""
Context builder: raw profile / field / history records → ``UserContext``.

Pure function of its inputs.  The records are whatever the store hands back
(``sqlite3.Row`` converted to dicts, JSON blobs, test dicts); nothing about
their shape is trusted.

Source precedence
-----------------
crops      : fields[*].crop_type, then profile.crops   (lower-cased, de-duplicated)
issues     : profile.issues, then fields[*].issues / current_issues
region     : profile.region, profile.location, fields[0].location
farm size  : sum of fields[*].size (hectares)
materials  : profile.available_materials
history    : history[*].candidate_id (legacy: recipe_id), newest first,
             truncated to ``recency_window``
soil type  : profile.soil_type, fields[0].soil_type
season     : derived from ``as_of``

Malformed inputs raise ``InvalidContextData`` inside the ``_extract_*``
helpers; ``build_user_context`` catches it per field, logs a warning, and
substitutes the default.  Building a context never fails.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Callable, Mapping, Optional, Sequence, TypeVar

from organic_advisor.errors import InvalidContextData
from organic_advisor.models.context import UNKNOWN_REGION, UNKNOWN_SOIL, UserContext
from organic_advisor.taxonomy.crop_taxonomy import MIXED_CROPS
from organic_advisor.utils.time_utils import season_for_date

logger = logging.getLogger(__name__)

T = TypeVar("T")

Record = Mapping[str, Any]


def build_user_context(
    user_id:        str,
    profile:        Optional[Record],
    fields:         Optional[Sequence[Any]],
    history:        Optional[Sequence[Any]],
    as_of:          date,
    recency_window: int = 10,
    hemisphere:     str = "north",
) -> UserContext:
    """Assemble a fully populated ``UserContext``.

    Args:
        user_id:        Requesting user.
        profile:        Profile record, or ``None`` if the user has none.
        fields:         Field records (one per plot), possibly empty.
        history:        Recent action records, newest first.
        as_of:          Day the context describes (drives the season).
        recency_window: Max number of recent candidate ids to keep.
        hemisphere:     ``"north"`` or ``"south"`` for season derivation.

    Returns:
        ``UserContext`` with defaults substituted for anything missing.
    """
    profile_rec: Record = profile if isinstance(profile, Mapping) else {}
    if profile is not None and not isinstance(profile, Mapping):
        logger.warning("Ignoring non-mapping profile for user=%s", user_id)

    field_recs = _mappings(fields, "fields", user_id)
    history_recs = _mappings(history, "history", user_id)

    crops = _safe(user_id, "crops", [MIXED_CROPS],
                  lambda: _extract_crops(profile_rec, field_recs))
    issues = _safe(user_id, "issues", [],
                   lambda: _extract_issues(profile_rec, field_recs))
    region = _safe(user_id, "region", UNKNOWN_REGION,
                   lambda: _extract_region(profile_rec, field_recs))
    farm_size = _safe(user_id, "farm_size", 0.0,
                      lambda: _extract_farm_size(field_recs))
    materials = _safe(user_id, "available_materials", [],
                      lambda: _str_list(profile_rec.get("available_materials"),
                                        "available_materials"))
    recent = _safe(user_id, "history", [],
                   lambda: _extract_recent_ids(history_recs, recency_window))
    soil = _safe(user_id, "soil_type", UNKNOWN_SOIL,
                 lambda: _extract_soil(profile_rec, field_recs))

    return UserContext(
        user_id=user_id,
        crops=crops,
        issues=issues,
        region=region,
        season=season_for_date(as_of, hemisphere),
        as_of=as_of,
        farm_size_ha=farm_size,
        available_materials=materials,
        recent_candidate_ids=recent,
        soil_type=soil,
    )


# ── Field extractors (raise InvalidContextData on malformed input) ───────────

def _extract_crops(profile: Record, fields: list[Record]) -> list[str]:
    crops: list[str] = []
    for rec in fields:
        crop = rec.get("crop_type")
        if crop is None:
            continue
        if not isinstance(crop, str):
            raise InvalidContextData("crop_type", f"expected string, got {type(crop).__name__}")
        crops.append(crop)
    crops.extend(_str_list(profile.get("crops"), "crops"))
    return _dedupe_lower(crops) or [MIXED_CROPS]


def _extract_issues(profile: Record, fields: list[Record]) -> list[str]:
    issues = _str_list(profile.get("issues"), "issues")
    for rec in fields:
        issues.extend(_str_list(rec.get("issues"), "issues"))
        issues.extend(_str_list(rec.get("current_issues"), "current_issues"))
    return _dedupe_lower(issues)


def _extract_region(profile: Record, fields: list[Record]) -> str:
    candidates = [profile.get("region"), profile.get("location")]
    if fields:
        candidates.append(fields[0].get("location"))
    for val in candidates:
        if isinstance(val, str) and val.strip():
            return val.strip()
    return UNKNOWN_REGION


def _extract_farm_size(fields: list[Record]) -> float:
    total = 0.0
    for rec in fields:
        size = rec.get("size")
        if size is None:
            continue
        try:
            value = float(size)
        except (TypeError, ValueError):
            raise InvalidContextData("size", f"not a number: {size!r}") from None
        if not math.isfinite(value) or value < 0:
            raise InvalidContextData("size", f"must be a non-negative number: {size!r}")
        total += value
    return total


def _extract_recent_ids(history: list[Record], window: int) -> list[str]:
    ids: list[str] = []
    for rec in history:
        if len(ids) >= window:
            break
        cid = rec.get("candidate_id") or rec.get("recipe_id")
        if cid is None:
            continue
        cid = str(cid)
        if cid not in ids:
            ids.append(cid)
    return ids


def _extract_soil(profile: Record, fields: list[Record]) -> str:
    for val in (profile.get("soil_type"), fields[0].get("soil_type") if fields else None):
        if isinstance(val, str) and val.strip():
            return val.strip()
    return UNKNOWN_SOIL


# ── Helpers ───────────────────────────────────────────────────────────────────

def _safe(user_id: str, field_name: str, default: T, extract: Callable[[], T]) -> T:
    try:
        return extract()
    except InvalidContextData as exc:
        logger.warning(
            "Context field '%s' for user=%s replaced by default: %s",
            field_name, user_id, exc,
        )
        return default


def _mappings(records: Optional[Sequence[Any]], label: str, user_id: str) -> list[Record]:
    if not records:
        return []
    if isinstance(records, (str, bytes, Mapping)):
        logger.warning("Ignoring malformed %s for user=%s (not a list)", label, user_id)
        return []
    good = [r for r in records if isinstance(r, Mapping)]
    if len(good) != len(records):
        logger.warning(
            "Dropped %d malformed %s record(s) for user=%s",
            len(records) - len(good), label, user_id,
        )
    return good


def _str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        raise InvalidContextData(field_name, f"expected list, got {type(value).__name__}")
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def _dedupe_lower(values: list[str]) -> list[str]:
    seen: list[str] = []
    for v in values:
        key = v.strip().lower()
        if key and key not in seen:
            seen.append(key)
    return seen
