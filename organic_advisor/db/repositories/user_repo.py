"""
Repository for farmer profiles and fields.

Reads return plain dicts with JSON columns decoded; the context builder is
the only consumer and validates shape itself.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from organic_advisor.db.repositories.base import BaseRepository, from_json, to_json

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository):
    """Read/write access to ``user_profiles`` and ``user_fields``."""

    def upsert_profile(self, user_id: str, profile: Mapping[str, Any]) -> None:
        self.execute(
            """
            INSERT INTO user_profiles (
                user_id, region, crops, issues, available_materials, soil_type, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(user_id) DO UPDATE SET
                region              = excluded.region,
                crops               = excluded.crops,
                issues              = excluded.issues,
                available_materials = excluded.available_materials,
                soil_type           = excluded.soil_type,
                updated_at          = excluded.updated_at;
            """,
            (
                user_id,
                profile.get("region") or profile.get("location"),
                to_json(list(profile.get("crops") or [])),
                to_json(list(profile.get("issues") or [])),
                to_json(list(profile.get("available_materials") or [])),
                profile.get("soil_type"),
            ),
        )

    def add_field(self, user_id: str, field: Mapping[str, Any]) -> int:
        cur = self.execute(
            """
            INSERT INTO user_fields (user_id, name, crop_type, size, location, soil_type, issues)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                user_id,
                field.get("name") or "Main Field",
                field.get("crop_type"),
                field.get("size"),
                field.get("location"),
                field.get("soil_type"),
                to_json(list(field.get("issues") or [])),
            ),
        )
        return int(cur.lastrowid)

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        row = self.fetchone("SELECT * FROM user_profiles WHERE user_id = ?;", (user_id,))
        if row is None:
            return None
        profile = dict(row)
        for col in ("crops", "issues", "available_materials"):
            profile[col] = from_json(profile.get(col))
        return profile

    def get_fields(self, user_id: str) -> list[dict[str, Any]]:
        rows = self.fetchall(
            "SELECT * FROM user_fields WHERE user_id = ? ORDER BY field_id;", (user_id,)
        )
        fields = []
        for row in rows:
            rec = dict(row)
            rec["issues"] = from_json(rec.get("issues"))
            fields.append(rec)
        return fields
