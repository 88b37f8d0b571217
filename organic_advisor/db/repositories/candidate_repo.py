"""
Repository for catalog candidates and their user feedback.

Retrieval applies the coarse ``CandidateFilter`` in SQL:

  verified   ``verified = 1`` (always)
  crop       any ``target_crops`` element equals the crop or a wildcard
             (``all``, ``all crops``, ``*``), case-insensitive
  season     ``seasonality`` is empty or contains the season
  category   exact match

Seasonality is normalised by ``Candidate`` before it is written (wildcards
become ``[]``), so the season clause never needs to know about wildcards.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

from pydantic import ValidationError

from organic_advisor.db.repositories.base import BaseRepository, from_json, to_json
from organic_advisor.errors import CandidateNotFound
from organic_advisor.models.action import CandidateRating
from organic_advisor.models.candidate import Candidate, CandidateFilter
from organic_advisor.taxonomy.crop_taxonomy import CROP_WILDCARDS

logger = logging.getLogger(__name__)

_JSON_COLUMNS = (
    "target_crops", "target_issues", "ingredients",
    "instructions", "seasonality", "safety_notes",
)


class CandidateRepository(BaseRepository):
    """Read/write access to ``candidates`` and ``candidate_feedback``."""

    def upsert(self, candidate: Candidate) -> None:
        """Insert or replace a candidate by id."""
        self.execute(
            """
            INSERT INTO candidates (
                candidate_id, name, category, target_crops, target_issues,
                ingredients, instructions, effectiveness_rating, cost_per_unit,
                organic_compliance, seasonality, verified, purpose,
                time_to_result, preparation_time_min, safety_notes, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                      strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(candidate_id) DO UPDATE SET
                name                 = excluded.name,
                category             = excluded.category,
                target_crops         = excluded.target_crops,
                target_issues        = excluded.target_issues,
                ingredients          = excluded.ingredients,
                instructions         = excluded.instructions,
                effectiveness_rating = excluded.effectiveness_rating,
                cost_per_unit        = excluded.cost_per_unit,
                organic_compliance   = excluded.organic_compliance,
                seasonality          = excluded.seasonality,
                verified             = excluded.verified,
                purpose              = excluded.purpose,
                time_to_result       = excluded.time_to_result,
                preparation_time_min = excluded.preparation_time_min,
                safety_notes         = excluded.safety_notes,
                updated_at           = excluded.updated_at;
            """,
            (
                candidate.candidate_id,
                candidate.name,
                candidate.category.value,
                to_json(candidate.target_crops),
                to_json(candidate.target_issues),
                to_json([i.model_dump() for i in candidate.ingredients]),
                to_json(candidate.instructions),
                candidate.effectiveness_rating,
                candidate.cost_per_unit,
                candidate.organic_compliance,
                to_json([s.value for s in candidate.seasonality]),
                int(candidate.verified),
                candidate.purpose,
                candidate.time_to_result,
                candidate.preparation_time_min,
                to_json(candidate.safety_notes),
            ),
        )

    def get(self, candidate_id: str) -> Optional[Candidate]:
        row = self.fetchone(
            "SELECT * FROM candidates WHERE candidate_id = ?;", (candidate_id,)
        )
        return self._row_to_candidate(row) if row is not None else None

    def fetch(self, flt: CandidateFilter) -> list[Candidate]:
        """Return verified candidates matching ``flt``, ordered by id."""
        clauses = ["verified = 1"]
        params: list[Any] = []

        if flt.crop is not None:
            wildcards = sorted(CROP_WILDCARDS)
            placeholders = ", ".join("?" for _ in range(len(wildcards) + 1))
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(candidates.target_crops) "
                f"WHERE lower(trim(json_each.value)) IN ({placeholders}))"
            )
            params.extend([flt.crop, *wildcards])

        if flt.season is not None:
            clauses.append(
                "(json_array_length(candidates.seasonality) = 0 "
                "OR EXISTS (SELECT 1 FROM json_each(candidates.seasonality) "
                "WHERE json_each.value = ?))"
            )
            params.append(flt.season.value)

        if flt.category is not None:
            clauses.append("category = ?")
            params.append(flt.category.value)

        rows = self.fetchall(
            f"SELECT * FROM candidates WHERE {' AND '.join(clauses)} ORDER BY candidate_id;",
            tuple(params),
        )
        candidates = [c for c in (self._row_to_candidate(r) for r in rows) if c is not None]
        logger.debug("fetch(%s) → %d candidate(s)", flt.describe(), len(candidates))
        return candidates

    def count(self, verified_only: bool = False) -> int:
        sql = "SELECT COUNT(*) AS n FROM candidates"
        if verified_only:
            sql += " WHERE verified = 1"
        row = self.fetchone(sql + ";")
        return int(row["n"]) if row is not None else 0

    def rate(self, candidate_id: str, user_id: str, rating: CandidateRating) -> float:
        """Upsert one user's feedback and refresh the candidate's rating.

        The candidate's ``effectiveness_rating`` becomes the mean
        ``effectiveness`` across all its feedback rows.

        Returns:
            The new effectiveness rating.

        Raises:
            CandidateNotFound: If ``candidate_id`` is not in the catalog.
        """
        if self.fetchone(
            "SELECT 1 FROM candidates WHERE candidate_id = ?;", (candidate_id,)
        ) is None:
            raise CandidateNotFound(candidate_id)

        self.execute(
            """
            INSERT INTO candidate_feedback (
                candidate_id, user_id, rating, effectiveness, ease_of_use,
                cost_effectiveness, feedback_text, would_recommend
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(candidate_id, user_id) DO UPDATE SET
                rating             = excluded.rating,
                effectiveness      = excluded.effectiveness,
                ease_of_use        = excluded.ease_of_use,
                cost_effectiveness = excluded.cost_effectiveness,
                feedback_text      = excluded.feedback_text,
                would_recommend    = excluded.would_recommend,
                created_at         = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (
                candidate_id,
                user_id,
                rating.rating,
                rating.effectiveness,
                rating.ease_of_use,
                rating.cost_effectiveness,
                rating.feedback_text,
                int(rating.would_recommend),
            ),
        )
        row = self.fetchone(
            "SELECT AVG(effectiveness) AS avg_eff FROM candidate_feedback WHERE candidate_id = ?;",
            (candidate_id,),
        )
        new_rating = round(float(row["avg_eff"]), 2) if row and row["avg_eff"] is not None else 0.0
        self.execute(
            """
            UPDATE candidates
            SET effectiveness_rating = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            WHERE candidate_id = ?;
            """,
            (new_rating, candidate_id),
        )
        logger.info("Rated candidate %s by %s → effectiveness %.2f", candidate_id, user_id, new_rating)
        return new_rating

    def feedback_summary(self, candidate_id: str) -> dict[str, Any]:
        """Aggregate feedback: ``feedback_count``, ``average_rating``, ``recommend_rate``.

        The two averages are ``None`` when nobody has rated the candidate.
        """
        row = self.fetchone(
            """
            SELECT COUNT(*)             AS n,
                   AVG(rating)          AS avg_rating,
                   AVG(would_recommend) AS recommend_share
            FROM candidate_feedback
            WHERE candidate_id = ?;
            """,
            (candidate_id,),
        )
        n = int(row["n"]) if row is not None else 0
        if n == 0:
            return {"feedback_count": 0, "average_rating": None, "recommend_rate": None}
        return {
            "feedback_count": n,
            "average_rating": round(float(row["avg_rating"]), 2),
            "recommend_rate": round(100.0 * float(row["recommend_share"]), 1),
        }

    def _row_to_candidate(self, row: sqlite3.Row) -> Optional[Candidate]:
        record: dict[str, Any] = dict(row)
        for col in _JSON_COLUMNS:
            record[col] = from_json(record.get(col))
        record["verified"] = bool(record.get("verified"))
        try:
            return Candidate.from_record(record)
        except (ValidationError, ValueError, TypeError, OverflowError) as exc:
            logger.warning("Skipping invalid candidate row %s: %s", record.get("candidate_id"), exc)
            return None
