"""
Catalog seed loader: JSON → validated ``Candidate`` → SQLite.

Responsibilities
----------------
1. Read a catalog JSON file (``config/catalog/organic_recipes.json`` by
   default): an array of candidate objects, or ``{"candidates": [...]}``.
2. Validate every record through ``Candidate.from_record`` and reject the
   whole file on the first problem, so a bad seed never half-loads.
3. Upsert the candidates into the ``candidates`` table.

Entries whose only keys start with ``_comment`` are ignored.

Validation rules
----------------
- Every record needs an id (``candidate_id`` or ``id``).
- Duplicate ids are rejected.
- Every record must pass ``Candidate`` validation (known category, rating in
  0–5, compliance in 0–100, non-negative cost).

Usage
-----
    from organic_advisor.catalog.seed_loader import import_catalog

    with open_database(config.database) as conn:
        n = import_catalog(conn, Path("config/catalog/organic_recipes.json"))
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from organic_advisor.db.repositories.candidate_repo import CandidateRepository
from organic_advisor.models.candidate import Candidate

log = logging.getLogger(__name__)


def read_catalog_records(path: Path) -> list[dict[str, Any]]:
    """Read raw candidate records from ``path``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file is not a JSON array / ``{"candidates": [...]}``.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("candidates")
    if not isinstance(raw, list):
        raise ValueError(f"Catalog file {path} must contain a JSON array of candidates.")
    return [
        r for r in raw
        if isinstance(r, dict) and any(not k.startswith("_comment") for k in r)
    ]


def parse_catalog(records: list[dict[str, Any]]) -> list[Candidate]:
    """Validate raw records into candidates.

    Raises:
        ValueError: On a missing or duplicate id, or an invalid record.
    """
    seen: set[str] = set()
    candidates: list[Candidate] = []
    for i, rec in enumerate(records):
        cid = rec.get("candidate_id") or rec.get("id")
        if not cid:
            raise ValueError(f"Candidate at index {i} is missing 'candidate_id'.")
        cid = str(cid)
        if cid in seen:
            raise ValueError(f"Duplicate candidate id '{cid}' at index {i}.")
        seen.add(cid)
        try:
            candidates.append(Candidate.from_record(rec))
        except (ValidationError, ValueError, TypeError, OverflowError) as exc:
            raise ValueError(f"Candidate '{cid}' at index {i} is invalid: {exc}") from exc
    return candidates


def import_catalog(conn: sqlite3.Connection, path: Path) -> int:
    """Load, validate, and upsert a catalog file.  Returns the count upserted."""
    log.info("Loading catalog from %s", path)
    candidates = parse_catalog(read_catalog_records(path))

    repo = CandidateRepository(conn)
    for candidate in candidates:
        repo.upsert(candidate)
    conn.commit()

    unverified = sum(1 for c in candidates if not c.verified)
    if unverified:
        log.warning("%d imported candidate(s) are unverified and will not be recommended.", unverified)
    log.info("Upserted %d candidates into the catalog.", len(candidates))
    return len(candidates)
