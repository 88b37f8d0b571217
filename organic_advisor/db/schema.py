"""
SQLite schema DDL for the record store.

Every statement uses ``IF NOT EXISTS``, so ``apply_schema()`` is idempotent.

List-valued fields (crops, issues, ingredients, steps, seasons) are stored as
JSON TEXT and queried with the JSON1 functions (``json_each``,
``json_array_length``) that ship with SQLite.

Table creation order respects foreign keys:
  1. candidates          (no FKs)
  2. user_profiles       (no FKs)
  3. user_fields         (no FKs; user rows may arrive before a profile)
  4. action_instances    (→ candidates, nullable for enrichment actions)
  5. candidate_feedback  (→ candidates)
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_CANDIDATES = """
CREATE TABLE IF NOT EXISTS candidates (
    candidate_id          TEXT    PRIMARY KEY,
    name                  TEXT    NOT NULL,
    category              TEXT    NOT NULL,
    target_crops          TEXT    NOT NULL DEFAULT '[]',
    target_issues         TEXT    NOT NULL DEFAULT '[]',
    ingredients           TEXT    NOT NULL DEFAULT '[]',
    instructions          TEXT    NOT NULL DEFAULT '[]',
    effectiveness_rating  REAL    NOT NULL DEFAULT 0.0,
    cost_per_unit         REAL    NOT NULL DEFAULT 0.0,
    organic_compliance    REAL    NOT NULL DEFAULT 100.0,
    seasonality           TEXT    NOT NULL DEFAULT '[]',
    verified              INTEGER NOT NULL DEFAULT 0,
    purpose               TEXT    NOT NULL DEFAULT '',
    time_to_result        TEXT,
    preparation_time_min  INTEGER NOT NULL DEFAULT 0,
    safety_notes          TEXT    NOT NULL DEFAULT '[]',
    created_at            TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at            TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_CANDIDATES_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_candidates_verified_category
    ON candidates (verified, category);
"""

_DDL_USER_PROFILES = """
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id              TEXT    PRIMARY KEY,
    region               TEXT,
    crops                TEXT    NOT NULL DEFAULT '[]',
    issues               TEXT    NOT NULL DEFAULT '[]',
    available_materials  TEXT    NOT NULL DEFAULT '[]',
    soil_type            TEXT,
    updated_at           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_USER_FIELDS = """
CREATE TABLE IF NOT EXISTS user_fields (
    field_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT    NOT NULL,
    name        TEXT    NOT NULL DEFAULT 'Main Field',
    crop_type   TEXT,
    size        REAL,
    location    TEXT,
    soil_type   TEXT,
    issues      TEXT    NOT NULL DEFAULT '[]',
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_user_fields_user ON user_fields (user_id);
"""

_DDL_ACTION_INSTANCES = """
CREATE TABLE IF NOT EXISTS action_instances (
    action_id     TEXT    PRIMARY KEY,
    user_id       TEXT    NOT NULL,
    candidate_id  TEXT    REFERENCES candidates(candidate_id),
    source        TEXT    NOT NULL,
    context_day   TEXT    NOT NULL,
    payload       TEXT    NOT NULL,
    completed     INTEGER NOT NULL DEFAULT 0,
    completed_at  TEXT,
    rating        INTEGER,
    notes         TEXT,
    created_at    TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_action_instances_user_day
    ON action_instances (user_id, context_day);
"""

_DDL_CANDIDATE_FEEDBACK = """
CREATE TABLE IF NOT EXISTS candidate_feedback (
    candidate_id        TEXT    NOT NULL REFERENCES candidates(candidate_id),
    user_id             TEXT    NOT NULL,
    rating              INTEGER NOT NULL,
    effectiveness       INTEGER NOT NULL,
    ease_of_use         INTEGER NOT NULL,
    cost_effectiveness  INTEGER NOT NULL,
    feedback_text       TEXT,
    would_recommend     INTEGER NOT NULL DEFAULT 1,
    created_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (candidate_id, user_id)
);
"""

_ALL_DDL = [
    _DDL_CANDIDATES,
    _DDL_CANDIDATES_INDEXES,
    _DDL_USER_PROFILES,
    _DDL_USER_FIELDS,
    _DDL_ACTION_INSTANCES,
    _DDL_CANDIDATE_FEEDBACK,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "candidates",
    "user_profiles",
    "user_fields",
    "action_instances",
    "candidate_feedback",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create every table and index that does not exist yet."""
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' "
        "AND name NOT LIKE 'sqlite_%' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
