"""
Tests for organic_advisor/cli.py using typer's ``CliRunner``.

Every test runs in a temporary working directory with its own database, so
log files and the SQLite file never touch the repository.

What we test
------------
  - init-db / import-catalog set up a usable database.
  - daily-action prints a card, or JSON, and exits 2 on an empty catalog.
  - search ranks, rejects unknown categories.
  - rate / complete / effectiveness report unknown ids with exit code 1.
  - effectiveness summarizes ratings recorded through rate.
  - validate-config prints the parsed settings.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from organic_advisor.cli import app

SEED_FILE = Path(__file__).resolve().parents[2] / "config" / "catalog" / "organic_recipes.json"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ORGANIC_ADVISOR_LOG_LEVEL", "ERROR")
    monkeypatch.delenv("ORGANIC_ADVISOR_DB_PATH", raising=False)
    monkeypatch.delenv("ORGANIC_ADVISOR_ENRICHMENT_ENABLED", raising=False)
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "advisor.db")


@pytest.fixture
def seeded_db(db_path) -> str:
    result = runner.invoke(app, ["import-catalog", "--catalog-file", str(SEED_FILE), "--db-path", db_path])
    assert result.exit_code == 0, result.output
    return db_path


# ── Setup commands ─────────────────────────────────────────────────────────────

def test_init_db(db_path):
    result = runner.invoke(app, ["init-db", "--db-path", db_path])
    assert result.exit_code == 0, result.output
    assert "[OK] Database ready." in result.output
    assert Path(db_path).exists()


def test_import_catalog(seeded_db):
    result = runner.invoke(
        app, ["import-catalog", "--catalog-file", str(SEED_FILE), "--db-path", seeded_db]
    )
    assert result.exit_code == 0
    assert "Candidates upserted: 12" in result.output
    assert "Catalog now holds:   12 (11 verified)" in result.output


def test_import_catalog_missing_file(db_path, tmp_path):
    result = runner.invoke(
        app, ["import-catalog", "--catalog-file", str(tmp_path / "none.json"), "--db-path", db_path]
    )
    assert result.exit_code == 1


def test_import_catalog_invalid_file(db_path, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([{"name": "No id", "category": "fertilizer"}]), encoding="utf-8")
    result = runner.invoke(app, ["import-catalog", "--catalog-file", str(bad), "--db-path", db_path])
    assert result.exit_code == 1


def test_validate_config():
    result = runner.invoke(app, ["validate-config"])
    assert result.exit_code == 0, result.output
    assert "Cache TTL:         3600s" in result.output
    assert "[OK] Config valid." in result.output


def test_validate_config_missing_file(tmp_path):
    result = runner.invoke(app, ["validate-config", "--config", str(tmp_path / "nope.toml")])
    assert result.exit_code == 1


# ── daily-action ───────────────────────────────────────────────────────────────

class TestDailyAction:
    def test_card(self, seeded_db):
        result = runner.invoke(app, ["daily-action", "farmer-42", "--db-path", seeded_db])
        assert result.exit_code == 0, result.output
        assert "Today's Organic Action:" in result.output
        assert "Action id:" in result.output

    def test_json(self, seeded_db):
        result = runner.invoke(app, ["daily-action", "farmer-42", "--json", "--db-path", seeded_db])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["status"] == "ok"
        assert payload["action"]["source"] == "catalog"

    def test_empty_catalog(self, db_path):
        result = runner.invoke(app, ["daily-action", "farmer-42", "--db-path", db_path])
        assert result.exit_code == 2
        assert "[UNAVAILABLE]" in result.output
        assert "empty_catalog" in result.output


# ── search / rate / complete ───────────────────────────────────────────────────

class TestSearch:
    def test_ranked(self, seeded_db):
        result = runner.invoke(
            app, ["search", "--crop", "maize", "--issue", "armyworm", "--top", "3", "--db-path", seeded_db]
        )
        assert result.exit_code == 0, result.output
        first_row = [line for line in result.output.splitlines() if line.strip().startswith("1 ")][0]
        assert "Garlic-chili" in first_row

    def test_unknown_category(self, seeded_db):
        result = runner.invoke(app, ["search", "--category", "magic", "--db-path", seeded_db])
        assert result.exit_code == 1


class TestRateAndComplete:
    def test_rate(self, seeded_db):
        result = runner.invoke(
            app,
            ["rate", "compost-tea", "farmer-42", "--rating", "4", "--effectiveness", "3",
             "--db-path", seeded_db],
        )
        assert result.exit_code == 0, result.output
        assert "New effectiveness rating: 3.00/5" in result.output

    def test_rate_unknown_candidate(self, seeded_db):
        result = runner.invoke(app, ["rate", "ghost", "farmer-42", "--rating", "4", "--db-path", seeded_db])
        assert result.exit_code == 1

    def test_rate_out_of_range(self, seeded_db):
        result = runner.invoke(app, ["rate", "compost-tea", "farmer-42", "--rating", "9", "--db-path", seeded_db])
        assert result.exit_code != 0

    def test_complete(self, seeded_db):
        shown = runner.invoke(app, ["daily-action", "farmer-42", "--json", "--db-path", seeded_db])
        action_id = json.loads(shown.output)["action"]["action_id"]
        result = runner.invoke(
            app, ["complete", "farmer-42", action_id, "--rating", "5", "--db-path", seeded_db]
        )
        assert result.exit_code == 0, result.output
        assert "[OK] Action marked completed." in result.output

    def test_complete_unknown(self, seeded_db):
        result = runner.invoke(app, ["complete", "farmer-42", "nope", "--db-path", seeded_db])
        assert result.exit_code == 1


class TestEffectiveness:
    def test_after_rating(self, seeded_db):
        runner.invoke(
            app, ["rate", "compost-tea", "farmer-42", "--rating", "4", "--db-path", seeded_db]
        )
        result = runner.invoke(app, ["effectiveness", "compost-tea", "--db-path", seeded_db])
        assert result.exit_code == 0, result.output
        assert "0 recommended, 0 completed (n/a success)" in result.output
        assert "1 rating(s), average 4.00/5, 100.0% would recommend" in result.output

    def test_unknown_candidate(self, seeded_db):
        result = runner.invoke(app, ["effectiveness", "ghost", "--db-path", seeded_db])
        assert result.exit_code == 1
