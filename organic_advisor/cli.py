"""
Organic Advisor CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the action (DB init, catalog import, recommendation, etc.).
  5. Report the result to stdout.

Install and run::

    pip install -e .
    organic-advisor --help
    organic-advisor init-db
    organic-advisor validate-config
    organic-advisor import-catalog
    organic-advisor daily-action farmer-42
    organic-advisor search --crop maize --issue armyworm
    organic-advisor rate garlic-chili-maize-spray farmer-42 --rating 5 --effectiveness 4
    organic-advisor effectiveness garlic-chili-maize-spray
    organic-advisor complete farmer-42 <action-id> --rating 5 --notes "worked"
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="organic-advisor",
    help="Organic Advisor: daily organic farming actions from a curated remedy catalog.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from organic_advisor.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    from organic_advisor.utils.logging import configure_logging
    configure_logging(config.logging)


def _with_db_path(config, db_path: Optional[str]):
    """Return ``config`` with ``database.db_path`` overridden, if given."""
    if not db_path:
        return config
    database = config.database.model_copy(update={"db_path": db_path})
    return config.model_copy(update={"database": database})


def _service(config):
    from organic_advisor.service import RecommendationService
    service = RecommendationService.from_config(config)
    service.store.initialize()
    return service


_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")
_DB_OPTION = typer.Option(None, "--db-path", help="Override DB path from config.")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Initialize the SQLite database and apply the schema.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from organic_advisor.db.connection import open_database
    from organic_advisor.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _with_db_path(_load_config_or_exit(config_path), db_path)
    _configure_logging(config)

    typer.echo(f"Initializing database at: {config.database.db_path}")
    with open_database(config.database) as conn:
        apply_schema(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(False, "--full", help="Print the full config as JSON."),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)
    rec = config.recommendation

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  Catalog seed:      {config.catalog.seed_file}")
    typer.echo(f"  Hemisphere:        {rec.hemisphere}")
    typer.echo(f"  Recency window:    {rec.recency_window}")
    typer.echo(f"  Retrieval timeout: {rec.retrieval_timeout_s}s")
    typer.echo(f"  Cache TTL:         {config.cache.ttl_seconds}s")
    enrichment = "enabled" if config.enrichment.enabled else "disabled"
    if config.enrichment.enabled and not config.enrichment.api_key():
        enrichment += f" (no {config.enrichment.api_key_env} set; will fall back)"
    typer.echo(f"  Enrichment:        {enrichment}")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("import-catalog")
def import_catalog_cmd(
    catalog_file: Optional[str] = typer.Option(
        None,
        "--catalog-file",
        help="Catalog JSON to import (default: [catalog].seed_file).",
    ),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Validate a catalog JSON file and upsert its candidates."""
    from organic_advisor.catalog.seed_loader import import_catalog
    from organic_advisor.db.connection import open_database
    from organic_advisor.db.repositories.candidate_repo import CandidateRepository
    from organic_advisor.db.schema import apply_schema

    config = _with_db_path(_load_config_or_exit(config_path), db_path)
    _configure_logging(config)

    path = Path(catalog_file or config.catalog.seed_file)
    if not path.exists():
        typer.echo(f"[ERROR] Catalog file not found: {path}", err=True)
        raise typer.Exit(code=1)

    try:
        with open_database(config.database) as conn:
            apply_schema(conn)
            count = import_catalog(conn, path)
            repo = CandidateRepository(conn)
            total, verified = repo.count(), repo.count(verified_only=True)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Candidates upserted: {count}")
    typer.echo(f"  Catalog now holds:   {total} ({verified} verified)")
    typer.echo("[OK] Catalog imported.")


@app.command("daily-action")
def daily_action(
    user_id: str = typer.Argument(..., help="User to recommend for."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print today's organic action for USER_ID."""
    from organic_advisor.reporting.formatters import format_action, format_unavailable

    config = _with_db_path(_load_config_or_exit(config_path), db_path)
    _configure_logging(config)

    result = asyncio.run(_service(config).get_daily_action(user_id))

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
    elif result.status == "ok":
        typer.echo(format_action(result.action))
    else:
        typer.echo(format_unavailable(result.reason, result.message))
    if result.status != "ok":
        raise typer.Exit(code=2)


@app.command("search")
def search(
    crop: Optional[str] = typer.Option(None, "--crop", help="Crop to search for."),
    issues: Optional[list[str]] = typer.Option(None, "--issue", help="Issue tag (repeatable)."),
    category: Optional[str] = typer.Option(None, "--category", help="Category or alias."),
    top: Optional[int] = typer.Option(None, "--top", help="Max results (default from config)."),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Rank verified catalog remedies for a crop / issue / category query."""
    from organic_advisor.interfaces import CandidateQuery
    from organic_advisor.reporting.formatters import format_ranked_candidates
    from organic_advisor.taxonomy.crop_taxonomy import parse_category

    config = _with_db_path(_load_config_or_exit(config_path), db_path)
    _configure_logging(config)

    try:
        parsed_category = parse_category(category) if category else None
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    query = CandidateQuery(crop=crop, issues=issues or [], category=parsed_category)
    ranked = asyncio.run(_service(config).search_candidates(query, top))
    typer.echo(format_ranked_candidates(ranked))


@app.command("rate")
def rate(
    candidate_id: str = typer.Argument(..., help="Candidate to rate."),
    user_id: str = typer.Argument(..., help="Rating user."),
    rating: int = typer.Option(..., "--rating", min=1, max=5, help="Overall rating 1-5."),
    effectiveness: Optional[int] = typer.Option(None, "--effectiveness", min=1, max=5),
    ease_of_use: Optional[int] = typer.Option(None, "--ease-of-use", min=1, max=5),
    cost_effectiveness: Optional[int] = typer.Option(None, "--cost-effectiveness", min=1, max=5),
    feedback: Optional[str] = typer.Option(None, "--feedback", help="Free-text feedback."),
    not_recommended: bool = typer.Option(False, "--not-recommended"),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Rate a catalog remedy; unspecified sub-scores default to --rating."""
    from organic_advisor.errors import CandidateNotFound
    from organic_advisor.models.action import CandidateRating

    config = _with_db_path(_load_config_or_exit(config_path), db_path)
    _configure_logging(config)

    candidate_rating = CandidateRating(
        rating=rating,
        effectiveness=effectiveness or rating,
        ease_of_use=ease_of_use or rating,
        cost_effectiveness=cost_effectiveness or rating,
        feedback_text=feedback,
        would_recommend=not not_recommended,
    )
    try:
        new_rating = asyncio.run(
            _service(config).rate_candidate(candidate_id, user_id, candidate_rating)
        )
    except CandidateNotFound as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  New effectiveness rating: {new_rating:.2f}/5")
    typer.echo("[OK] Rating recorded.")


@app.command("effectiveness")
def effectiveness(
    candidate_id: str = typer.Argument(..., help="Candidate to summarize."),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show how a catalog remedy has performed in use and in user ratings."""
    from organic_advisor.errors import CandidateNotFound
    from organic_advisor.reporting.formatters import format_effectiveness

    config = _with_db_path(_load_config_or_exit(config_path), db_path)
    _configure_logging(config)

    try:
        eff = asyncio.run(_service(config).candidate_effectiveness(candidate_id))
    except CandidateNotFound as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(format_effectiveness(eff))


@app.command("complete")
def complete(
    user_id: str = typer.Argument(..., help="User who completed the action."),
    action_id: str = typer.Argument(..., help="Completed action id."),
    rating: Optional[int] = typer.Option(None, "--rating", min=1, max=5),
    notes: Optional[str] = typer.Option(None, "--notes"),
    db_path: Optional[str] = _DB_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Mark an action as completed, with optional feedback."""
    from organic_advisor.models.action import ActionFeedback
    from organic_advisor.utils.time_utils import utcnow

    config = _with_db_path(_load_config_or_exit(config_path), db_path)
    _configure_logging(config)

    fb = ActionFeedback(rating=rating, notes=notes, completed_at=utcnow())
    found = asyncio.run(_service(config).mark_completed(user_id, action_id, fb))
    if not found:
        typer.echo(f"[ERROR] Unknown action id: {action_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Action marked completed.")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
