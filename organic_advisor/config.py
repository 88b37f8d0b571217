"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      : committed static defaults
  2. ``config/local.toml``        : optional local overrides (gitignored)
  3. ``.env``                     : local secrets and env overrides (gitignored)
  4. Environment variables        : ``ORGANIC_ADVISOR_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The service, the SQLite store, and every CLI command receive an ``AppConfig``
instance (or one of its sections), never raw dicts or individual env var
lookups scattered through the codebase.  The one exception is the enrichment
API key, which is read from the environment variable named by
``EnrichmentConfig.api_key_env`` so the secret never lands in a TOML file.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from organic_advisor.taxonomy.crop_taxonomy import CandidateCategory
from organic_advisor.utils.time_utils import VALID_HEMISPHERES

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/organic_advisor.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class CatalogConfig(BaseModel):
    """Candidate catalog seed location."""

    model_config = ConfigDict(frozen=True)

    seed_file: str = "config/catalog/organic_recipes.json"


class RecommendationConfig(BaseModel):
    """Context building and retrieval parameters."""

    model_config = ConfigDict(frozen=True)

    recency_window: int = 10            # recent candidate ids kept in context
    retrieval_timeout_s: float = 5.0    # per relaxed-filter fetch
    hemisphere: str = "north"
    search_top_n: int = 10

    @field_validator("hemisphere")
    @classmethod
    def validate_hemisphere(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in VALID_HEMISPHERES:
            raise ValueError(
                f"hemisphere must be one of {sorted(VALID_HEMISPHERES)}, got '{v}'."
            )
        return v

    @field_validator("retrieval_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"retrieval_timeout_s must be > 0, got {v}.")
        return v

    @field_validator("recency_window", "search_top_n")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"value must be >= 0, got {v}.")
        return v


_DEFAULT_BASELINES: dict[str, float] = {
    CandidateCategory.PESTICIDE.value:       25.0,
    CandidateCategory.FERTILIZER.value:      15.0,
    CandidateCategory.SOIL_AMENDMENT.value:  20.0,
    CandidateCategory.GROWTH_ENHANCER.value: 30.0,
}

_DEFAULT_TIME_TO_RESULT: dict[str, str] = {
    CandidateCategory.PESTICIDE.value:       "24-72 hours",
    CandidateCategory.FERTILIZER.value:      "1-2 weeks",
    CandidateCategory.SOIL_AMENDMENT.value:  "3-6 weeks",
    CandidateCategory.GROWTH_ENHANCER.value: "1-2 weeks",
}


class PolicyConfig(BaseModel):
    """Materialization policy tables.

    The numbers and vocabularies here are plausible, bounded defaults, not
    derived business constants.  Override them in ``config/local.toml``.

    Attributes:
        commercial_baselines:   Category → cost of the commercial alternative
                                (currency-agnostic units per application).
        min_cost_savings:       Floor applied to estimated savings.
        urgent_terms:           Issue terms that make an action ``immediate``.
        moderate_terms:         Issue terms that make an action ``today``.
        default_time_to_result: Category → time-to-result when the catalog
                                entry has none.
    """

    model_config = ConfigDict(frozen=True)

    commercial_baselines: dict[str, float] = dict(_DEFAULT_BASELINES)
    min_cost_savings: float = 1.0
    urgent_terms: list[str] = [
        "pest outbreak", "outbreak", "infestation", "disease spread",
        "nutrient deficiency", "armyworm", "aphids", "caterpillars",
        "locust", "stem borer",
    ]
    moderate_terms: list[str] = [
        "fungal", "blight", "mildew", "rust", "wilt",
        "soil health", "growth booster",
    ]
    default_time_to_result: dict[str, str] = dict(_DEFAULT_TIME_TO_RESULT)

    @model_validator(mode="after")
    def validate_category_tables(self) -> "PolicyConfig":
        required = {c.value for c in CandidateCategory}
        for name in ("commercial_baselines", "default_time_to_result"):
            missing = required - set(getattr(self, name))
            if missing:
                raise ValueError(f"policy.{name} is missing categories: {sorted(missing)}.")
        if self.min_cost_savings <= 0:
            raise ValueError("policy.min_cost_savings must be > 0.")
        return self


class CacheConfig(BaseModel):
    """Daily action cache settings."""

    model_config = ConfigDict(frozen=True)

    ttl_seconds: int = 3600

    @field_validator("ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {v}.")
        return v


class EnrichmentConfig(BaseModel):
    """Generative enrichment collaborator settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.5-flash"
    timeout_s: float = 4.0
    api_key_env: str = "GEMINI_API_KEY"

    @field_validator("timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not 0.0 < v < 10.0:
            raise ValueError(f"enrichment timeout_s must be in (0, 10), got {v}.")
        return v

    def api_key(self) -> Optional[str]:
        """Return the API key from the environment, or ``None`` when unset."""
        return os.environ.get(self.api_key_env) or None


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/organic_advisor.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration: the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env + env vars.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    catalog: CatalogConfig = CatalogConfig()
    recommendation: RecommendationConfig = RecommendationConfig()
    policy: PolicyConfig = PolicyConfig()
    cache: CacheConfig = CacheConfig()
    enrichment: EnrichmentConfig = EnrichmentConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply ORGANIC_ADVISOR_* environment variable overrides
    raw = _apply_env_overrides(raw)

    # 4. Build and validate AppConfig
    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply ORGANIC_ADVISOR_* env vars to the raw config dict.

    Supported overrides:
      ORGANIC_ADVISOR_DB_PATH             → raw["database"]["db_path"]
      ORGANIC_ADVISOR_LOG_LEVEL           → raw["logging"]["level"]
      ORGANIC_ADVISOR_ENRICHMENT_ENABLED  → raw["enrichment"]["enabled"]
      ORGANIC_ADVISOR_DEBUG               → raw["debug"]
    """
    if db_path := os.environ.get("ORGANIC_ADVISOR_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("ORGANIC_ADVISOR_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if enabled := os.environ.get("ORGANIC_ADVISOR_ENRICHMENT_ENABLED"):
        raw.setdefault("enrichment", {})["enabled"] = _truthy(enabled)

    if debug := os.environ.get("ORGANIC_ADVISOR_DEBUG"):
        raw["debug"] = _truthy(debug)

    return raw


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        catalog=CatalogConfig(**raw.get("catalog", {})),
        recommendation=RecommendationConfig(**raw.get("recommendation", {})),
        policy=PolicyConfig(**raw.get("policy", {})),
        cache=CacheConfig(**raw.get("cache", {})),
        enrichment=EnrichmentConfig(**raw.get("enrichment", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
