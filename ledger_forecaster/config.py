"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``       committed static defaults
  2. ``config/local.toml``         optional local overrides (gitignored)
  3. ``.env``                      local secrets and env overrides (gitignored)
  4. Environment variables         ``LEDGER_FORECASTER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The aggregation store, forecasting engine, pipeline stages and CLI commands
all receive an ``AppConfig`` instance, never raw dicts or individual env var
lookups scattered through the codebase.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/ledger.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class LedgerConfig(BaseModel):
    """Ledger-wide settings."""

    model_config = ConfigDict(frozen=True)

    reporting_currency: str = "USD"

    @field_validator("reporting_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"reporting_currency must be a 3-letter code, got '{v}'.")
        return v


class AggregationConfig(BaseModel):
    """Aggregate view rebuild parameters."""

    model_config = ConfigDict(frozen=True)

    anomaly_std_multiplier: float = 2.0
    anomaly_min_periods: int = 3
    correlation_min_overlap: int = 2
    refresh_interval_seconds: int = 3600
    persist_views: bool = True

    @field_validator("anomaly_min_periods", "correlation_min_overlap")
    @classmethod
    def validate_min_counts(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"Minimum period counts must be >= 2, got {v}.")
        return v

    @field_validator("refresh_interval_seconds")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"refresh_interval_seconds must be positive, got {v}.")
        return v


class ForecastConfig(BaseModel):
    """Forecast generation settings."""

    model_config = ConfigDict(frozen=True)

    default_horizon_months: int = 6

    @field_validator("default_horizon_months")
    @classmethod
    def validate_horizon(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"default_horizon_months must be >= 1, got {v}.")
        return v


class RiskConfig(BaseModel):
    """Risk score weights and level thresholds."""

    model_config = ConfigDict(frozen=True)

    volatility_high: float = 20.0
    volatility_medium: float = 10.0
    volatility_weight: float = 0.4
    trend_weight: float = 30.0
    change_weight: float = 0.3

    @model_validator(mode="after")
    def validate_thresholds(self) -> "RiskConfig":
        if self.volatility_medium >= self.volatility_high:
            raise ValueError(
                f"volatility_medium ({self.volatility_medium}) must be < "
                f"volatility_high ({self.volatility_high})."
            )
        return self


class GoalConfig(BaseModel):
    """Goal prediction settings.

    ``model_weights`` is the strategy table used to combine the per-month
    predictions of the linear, exponential and seasonal models.
    """

    model_config = ConfigDict(frozen=True)

    days_per_month: int = 30
    model_weights: dict[str, float] = {"linear": 1.0, "exponential": 1.0, "seasonal": 1.0}

    @field_validator("model_weights")
    @classmethod
    def validate_weights(cls, v: dict[str, float]) -> dict[str, float]:
        valid = {"linear", "exponential", "seasonal"}
        unknown = set(v) - valid
        if unknown:
            raise ValueError(f"Unknown model kinds in model_weights: {sorted(unknown)}.")
        if any(w < 0 for w in v.values()):
            raise ValueError("model_weights must be non-negative.")
        if not any(w > 0 for w in v.values()):
            raise ValueError("At least one model weight must be positive.")
        return v


class ScenarioConfig(BaseModel):
    """Scenario projection settings."""

    model_config = ConfigDict(frozen=True)

    horizon_months: int = 12
    factors: dict[str, float] = {"optimistic": 1.2, "realistic": 1.0, "pessimistic": 0.8}

    @field_validator("factors")
    @classmethod
    def validate_factors(cls, v: dict[str, float]) -> dict[str, float]:
        required = {"optimistic", "realistic", "pessimistic"}
        if set(v) != required:
            raise ValueError(f"factors must define exactly {sorted(required)}, got {sorted(v)}.")
        if not v["optimistic"] >= v["realistic"] >= v["pessimistic"] > 0:
            raise ValueError("factors must satisfy optimistic >= realistic >= pessimistic > 0.")
        return v


class ExportConfig(BaseModel):
    """Output file locations."""

    model_config = ConfigDict(frozen=True)

    output_dir: str = "data/outputs"


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/ledger_forecaster.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration, the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    ledger: LedgerConfig = LedgerConfig()
    aggregation: AggregationConfig = AggregationConfig()
    forecast: ForecastConfig = ForecastConfig()
    risk: RiskConfig = RiskConfig()
    goals: GoalConfig = GoalConfig()
    scenarios: ScenarioConfig = ScenarioConfig()
    export: ExportConfig = ExportConfig()
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

    load_dotenv(dotenv_path=root / ".env", override=False)

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

    raw = _apply_env_overrides(raw)

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
    """Apply LEDGER_FORECASTER_* env vars to the raw config dict.

    Supported overrides:
      LEDGER_FORECASTER_DB_PATH    → raw["database"]["db_path"]
      LEDGER_FORECASTER_LOG_LEVEL  → raw["logging"]["level"]
      LEDGER_FORECASTER_CURRENCY   → raw["ledger"]["reporting_currency"]
      LEDGER_FORECASTER_DEBUG      → raw["debug"]
    """
    if db_path := os.environ.get("LEDGER_FORECASTER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("LEDGER_FORECASTER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if currency := os.environ.get("LEDGER_FORECASTER_CURRENCY"):
        raw.setdefault("ledger", {})["reporting_currency"] = currency

    if debug := os.environ.get("LEDGER_FORECASTER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        ledger=LedgerConfig(**raw.get("ledger", {})),
        aggregation=AggregationConfig(**raw.get("aggregation", {})),
        forecast=ForecastConfig(**raw.get("forecast", {})),
        risk=RiskConfig(**raw.get("risk", {})),
        goals=GoalConfig(**raw.get("goals", {})),
        scenarios=ScenarioConfig(**raw.get("scenarios", {})),
        export=ExportConfig(**raw.get("export", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
