"""Configuration loading for devfolio-insights.

Precedence (highest to lowest):
1. Explicit overrides passed to ``load_config`` (CLI flags)
2. Environment variables (``DEVFOLIO_*``)
3. YAML config file
4. Dataclass defaults
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .cache.strategies import CACHE_STRATEGIES
from .ml.anomaly_detector import (
    DEFAULT_CHANGE_THRESHOLD,
    DEFAULT_OUTLIER_THRESHOLD,
    DEFAULT_SCORING_METHOD,
    SCORING_METHODS,
)
from .ml.career_progression import STAGE_THRESHOLDS, SUSTAIN_PERIODS
from .ml.match_scorer import IDEAL_EXPERIENCE_YEARS
from .models import STAGE_ORDER

logger = logging.getLogger(__name__)

ENV_PREFIX = "DEVFOLIO_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Cache strategy used by each engine operation unless configured otherwise
DEFAULT_OPERATION_STRATEGIES: dict[str, str] = {
    "growth_predictions": "githubStats",
    "series_anomalies": "standard",
    "career_trajectory": "profile",
    "career_milestones": "profile",
    "match_scores": "searchResults",
}


class ConfigurationError(Exception):
    """Configuration is invalid or incomplete."""


@dataclass
class AnalyticsConfig:
    """Effective settings for the analytics engine and CLI."""

    outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD
    change_threshold: float = DEFAULT_CHANGE_THRESHOLD
    outlier_method: str = DEFAULT_SCORING_METHOD
    ideal_experience_years: float = IDEAL_EXPERIENCE_YEARS
    forecast_periods: int = 3
    sustain_periods: int = SUSTAIN_PERIODS
    stage_thresholds: dict[str, float] = field(
        default_factory=lambda: dict(STAGE_THRESHOLDS)
    )
    operation_strategies: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_OPERATION_STRATEGIES)
    )
    cache_max_entries: int | None = 1000
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check every setting.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        if self.outlier_threshold <= 0:
            raise ConfigurationError("outlier_threshold must be positive")
        if self.change_threshold <= 0:
            raise ConfigurationError("change_threshold must be positive")
        if self.outlier_method not in SCORING_METHODS:
            raise ConfigurationError(
                f"outlier_method must be one of {', '.join(SCORING_METHODS)}, "
                f"got '{self.outlier_method}'"
            )
        if self.ideal_experience_years < 0:
            raise ConfigurationError("ideal_experience_years must not be negative")
        if self.forecast_periods < 1:
            raise ConfigurationError("forecast_periods must be at least 1")
        if self.sustain_periods < 1:
            raise ConfigurationError("sustain_periods must be at least 1")
        if self.cache_max_entries is not None and self.cache_max_entries < 1:
            raise ConfigurationError("cache_max_entries must be at least 1")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log_level: {self.log_level}")
        self.log_level = self.log_level.upper()

        unknown_stages = set(self.stage_thresholds) - set(STAGE_ORDER)
        if unknown_stages:
            raise ConfigurationError(
                f"Unknown stages in stage_thresholds: {', '.join(sorted(unknown_stages))}"
            )
        merged = {
            stage: float({**STAGE_THRESHOLDS, **self.stage_thresholds}[stage])
            for stage in STAGE_ORDER
        }
        ordered = list(merged.values())
        if any(b <= a for a, b in zip(ordered, ordered[1:])):
            raise ConfigurationError(
                "stage_thresholds must strictly increase from junior to principal"
            )
        self.stage_thresholds = merged
        self.operation_strategies = {
            **DEFAULT_OPERATION_STRATEGIES,
            **self.operation_strategies,
        }

        for operation, strategy in self.operation_strategies.items():
            if operation not in DEFAULT_OPERATION_STRATEGIES:
                raise ConfigurationError(f"Unknown operation in strategies: {operation}")
            if strategy not in CACHE_STRATEGIES:
                raise ConfigurationError(
                    f"Unknown cache strategy '{strategy}' for {operation}"
                )

    def strategy_for(self, operation: str) -> str:
        return self.operation_strategies.get(
            operation, DEFAULT_OPERATION_STRATEGIES[operation]
        )

    def log_summary(self) -> None:
        """Log the effective configuration."""
        logger.info("Configuration:")
        logger.info(
            f"  Anomalies: threshold={self.outlier_threshold}, "
            f"change={self.change_threshold}, method={self.outlier_method}"
        )
        logger.info(f"  Forecast periods: {self.forecast_periods}")
        logger.info(f"  Ideal experience: {self.ideal_experience_years} years")
        logger.info(f"  Sustain periods: {self.sustain_periods}")
        logger.info(
            "  Stage thresholds: "
            + ", ".join(f"{k}={v}" for k, v in self.stage_thresholds.items())
        )
        logger.info(
            "  Cache strategies: "
            + ", ".join(f"{k}={v}" for k, v in self.operation_strategies.items())
        )
        logger.info(f"  Cache max entries: {self.cache_max_entries or 'unbounded'}")


_FIELD_NAMES = {f.name for f in fields(AnalyticsConfig)}
_FLOAT_FIELDS = {"outlier_threshold", "change_threshold", "ideal_experience_years"}
_INT_FIELDS = {"forecast_periods", "sustain_periods", "cache_max_entries"}
_MAPPING_FIELDS = {"stage_thresholds", "operation_strategies"}


def _load_yaml_file(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return data


def _convert_env_value(name: str, raw: str) -> Any:
    """Convert a DEVFOLIO_* string to the field's type."""
    try:
        if name in _MAPPING_FIELDS:
            value = json.loads(raw)
            if not isinstance(value, dict):
                raise ValueError("expected a JSON object")
            return value
        if name in _FLOAT_FIELDS:
            return float(raw)
        if name in _INT_FIELDS:
            if name == "cache_max_entries" and raw.lower() in ("", "none", "unbounded"):
                return None
            return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {e}") from e
    return raw


def _load_from_environment() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, raw in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in _FIELD_NAMES:
            values[name] = _convert_env_value(name, raw)
    return values


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if key in _MAPPING_FIELDS and isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = {**result[key], **value}
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None, **overrides: Any) -> AnalyticsConfig:
    """Load configuration from file, environment and overrides.

    Args:
        config_path: Optional YAML config file.
        **overrides: Explicit values; ``None`` means "not set".

    Returns:
        Validated AnalyticsConfig.

    Raises:
        ConfigurationError: If the file is missing or malformed, a key is
            unknown, or a value fails validation.
    """
    values: dict[str, Any] = {}

    if config_path is not None:
        values = _merge(values, _load_yaml_file(Path(config_path)))

    values = _merge(values, _load_from_environment())
    values = _merge(values, {k: v for k, v in overrides.items() if v is not None})

    unknown = set(values) - _FIELD_NAMES
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    for name in _MAPPING_FIELDS & set(values):
        if not isinstance(values[name], dict):
            raise ConfigurationError(f"{name} must be a mapping")

    try:
        return AnalyticsConfig(**values)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
