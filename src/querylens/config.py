"""
Configuration system for QueryLens.

Settings come from environment variables, or from a JSON/YAML file named
by QUERYLENS_CONFIG_FILE:
- Global report and analyzer settings
- Per-detector enable switches
- Per-detector thresholds, validated later by each detector's config_schema

Usage:
    from querylens.config import get_config

    config = get_config()

    if config.is_detector_enabled("HEAVY_AGGREGATION"):
        ...

    overrides = config.detector_overrides("MISSING_INDEX")
    # {"min_cost_percentage": 10.0}

A config file looks like:

    environment: production
    fail_fast: false
    detectors:
      MISSING_INDEX:
        thresholds:
          min_cost_percentage: 10
      HEAVY_AGGREGATION:
        enabled: false
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUERYLENS_"
DETECTOR_PREFIX = f"{ENV_PREFIX}DETECTOR_"


class Environment(str, Enum):
    """Environment profiles."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """Parse environment from string, defaulting to development."""
        try:
            return cls(value.lower())
        except ValueError:
            return cls.DEVELOPMENT


class DetectorSettings(BaseModel):
    """Configuration for a single detector."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether the detector runs")
    thresholds: dict[str, Any] = Field(
        default_factory=dict,
        description="Detector-specific settings, validated by its config_schema",
    )


class Config(BaseModel):
    """
    QueryLens configuration.

    Loaded from environment variables or an optional config file.
    """

    model_config = ConfigDict(frozen=True)

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Current environment (development/staging/production)",
    )

    fail_fast: bool = Field(
        default=False,
        description="Raise DetectorError on the first detector failure",
    )

    detectors: dict[str, DetectorSettings] = Field(
        default_factory=dict,
        description="Per-detector settings keyed by detector ID",
    )

    cost_breakdown_min_percent: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Findings below this share are left out of the cost breakdown",
    )

    report_width: int = Field(
        default=80,
        ge=40,
        le=200,
        description="Width of the text report",
    )

    use_mock_plan: bool = Field(
        default=True,
        description="Synthesize a heuristic plan when none is supplied",
    )

    def is_detector_enabled(self, detector_id: str) -> bool:
        """Check if a detector is enabled."""
        if detector_id in self.detectors:
            return self.detectors[detector_id].enabled
        return True

    def detector_overrides(self, detector_id: str) -> dict[str, Any]:
        """Threshold overrides to feed into the detector's config_schema."""
        if detector_id in self.detectors:
            return dict(self.detectors[detector_id].thresholds)
        return {}


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_env_float(value: str | None, default: float) -> float:
    """Parse float from environment variable."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _split_detector_key(rest: str, known_ids: Iterable[str]) -> tuple[str, str] | None:
    """
    Split "MISSING_INDEX_MIN_COST_PERCENTAGE" into detector ID and setting.

    Known detector IDs are matched longest first, since both parts may
    contain underscores. Unknown IDs fall back to splitting at the last
    underscore.
    """
    for detector_id in sorted(known_ids, key=len, reverse=True):
        if rest.startswith(detector_id + "_") and len(rest) > len(detector_id) + 1:
            return detector_id, rest[len(detector_id) + 1:].lower()

    if "_" not in rest:
        return None
    detector_id, setting = rest.rsplit("_", 1)
    return detector_id, setting.lower()


def _registered_detector_ids() -> list[str]:
    from querylens.analyzer.registry import get_registry

    return get_registry().all_ids()


def load_config_from_env(known_detector_ids: Iterable[str] | None = None) -> Config:
    """
    Load configuration from environment variables.

    Environment variable naming convention:
    - QUERYLENS_<SETTING> for global settings
    - QUERYLENS_DETECTOR_<DETECTOR_ID>_<SETTING> for detector settings

    Examples:
    - QUERYLENS_ENVIRONMENT=production
    - QUERYLENS_FAIL_FAST=true
    - QUERYLENS_REPORT_WIDTH=100
    - QUERYLENS_DETECTOR_HEAVY_AGGREGATION_ENABLED=false
    - QUERYLENS_DETECTOR_MISSING_INDEX_MIN_COST_PERCENTAGE=10.0

    Args:
        known_detector_ids: IDs used to split detector variables. Defaults
            to the IDs in the global registry.
    """
    if known_detector_ids is None:
        known_detector_ids = _registered_detector_ids()
    known_ids = list(known_detector_ids)

    env_str = os.environ.get(f"{ENV_PREFIX}ENVIRONMENT", "development")

    config_kwargs: dict[str, Any] = {
        "environment": Environment.from_string(env_str),
        "fail_fast": _parse_env_bool(
            os.environ.get(f"{ENV_PREFIX}FAIL_FAST"), False
        ),
        "cost_breakdown_min_percent": _parse_env_float(
            os.environ.get(f"{ENV_PREFIX}COST_BREAKDOWN_MIN_PERCENT"), 5.0
        ),
        "report_width": _parse_env_int(
            os.environ.get(f"{ENV_PREFIX}REPORT_WIDTH"), 80
        ),
        "use_mock_plan": _parse_env_bool(
            os.environ.get(f"{ENV_PREFIX}USE_MOCK_PLAN"), True
        ),
    }

    detectors: dict[str, DetectorSettings] = {}

    for key, value in os.environ.items():
        if not key.startswith(DETECTOR_PREFIX):
            continue

        parts = _split_detector_key(key[len(DETECTOR_PREFIX):], known_ids)
        if parts is None:
            logger.warning("Ignoring malformed detector setting %s", key)
            continue
        detector_id, setting = parts

        current = detectors.get(detector_id, DetectorSettings())

        if setting == "enabled":
            detectors[detector_id] = current.model_copy(
                update={"enabled": _parse_env_bool(value, True)}
            )
        else:
            thresholds = dict(current.thresholds)
            try:
                thresholds[setting] = float(value) if "." in value else int(value)
            except ValueError:
                logger.warning("Could not parse threshold %s=%s", key, value)
                continue
            detectors[detector_id] = current.model_copy(
                update={"thresholds": thresholds}
            )

    config_kwargs["detectors"] = detectors

    return Config(**config_kwargs)


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file is missing or invalid.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return Config(**(data or {}))
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        return load_config_from_env()


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. QUERYLENS_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
