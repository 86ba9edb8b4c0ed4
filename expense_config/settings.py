"""
Application settings (``expense_config.settings``).

Responsibility
--------------
Loads the YAML configuration file into a tree of frozen dataclasses and
applies environment overrides.  The single public entry point is
``load_settings()``.

Invariants enforced
-------------------
* Every section validates itself in ``__post_init__`` and raises
  ``ValueError`` with a descriptive message; there are no silent defaults
  for malformed values.
* Amounts are ``Decimal``; YAML numbers are routed through ``str``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.

Environment overrides
---------------------
``EXPENSE_DATABASE_URL``  -> database.url
``GOOGLE_MAPS_API_KEY``   -> distance_oracle.api_key
``EXPENSE_LOG_LEVEL``     -> logging.level
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")

ENV_DATABASE_URL = "EXPENSE_DATABASE_URL"
ENV_MAPS_API_KEY = "GOOGLE_MAPS_API_KEY"
ENV_LOG_LEVEL = "EXPENSE_LOG_LEVEL"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
VALID_TRAVEL_MODES = {"driving", "walking", "bicycling", "transit"}
VALID_UNITS = {"metric", "imperial"}


def _decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _section(section_cls, name: str, data: Mapping[str, Any]):
    values = data.get(name) or {}
    try:
        return section_cls(**values)
    except TypeError as exc:
        raise ValueError(f"Invalid {name} section: {exc}") from exc


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///expenses.db"
    echo: bool = False
    pool_size: int = 10

    def __post_init__(self):
        if not self.url or not str(self.url).strip():
            raise ValueError("database.url cannot be empty")
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be at least 1")


@dataclass(frozen=True)
class RateDefaults:
    """Fallbacks used when the settings table has no value."""

    rate_per_km: Decimal = Decimal("8")
    cost_per_machine_visit: Decimal = Decimal("100")

    def __post_init__(self):
        object.__setattr__(self, "rate_per_km", _decimal("rates.rate_per_km", self.rate_per_km))
        object.__setattr__(
            self,
            "cost_per_machine_visit",
            _decimal("rates.cost_per_machine_visit", self.cost_per_machine_visit),
        )
        if self.rate_per_km <= 0:
            raise ValueError("rates.rate_per_km must be positive")
        if self.cost_per_machine_visit < 0:
            raise ValueError("rates.cost_per_machine_visit cannot be negative")


@dataclass(frozen=True)
class OracleSettings:
    """Remote distance-matrix lookup.  No api_key means Haversine only."""

    api_key: str | None = None
    base_url: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    mode: str = "driving"
    units: str = "metric"
    timeout_seconds: float = 10.0
    retries: int = 2
    backoff_seconds: float = 1.0
    enrichment_workers: int = 2
    enrichment_cache_size: int = 500

    def __post_init__(self):
        if self.mode not in VALID_TRAVEL_MODES:
            raise ValueError(
                f"Invalid distance_oracle.mode: {self.mode}. "
                f"Must be one of {sorted(VALID_TRAVEL_MODES)}"
            )
        if self.units not in VALID_UNITS:
            raise ValueError(f"Invalid distance_oracle.units: {self.units}")
        if self.timeout_seconds <= 0:
            raise ValueError("distance_oracle.timeout_seconds must be positive")
        if self.retries < 0:
            raise ValueError("distance_oracle.retries cannot be negative")
        if self.backoff_seconds < 0:
            raise ValueError("distance_oracle.backoff_seconds cannot be negative")
        if self.enrichment_workers < 1:
            raise ValueError("distance_oracle.enrichment_workers must be at least 1")
        if self.enrichment_cache_size < 1:
            raise ValueError("distance_oracle.enrichment_cache_size must be at least 1")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class LedgerSettings:
    # Compare-and-swap attempts on the balance before OptimisticLockError
    max_attempts: int = 5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("ledger.max_attempts must be at least 1")


@dataclass(frozen=True)
class AppSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    rates: RateDefaults = field(default_factory=RateDefaults)
    distance_oracle: OracleSettings = field(default_factory=OracleSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    log_level: str = "INFO"

    def __post_init__(self):
        level = str(self.log_level).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid logging.level: {self.log_level}")
        object.__setattr__(self, "log_level", level)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AppSettings:
        """Build settings from a parsed YAML mapping; missing sections use defaults."""
        return cls(
            database=_section(DatabaseSettings, "database", data),
            rates=_section(RateDefaults, "rates", data),
            distance_oracle=_section(OracleSettings, "distance_oracle", data),
            ledger=_section(LedgerSettings, "ledger", data),
            log_level=(data.get("logging") or {}).get("level", "INFO"),
        )


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _apply_env(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    merged = {key: dict(value or {}) for key, value in data.items()}
    if env.get(ENV_DATABASE_URL):
        merged.setdefault("database", {})["url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_MAPS_API_KEY):
        merged.setdefault("distance_oracle", {})["api_key"] = env[ENV_MAPS_API_KEY]
    if env.get(ENV_LOG_LEVEL):
        merged.setdefault("logging", {})["level"] = env[ENV_LOG_LEVEL]
    return merged


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AppSettings:
    """
    Load settings from ``path`` (default: the packaged defaults.yaml) and
    apply environment overrides from ``env`` (default: ``os.environ``).
    """
    source = Path(path) if path is not None else DEFAULTS_PATH
    data = load_yaml_file(source)
    if not isinstance(data, dict):
        raise ValueError(f"{source} must contain a mapping at the top level")
    return AppSettings.from_dict(_apply_env(data, os.environ if env is None else env))
