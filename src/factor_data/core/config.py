"""Configuration loading, validation, and access."""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from factor_data.core.exceptions import ConfigError
from factor_data.core.models import CacheBackend


class CacheConfig(BaseModel):
    """Cache backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: CacheBackend = CacheBackend.MEMORY
    sqlite_path: str = "./data/factor_data_cache.db"
    ttl_seconds: int = 86400

    @field_validator("ttl_seconds")
    @classmethod
    def ttl_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("ttl_seconds must be >= 1")
        return v

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.ttl_seconds)


class CSVSourceConfig(BaseModel):
    """Local CSV price source."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    directory: str = "./data/prices"
    name: str = "csv"


class YahooSourceConfig(BaseModel):
    """Yahoo Finance chart API price source."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    name: str = "yahoo"
    request_delay: float = 0.5
    timeout: float = 15.0

    @field_validator("request_delay")
    @classmethod
    def delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("request_delay must be >= 0")
        return v

    @field_validator("timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be > 0")
        return v


class SourcesConfig(BaseModel):
    """Which bundled sources get registered, in priority order csv → yahoo."""

    model_config = ConfigDict(frozen=True)

    csv: CSVSourceConfig = CSVSourceConfig()
    yahoo: YahooSourceConfig = YahooSourceConfig()

    @model_validator(mode="after")
    def names_unique(self) -> SourcesConfig:
        if self.csv.enabled and self.yahoo.enabled and self.csv.name == self.yahoo.name:
            raise ValueError(
                f"source names must be unique, both sources are named {self.csv.name!r}"
            )
        return self


class FactorDataConfig(BaseModel):
    """Root configuration for factor-data."""

    model_config = ConfigDict(frozen=True)

    cache: CacheConfig = CacheConfig()
    sources: SourcesConfig = SourcesConfig()
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def log_level_known(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log_level: {v!r}")
        return level


CONFIG_ENV_VAR = "FACTOR_DATA_CONFIG"
DEFAULT_CONFIG_FILE = "factor-data.yml"


def load_config(
    config_path: str | None = None,
    env_prefix: str = "FACTOR_DATA_",
) -> FactorDataConfig:
    """Build the configuration from defaults, a YAML file and the environment.

    Later layers win: built-in defaults, then the YAML file, then
    ``FACTOR_DATA_*`` environment variables. A double underscore in a
    variable name descends one level, so ``FACTOR_DATA_CACHE__BACKEND=sqlite``
    sets ``cache.backend``.

    The YAML file is ``config_path`` when given, else the file named by
    ``FACTOR_DATA_CONFIG``, else ``./factor-data.yml`` if it exists.
    """
    try:
        path = _find_config_file(config_path)
        raw = _read_yaml(path) if path is not None else {}
        return FactorDataConfig.model_validate(_merge_env_vars(raw, env_prefix))
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _find_config_file(explicit: str | None) -> Path | None:
    if explicit is not None:
        return _must_exist(explicit, "config_path", f"Config file not found: {explicit}")

    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return _must_exist(
            from_env, CONFIG_ENV_VAR, f"Config file from {CONFIG_ENV_VAR} not found: {from_env}"
        )

    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def _must_exist(value: str, field: str, message: str) -> Path:
    path = Path(value)
    if not path.exists():
        raise ConfigError(message, context={"field": field, "value": value})
    return path


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping at the top level, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Return a copy of ``base`` with matching environment variables applied.

    Nested dicts along an overridden path are copied, never mutated.
    """
    merged = dict(base)
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().split("__")
        if path == ["config"]:
            continue

        node = merged
        for segment in path[:-1]:
            child = node.get(segment)
            node[segment] = dict(child) if isinstance(child, dict) else {}
            node = node[segment]
        node[path[-1]] = _auto_cast(raw_value)
    return merged


def _auto_cast(value: str) -> str | int | float | bool:
    """Interpret an environment string as bool, int or float where it looks like one."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
