"""
Configuration Loader (``textile_config.loader``).

Responsibility
--------------
Reads YAML files, layers environment overrides on top and parses the
result into the frozen ``textile_config.schema`` dataclasses.  The single
public entry point for runtime settings is
``textile_config.get_active_settings()``.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` with a descriptive message; an
  unknown data source kind or policy name is never silently defaulted.
* Layering order is fixed: packaged defaults, then the optional override
  file, then environment variables.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from textile_config.schema import (
    DATA_SOURCE_KINDS,
    LOG_LEVELS,
    OVER_CONSUMPTION_POLICIES,
    DataSourceSettings,
    InventorySettings,
    KernelSettings,
    LoggingSettings,
)

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TEXTILE_DATABASE_URL": ("data_source", "database_url"),
    "TEXTILE_DATA_SOURCE": ("data_source", "kind"),
    "TEXTILE_FIXTURE_PATH": ("data_source", "fixture_path"),
    "TEXTILE_OVER_CONSUMPTION": ("inventory", "over_consumption"),
    "TEXTILE_LOG_LEVEL": ("logging", "level"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = merge(result[key], value)
        else:
            result[key] = value
    return result


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    result = dict(data)
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            result = merge(result, {section: {key: value}})
    return result


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "1", "yes", "false", "0", "no"):
        return value.lower() in ("true", "1", "yes")
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_positive_int(value: Any, name: str) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if result < 0:
        raise ValueError(f"{name} must not be negative, got {result}")
    return result


def _choice(value: Any, allowed: tuple[str, ...], name: str, *, upper: bool = False) -> str:
    text = str(value).strip()
    text = text.upper() if upper else text.lower()
    if text not in allowed:
        raise ValueError(f"{name} must be one of {list(allowed)}, got {value!r}")
    return text


def parse_data_source(data: Mapping[str, Any]) -> DataSourceSettings:
    kind = _choice(data.get("kind", "fixture"), DATA_SOURCE_KINDS, "data_source.kind")
    database_url = data.get("database_url") or None
    if kind == "live":
        if not database_url:
            raise ValueError("data_source.database_url is required for a live data source")
        if str(database_url).startswith("sqlite"):
            raise ValueError("a live data source needs a PostgreSQL database_url, not SQLite")
    elif database_url and not str(database_url).startswith("sqlite"):
        raise ValueError("a fixture data source runs on SQLite; database_url must be sqlite://...")

    fixture_path = data.get("fixture_path")
    return DataSourceSettings(
        kind=kind,
        database_url=database_url,
        fixture_path=Path(fixture_path) if fixture_path else None,
        pool_size=_parse_positive_int(data.get("pool_size", 20), "data_source.pool_size"),
        max_overflow=_parse_positive_int(data.get("max_overflow", 10), "data_source.max_overflow"),
        echo=_parse_bool(data.get("echo", False), "data_source.echo"),
    )


def parse_settings(data: Mapping[str, Any]) -> KernelSettings:
    """
    Parse a merged configuration dict into ``KernelSettings``.

    Raises:
        ValueError: on any invalid or inconsistent value.
    """
    inventory = data.get("inventory") or {}
    logging_data = data.get("logging") or {}
    return KernelSettings(
        data_source=parse_data_source(data.get("data_source") or {}),
        inventory=InventorySettings(
            over_consumption=_choice(
                inventory.get("over_consumption", "clamp"),
                OVER_CONSUMPTION_POLICIES,
                "inventory.over_consumption",
            ),
        ),
        logging=LoggingSettings(
            level=_choice(logging_data.get("level", "INFO"), LOG_LEVELS, "logging.level", upper=True),
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: Mapping[str, Any]) -> str:
    """Deterministic SHA-256 of a configuration dict."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
