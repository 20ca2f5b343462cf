"""
KernelSettings schema.

Typed, frozen view of the YAML configuration.  The loader parses and
validates raw dicts into these types; nothing downstream ever sees a dict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

DATA_SOURCE_KINDS = ("live", "fixture")
OVER_CONSUMPTION_POLICIES = ("clamp", "reject")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ---------------------------------------------------------------------------
# Data source
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DataSourceSettings:
    """Which store the kernel runs against.

    ``live`` needs a PostgreSQL ``database_url``.  ``fixture`` runs on SQLite
    (in memory unless ``database_url`` names a file) and is optionally seeded
    from ``fixture_path``.
    """

    kind: str = "fixture"
    database_url: str | None = None
    fixture_path: Path | None = None
    pool_size: int = 20
    max_overflow: int = 10
    echo: bool = False


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventorySettings:
    over_consumption: str = "clamp"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class KernelSettings:
    """Root of the configuration tree."""

    data_source: DataSourceSettings = field(default_factory=DataSourceSettings)
    inventory: InventorySettings = field(default_factory=InventorySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    # SHA-256 of the merged source dict, for tracing which config was active
    checksum: str = ""
