"""
textile_config -- single public entrypoint for kernel settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads configuration
    files or ``TEXTILE_*`` environment variables directly.

Architecture position:
    Configuration -- sits above ``textile_kernel``.  The kernel MUST NEVER
    import from ``textile_config``; ``textile_config.bridges`` turns settings
    into kernel objects (data source, over-consumption policy, logging).

Invariants enforced:
    - Single entrypoint: all runtime settings flow through
      ``get_active_settings()``.
    - Layering: packaged ``defaults.yaml``, then the file named by
      ``TEXTILE_CONFIG_FILE`` (or ``config_file``), then environment
      overrides.
    - The data source kind is always explicit.  A live store that fails is
      never swapped for fixture data.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- invalid or inconsistent settings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from textile_config.loader import apply_env_overrides, load_yaml_file, merge, parse_settings
from textile_config.schema import (
    DataSourceSettings,
    InventorySettings,
    KernelSettings,
    LoggingSettings,
)

_logger = logging.getLogger("textile_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"
CONFIG_FILE_ENV = "TEXTILE_CONFIG_FILE"


def get_active_settings(
    config_file: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> KernelSettings:
    """The ONLY public settings entrypoint.

    Args:
        config_file: Optional YAML file layered over the packaged defaults.
            Defaults to the path in ``TEXTILE_CONFIG_FILE`` when set.
        environ: Environment to read overrides from.  Defaults to
            ``os.environ``.

    Returns:
        Frozen ``KernelSettings``.

    Raises:
        FileNotFoundError: If the override file is missing.
        ValueError: If the merged settings are invalid.
    """
    env = os.environ if environ is None else environ

    data = load_yaml_file(DEFAULTS_FILE)

    override = config_file or env.get(CONFIG_FILE_ENV)
    if override:
        data = merge(data, load_yaml_file(Path(override)))

    data = apply_env_overrides(data, env)
    settings = parse_settings(data)

    _logger.info(
        "textile_config_loaded",
        extra={
            "data_source_kind": settings.data_source.kind,
            "over_consumption": settings.inventory.over_consumption,
            "config_file": str(override) if override else None,
            "checksum": settings.checksum,
        },
    )
    return settings


__all__ = [
    "get_active_settings",
    "KernelSettings",
    "DataSourceSettings",
    "InventorySettings",
    "LoggingSettings",
]
