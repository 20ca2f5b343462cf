"""
Config -> Kernel Bridges.

Functions that turn ``KernelSettings`` into kernel objects.  These live in
textile_config (the producer) because the kernel must NEVER import
textile_config.

Usage:
    from textile_config import get_active_settings
    from textile_config.bridges import build_data_source, build_over_consumption_policy

    settings = get_active_settings()
    data_source = init_data_source(build_data_source(settings))
    guard = InventoryGuard(session, policy=build_over_consumption_policy(settings))
"""

from __future__ import annotations

from textile_config.schema import KernelSettings
from textile_kernel.db.datasource import DataSource, FixtureDataSource, LiveDataSource
from textile_kernel.domain.policies import OverConsumptionPolicy, policy_for_name
from textile_kernel.logging_config import configure_logging, set_log_level


def build_data_source(settings: KernelSettings) -> DataSource:
    """Construct the store named by ``settings.data_source.kind``."""
    ds = settings.data_source
    if ds.kind == "live":
        return LiveDataSource(
            ds.database_url,
            pool_size=ds.pool_size,
            max_overflow=ds.max_overflow,
            echo=ds.echo,
        )
    return FixtureDataSource(
        database_url=ds.database_url,
        fixture_path=ds.fixture_path,
        echo=ds.echo,
    )


def build_over_consumption_policy(settings: KernelSettings) -> OverConsumptionPolicy:
    return policy_for_name(settings.inventory.over_consumption)


def configure_logging_from(settings: KernelSettings) -> None:
    """Install the handler if needed, then apply the configured level."""
    configure_logging(level=settings.logging.level)
    set_log_level(settings.logging.level)
