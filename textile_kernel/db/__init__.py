"""Database layer: declarative base, engine, data sources, ORM guards."""

from textile_kernel.db.base import Base, TrackedBase, UUIDString
from textile_kernel.db.datasource import (
    DataSource,
    FixtureDataSource,
    LiveDataSource,
    get_data_source,
    init_data_source,
    reset_data_source,
)
from textile_kernel.db.engine import (
    build_engine,
    build_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "DataSource",
    "LiveDataSource",
    "FixtureDataSource",
    "init_data_source",
    "get_data_source",
    "reset_data_source",
    "build_engine",
    "build_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
]
