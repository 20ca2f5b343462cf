"""
Module: textile_kernel.db.datasource
Responsibility: The explicit capability interface between services and a
    concrete store.  ``LiveDataSource`` runs on PostgreSQL;
    ``FixtureDataSource`` runs on SQLite and can be seeded from a YAML
    fixture file.
Architecture position: Kernel > DB.  Services never construct engines; they
    receive sessions from ``DataSource.session_scope()``.

Invariants enforced:
    - The store is chosen once, explicitly.  A failing live store raises
      (PersistenceError from session_scope); it is never replaced by sample
      data behind the caller's back.
    - Immutability listeners are registered before the first unit of work.

Failure modes:
    - ValueError when a LiveDataSource is given a SQLite URL or a
      FixtureDataSource is given a non-SQLite URL.
    - RuntimeError from get_data_source() before init_data_source().
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from textile_kernel.db.engine import (
    SQLITE_MEMORY_URL,
    build_engine,
    build_session_factory,
    create_tables,
    is_sqlite_url,
    session_scope,
)
from textile_kernel.db.immutability import register_immutability_listeners
from textile_kernel.logging_config import get_logger

logger = get_logger("db.datasource")


class DataSource(ABC):
    """
    A store the kernel can run units of work against.

    Contract:
        ``session_scope()`` yields a session inside one transaction and
        commits on success or rolls back on any exception.
    """

    kind: str = ""

    def __init__(self, engine: Engine):
        register_immutability_listeners()
        self._engine = engine
        self._session_factory = build_session_factory(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        return self._session_factory

    def session_scope(self) -> AbstractContextManager[Session]:
        return session_scope(self._session_factory)

    def create_schema(self) -> None:
        create_tables(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()
        logger.info("data_source_disposed", extra={"kind": self.kind})

    @abstractmethod
    def prepare(self) -> dict[str, UUID]:
        """Make the store ready for use; returns fixture keys mapped to ids."""
        ...


class LiveDataSource(DataSource):
    """PostgreSQL-backed store.  The schema is managed outside the kernel."""

    kind = "live"

    def __init__(
        self,
        database_url: str,
        pool_size: int = 20,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        if is_sqlite_url(database_url):
            raise ValueError("LiveDataSource requires a PostgreSQL URL, got a SQLite URL")
        super().__init__(
            build_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
            )
        )

    def prepare(self) -> dict[str, UUID]:
        return {}


class FixtureDataSource(DataSource):
    """
    SQLite-backed store for tests, demos and local development.

    Runs in memory unless ``database_url`` names a SQLite file.  When a
    fixture path is given, ``prepare()`` creates the schema and loads the
    fixture through the kernel services, so seeded stock carries opening
    movements like any other quantity.
    """

    kind = "fixture"

    def __init__(
        self,
        database_url: str | None = None,
        fixture_path: Path | None = None,
        echo: bool = False,
    ):
        url = database_url or SQLITE_MEMORY_URL
        if not is_sqlite_url(url):
            raise ValueError("FixtureDataSource runs on SQLite; database_url must be sqlite://...")
        self.fixture_path = fixture_path
        super().__init__(build_engine(url, echo=echo))

    def prepare(self) -> dict[str, UUID]:
        self.create_schema()
        if self.fixture_path is None:
            return {}
        return self.load_fixture(self.fixture_path)

    def load_fixture(self, path: Path) -> dict[str, UUID]:
        from textile_kernel.services.fixture_loader import FixtureLoader

        with open(path) as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}

        with self.session_scope() as session:
            keys = FixtureLoader(session).load(data)

        logger.info(
            "fixture_loaded",
            extra={"fixture_path": str(path), "record_count": len(keys)},
        )
        return keys


# Module-level active data source
_data_source: DataSource | None = None


def init_data_source(data_source: DataSource) -> DataSource:
    """Install ``data_source`` as the process-wide store and prepare it."""
    global _data_source

    if _data_source is not None and _data_source is not data_source:
        _data_source.dispose()
    _data_source = data_source
    data_source.prepare()
    logger.info("data_source_initialized", extra={"kind": data_source.kind})
    return data_source


def get_data_source() -> DataSource:
    """
    Get the active data source.

    Raises:
        RuntimeError: If no data source has been initialized.
    """
    if _data_source is None:
        raise RuntimeError("Data source not initialized. Call init_data_source() first.")
    return _data_source


def reset_data_source() -> None:
    """Dispose and forget the active data source.  Useful for test cleanup."""
    global _data_source

    if _data_source is not None:
        _data_source.dispose()
        _data_source = None
