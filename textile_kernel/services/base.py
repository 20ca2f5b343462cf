"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, clock injection and locked-read helper
    for every mutating service.  Services receive a SQLAlchemy ``Session``
    and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's unit of
      work (``session_scope``) and never commit or roll back themselves, so
      a settlement and its balance update, or a stock change and its
      movement, land together or not at all.
    - Locked reads: ``_get_for_update`` issues ``SELECT ... FOR UPDATE`` and
      refreshes the identity-map copy, so a read-modify-write never works
      from a stale value.

Failure modes:
    - If a subclass calls ``session.commit()`` the atomicity of multi-step
      operations (bounce reversal, dyeing completion) is broken.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from textile_kernel.db.base import Base
from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.exceptions import NotFoundError, ValidationError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``textile_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _get_for_update(
        self,
        model: type[ModelType],
        entity_id: UUID,
        not_found: type[NotFoundError],
    ) -> ModelType:
        """Load one row under a row-level lock, or raise ``not_found``."""
        row = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise not_found(str(entity_id))
        return row

    @staticmethod
    def _require_actor(actor_id: UUID | None) -> UUID:
        if actor_id is None:
            raise ValidationError("actor_id", "an acting user is required")
        return actor_id
