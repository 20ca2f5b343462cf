"""
DyeingService -- the dyeing production state machine.

Responsibility:
    Creates dyeing runs over raw thread, records their outcome along
    DYEING_WORKFLOW, consumes the raw input, posts the colored output to a
    finished-goods stock item and reverses runs with compensating
    movements.  Every quantity change goes through the InventoryGuard.

Architecture position:
    Kernel > Services.  Built on InventoryGuard; uses the workflow tables in
    domain/workflow.py.

Invariants enforced:
    - 0 <= output_quantity <= input_quantity.
    - The raw input is consumed exactly once (material_consumed), when the
      run first leaves PENDING.
    - The output is posted exactly once (inventory_status PENDING -> ADDED).
      A retried posting raises InventoryAlreadyPostedError instead of adding
      stock twice.
    - COMPLETED runs always carry a completion timestamp.
    - Lock order inside one unit of work: run row, raw stock row, finished
      stock row.
    - Reversal appends compensating movements; no movement is deleted.

Failure modes:
    - ValidationError: bad quantities or costs, unposted-purchase problems,
      posting without a color.
    - StockNotFoundError, ThreadPurchaseNotFoundError,
      DyeingRunNotFoundError: dangling references.
    - InsufficientStockError: input larger than raw stock on hand.
    - InvalidOutputQuantityError: output outside [0, input].
    - InvalidDyeingTransitionError: transition not in DYEING_WORKFLOW, or
      the run is reversed.
    - InventoryAlreadyPostedError: second posting of the same output.
"""

import re
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from textile_kernel.domain.clock import Clock
from textile_kernel.domain.money import ZERO, round_quantity, to_money, to_quantity
from textile_kernel.domain.policies import OverConsumptionPolicy
from textile_kernel.domain.values import DyeingResultStatus, InventoryPostingStatus
from textile_kernel.domain.workflow import DYEING_WORKFLOW
from textile_kernel.exceptions import (
    DyeingRunNotFoundError,
    InsufficientStockError,
    InvalidDyeingTransitionError,
    InvalidOutputQuantityError,
    InventoryAlreadyPostedError,
    StockNotFoundError,
    ThreadPurchaseNotFoundError,
    ValidationError,
)
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.dyeing import DyeingRun
from textile_kernel.models.inventory import (
    InventoryMovement,
    InventoryStock,
    MovementType,
    ProductType,
    ReferenceType,
)
from textile_kernel.models.purchase import ColorStatus, ThreadPurchase
from textile_kernel.services.base import BaseService
from textile_kernel.services.inventory_guard import InventoryGuard

logger = get_logger("services.dyeing")

_REVERSED = "REVERSED"
_POSTED = "POSTED"


def dyed_item_code(thread_type: str, color_name: str, color_code: str | None) -> str:
    """Deterministic item code of the finished-goods stock for one color."""
    parts = [thread_type, color_code or color_name]
    return "DYED-" + "-".join(re.sub(r"[^A-Z0-9]+", "-", p.upper()).strip("-") for p in parts)


def _optional_cost(value, field: str) -> Decimal | None:
    if value is None:
        return None
    cost = to_money(value, field)
    if cost < ZERO:
        raise ValidationError(field, "must not be negative")
    return cost


class DyeingService(BaseService[DyeingRun]):
    """
    Dyeing runs: create, complete, post output, reverse.

    Args:
        session: SQLAlchemy session (caller owns the transaction).
        clock: Time source for dye and completion dates.
        policy: Over-consumption policy handed to the InventoryGuard.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        policy: OverConsumptionPolicy | None = None,
    ):
        super().__init__(session, clock)
        self.guard = InventoryGuard(session, self.clock, policy)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_run(
        self,
        raw_stock_id: UUID,
        input_quantity: Decimal | int | str,
        *,
        actor_id: UUID,
        thread_purchase_id: UUID | None = None,
        color_name: str | None = None,
        color_code: str | None = None,
        labor_cost: Decimal | int | str | None = None,
        dye_material_cost: Decimal | int | str | None = None,
        dye_date: datetime | None = None,
        remarks: str | None = None,
    ) -> DyeingRun:
        """
        Open a PENDING dyeing run.  No stock changes yet.

        Raises:
            ValidationError: input <= 0, negative cost, purchase not received
                or already colored.
            StockNotFoundError: Unknown raw stock.
            InsufficientStockError: input above the raw stock on hand.
            ThreadPurchaseNotFoundError: Unknown purchase lot.
        """
        actor_id = self._require_actor(actor_id)
        quantity = to_quantity(input_quantity, "input_quantity")
        if quantity <= 0:
            raise ValidationError("input_quantity", "must be greater than zero")
        labor = _optional_cost(labor_cost, "labor_cost")
        material = _optional_cost(dye_material_cost, "dye_material_cost")

        raw_stock = self.session.get(InventoryStock, raw_stock_id)
        if raw_stock is None:
            raise StockNotFoundError(str(raw_stock_id))
        if quantity > raw_stock.current_quantity:
            raise InsufficientStockError(str(raw_stock_id), quantity, raw_stock.current_quantity)

        if thread_purchase_id is not None:
            purchase = self.session.get(ThreadPurchase, thread_purchase_id)
            if purchase is None:
                raise ThreadPurchaseNotFoundError(str(thread_purchase_id))
            if not purchase.received:
                raise ValidationError("thread_purchase_id", "thread purchase has not been received")
            if not purchase.is_raw:
                raise ValidationError("thread_purchase_id", "thread purchase is already colored")

        run = DyeingRun(
            raw_stock_id=raw_stock.id,
            thread_purchase_id=thread_purchase_id,
            input_quantity=quantity,
            color_name=color_name.strip() if color_name else None,
            color_code=color_code.strip() if color_code else None,
            labor_cost=labor,
            dye_material_cost=material,
            total_cost=DyeingRun.compute_total_cost(labor, material),
            dye_date=dye_date or self.clock.now(),
            remarks=remarks,
            result_status=DyeingResultStatus.PENDING.value,
            inventory_status=InventoryPostingStatus.PENDING.value,
            material_consumed=False,
            reversed=False,
            created_by_id=actor_id,
        )
        self.session.add(run)
        self.session.flush()

        logger.info(
            "dyeing_run_created",
            extra={
                "run_id": str(run.id),
                "raw_stock_id": str(raw_stock.id),
                "input_quantity": str(quantity),
                "color_name": run.color_name,
            },
        )
        return run

    # -------------------------------------------------------------------------
    # Complete
    # -------------------------------------------------------------------------

    def complete_run(
        self,
        run_id: UUID,
        output_quantity: Decimal | int | str,
        *,
        actor_id: UUID,
        result_status: DyeingResultStatus | str = DyeingResultStatus.COMPLETED,
        post_to_inventory: bool = False,
        completion_date: datetime | None = None,
    ) -> DyeingRun:
        """
        Record the outcome of a run.

        A COMPLETED run may be submitted again with ``post_to_inventory=True``
        to post its output (the second phase of a two-phase completion).

        Postconditions:
            - Raw input consumed once through the Guard.
            - COMPLETED runs have completion_date set.
            - With ``post_to_inventory``: output added to the dyed stock item,
              inventory_status ADDED, thread purchase COLORED.

        Raises:
            ValidationError, DyeingRunNotFoundError,
            InvalidOutputQuantityError, InvalidDyeingTransitionError,
            InventoryAlreadyPostedError.
        """
        actor_id = self._require_actor(actor_id)
        try:
            target = DyeingResultStatus(result_status)
        except ValueError:
            raise ValidationError("result_status", f"unknown result status {result_status!r}") from None
        if post_to_inventory and target is not DyeingResultStatus.COMPLETED:
            raise ValidationError("post_to_inventory", "only a COMPLETED run can post its output")
        output = to_quantity(output_quantity, "output_quantity")

        with LogContext.bind(run_id=str(run_id), actor_id=str(actor_id)):
            run = self._lock_run(run_id)
            if post_to_inventory:
                self._require_color(run)

            if output < 0 or output > run.input_quantity:
                raise InvalidOutputQuantityError(str(run.id), output, run.input_quantity)

            if (
                run.result_status == DyeingResultStatus.COMPLETED.value
                and target is DyeingResultStatus.COMPLETED
            ):
                return self._repost_completed(run, output, post_to_inventory, actor_id)

            if not DYEING_WORKFLOW.allows(run.result_status, target.value):
                raise InvalidDyeingTransitionError(str(run.id), run.result_status, target.value)

            if not run.material_consumed:
                self._consume_input(run, actor_id)

            previous_status = run.result_status
            run.output_quantity = output
            run.result_status = target.value
            if target is DyeingResultStatus.COMPLETED:
                run.completion_date = completion_date or self.clock.now()
            elif completion_date is not None:
                run.completion_date = completion_date
            run.updated_by_id = actor_id
            self.session.flush()

            if post_to_inventory:
                self._post(run, actor_id)

            logger.info(
                "dyeing_run_completed",
                extra={
                    "from_status": previous_status,
                    "to_status": run.result_status,
                    "output_quantity": str(output),
                    "wastage": str(run.wastage),
                    "inventory_status": run.inventory_status,
                },
            )
            return run

    def post_output(self, run_id: UUID, *, actor_id: UUID) -> DyeingRun:
        """
        Post the output of a COMPLETED run to stock.

        Raises:
            DyeingRunNotFoundError, InvalidDyeingTransitionError,
            InventoryAlreadyPostedError.
        """
        actor_id = self._require_actor(actor_id)
        with LogContext.bind(run_id=str(run_id), actor_id=str(actor_id)):
            run = self._lock_run(run_id)
            if run.result_status != DyeingResultStatus.COMPLETED.value:
                raise InvalidDyeingTransitionError(str(run.id), run.result_status, _POSTED)
            if run.is_posted:
                raise InventoryAlreadyPostedError(str(run.id))
            self._require_color(run)
            self._post(run, actor_id)
            return run

    # -------------------------------------------------------------------------
    # Reverse
    # -------------------------------------------------------------------------

    def reverse_run(
        self,
        run_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> DyeingRun:
        """
        Undo the stock effect of a run with compensating movements.

        For every stock item the run touched, the net of its movements is
        booked back (raw stock first, then finished stock).  Movements are
        appended, never deleted.  A thread purchase stays COLORED.

        Raises:
            DyeingRunNotFoundError,
            InvalidDyeingTransitionError: already reversed.
            InsufficientStockError: RejectPolicy and the dyed stock was
                already consumed elsewhere.
        """
        actor_id = self._require_actor(actor_id)
        with LogContext.bind(run_id=str(run_id), actor_id=str(actor_id)):
            run = self._lock_run(run_id)

            net_by_stock = dict(
                self.session.execute(
                    select(InventoryMovement.stock_id, func.sum(InventoryMovement.quantity_delta))
                    .where(InventoryMovement.dyeing_run_id == run.id)
                    .group_by(InventoryMovement.stock_id)
                ).all()
            )

            # Raw stock before finished stock
            ordered = sorted(net_by_stock, key=lambda sid: sid != run.raw_stock_id)
            for stock_id in ordered:
                net = round_quantity(Decimal(str(net_by_stock[stock_id] or 0)))
                if net == 0:
                    continue
                self.guard.adjust_quantity(
                    stock_id,
                    -net,
                    actor_id=actor_id,
                    movement_type=MovementType.ADJUSTMENT,
                    reference_type=ReferenceType.DYEING,
                    reference_id=str(run.id),
                    dyeing_run_id=run.id,
                    notes=f"Reversal of dyeing run{': ' + reason if reason else ''}",
                )

            run.reversed = True
            run.updated_by_id = actor_id
            if reason:
                run.remarks = f"{run.remarks}\n{reason}" if run.remarks else reason
            self.session.flush()

            logger.info(
                "dyeing_run_reversed",
                extra={
                    "stock_count": len(net_by_stock),
                    "material_consumed": run.material_consumed,
                    "inventory_status": run.inventory_status,
                },
            )
            return run

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _lock_run(self, run_id: UUID) -> DyeingRun:
        run = self._get_for_update(DyeingRun, run_id, DyeingRunNotFoundError)
        if run.reversed:
            raise InvalidDyeingTransitionError(str(run.id), _REVERSED, run.result_status)
        return run

    def _repost_completed(
        self, run: DyeingRun, output: Decimal, post_to_inventory: bool, actor_id: UUID
    ) -> DyeingRun:
        if not post_to_inventory:
            raise InvalidDyeingTransitionError(
                str(run.id), run.result_status, DyeingResultStatus.COMPLETED.value
            )
        if run.is_posted:
            raise InventoryAlreadyPostedError(str(run.id))
        if run.output_quantity is not None and output != run.output_quantity:
            raise ValidationError(
                "output_quantity",
                f"run {run.id} was completed with output {run.output_quantity}",
            )
        self._post(run, actor_id)
        return run

    def _consume_input(self, run: DyeingRun, actor_id: UUID) -> None:
        raw_stock = self.session.get(InventoryStock, run.raw_stock_id)
        result = self.guard.adjust_quantity(
            run.raw_stock_id,
            -run.input_quantity,
            actor_id=actor_id,
            movement_type=MovementType.PRODUCTION,
            reference_type=ReferenceType.DYEING,
            reference_id=str(run.id),
            dyeing_run_id=run.id,
            unit_cost=raw_stock.cost_per_unit if raw_stock is not None else None,
            notes="Raw thread issued to dyeing",
        )
        run.material_consumed = True
        logger.info(
            "dyeing_input_consumed",
            extra={
                "raw_stock_id": str(run.raw_stock_id),
                "input_quantity": str(run.input_quantity),
                "applied_delta": str(result.applied_delta),
            },
        )

    @staticmethod
    def _require_color(run: DyeingRun) -> None:
        if not run.color_name:
            raise ValidationError("color_name", "a color is required to post dyed output")

    def _post(self, run: DyeingRun, actor_id: UUID) -> None:
        output = run.output_quantity or Decimal("0.000")
        dyed = self._locate_or_create_output_stock(run, actor_id)
        if output > 0:
            self.guard.adjust_quantity(
                dyed.id,
                output,
                actor_id=actor_id,
                movement_type=MovementType.PRODUCTION,
                reference_type=ReferenceType.DYEING,
                reference_id=str(run.id),
                dyeing_run_id=run.id,
                unit_cost=run.unit_cost,
                notes=f"Dyed output {run.color_name}",
            )

        run.output_stock_id = dyed.id
        run.inventory_status = InventoryPostingStatus.ADDED.value
        run.updated_by_id = actor_id

        if run.thread_purchase_id is not None:
            purchase = self.session.get(ThreadPurchase, run.thread_purchase_id)
            if purchase is not None and purchase.is_raw:
                purchase.color_status = ColorStatus.COLORED.value
                purchase.updated_by_id = actor_id

        self.session.flush()
        logger.info(
            "dyeing_output_posted",
            extra={
                "output_stock_id": str(dyed.id),
                "item_code": dyed.item_code,
                "output_quantity": str(output),
            },
        )

    def _thread_type_for(self, run: DyeingRun) -> str:
        if run.thread_purchase_id is not None:
            purchase = self.session.get(ThreadPurchase, run.thread_purchase_id)
            if purchase is not None:
                return purchase.thread_type
        raw_stock = self.session.get(InventoryStock, run.raw_stock_id)
        return raw_stock.thread_type or raw_stock.description

    def _find_output_stock(self, item_code: str) -> InventoryStock | None:
        return self.session.execute(
            select(InventoryStock)
            .where(InventoryStock.item_code == item_code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _locate_or_create_output_stock(self, run: DyeingRun, actor_id: UUID) -> InventoryStock:
        """
        Find the finished-goods item for this thread type and color, creating
        it on first use.  Two concurrent creators collide on the unique item
        code; the loser rolls back its savepoint and reads the winner's row.
        """
        raw_stock = self.session.get(InventoryStock, run.raw_stock_id)
        thread_type = self._thread_type_for(run)
        item_code = dyed_item_code(thread_type, run.color_name, run.color_code)

        stock = self._find_output_stock(item_code)
        if stock is not None:
            return stock

        savepoint = self.session.begin_nested()
        try:
            stock = self.guard.register_stock(
                item_code,
                f"{thread_type} - {run.color_name}",
                actor_id=actor_id,
                product_type=ProductType.THREAD,
                unit_of_measure=raw_stock.unit_of_measure,
                thread_type=thread_type,
                color_name=run.color_name,
                color_code=run.color_code,
                location=raw_stock.location,
            )
            savepoint.commit()
            logger.info(
                "dyed_stock_created",
                extra={"stock_id": str(stock.id), "item_code": item_code},
            )
            return stock
        except IntegrityError:
            logger.debug("dyed_stock_race_retry", extra={"item_code": item_code})
            savepoint.rollback()
            stock = self._find_output_stock(item_code)
            if stock is None:
                raise
            return stock
