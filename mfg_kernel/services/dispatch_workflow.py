"""
DispatchWorkflow -- record a shipment against an order and reconcile stock.

Responsibility:
    Creates a Dispatch from a manifest of delivered quantities, decrements
    the outstanding quantities of the order's line items, ships the order
    once every line is fully delivered, and then decrements finished-goods
    stock for the shipped products.  Also drives the dispatch lifecycle.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries
    when ``auto_commit=True``.  Pure rules come from domain/ (lifecycle,
    policies, matching); stock writes go through the StockLedger.

Dispatch flow:
    create_dispatch(order_id, manifest, shipment_meta, actor_id)
      Preconditions (no mutation before all pass):
        manifest non-empty, order exists and is not cancelled, every
        manifest entry references a line item of this order, cardinality
        policy allows another dispatch.
      Phase 1 (atomic):
        1. Lock the order and its line items (SELECT ... FOR UPDATE)
        2. Allocate the dispatch code (DIS###)
        3. Total = sum(rate x metric_value x delivered_quantity)
        4. Insert the dispatch with its package summary and line snapshot
        5. Outstanding quantity = max(0, quantity - delivered) per entry
        6. Fully delivered = every line item of the order at zero
        7. Fully delivered and never shipped before (shipped_at unset):
           order -> SHIPPED, shipped_at stamped, and the total follows
           the OrderTotalPolicy
      Phase 2 (best effort, one savepoint per entry):
        resolve the product by attribute match, clamped stock decrement.
        Failures are logged and reported in the result; they never undo
        Phase 1.

Invariants enforced:
    - Only this service writes OrderItem.quantity and Dispatch rows.
    - Two concurrent dispatches against one order serialize on the order
      row lock, so exactly one of them observes full delivery.
    - Reaching dispatch DELIVERED moves the order to DELIVERED.

Failure modes:
    - OrderNotFoundError, InvalidManifestError, OrderCancelledError,
      DispatchAlreadyExistsError (SINGLE cardinality).
    - DuplicateIdentifierError / TransactionTimeoutError (retryable).
    - DispatchNotFoundError, InvalidStatusError,
      InvalidStatusTransitionError from update_dispatch_status.

Audit relevance:
    Every dispatch emits ``dispatch_created`` with timing and the number
    of failed stock adjustments; each failed adjustment emits
    ``stock_adjustment_failed``.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mfg_config import WorkflowConfig
from mfg_kernel.db.engine import apply_transaction_timeout
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.domain.dtos import (
    DispatchInfo,
    DispatchLineSnapshot,
    DispatchResult,
    ManifestLine,
    ShipmentMeta,
    StockAdjustmentOutcome,
)
from mfg_kernel.domain.lifecycle import (
    SHIPPED_OR_LATER,
    DispatchStatus,
    OrderStatus,
    can_transition_dispatch,
)
from mfg_kernel.domain.policies import (
    DispatchCardinality,
    money,
    total_after_full_delivery,
)
from mfg_kernel.exceptions import (
    DispatchAlreadyExistsError,
    DispatchNotFoundError,
    InvalidManifestError,
    InvalidStatusError,
    InvalidStatusTransitionError,
    MfgKernelError,
    OrderCancelledError,
    OrderNotFoundError,
)
from mfg_kernel.logging_config import LogContext, get_logger
from mfg_kernel.models.dispatch import Dispatch
from mfg_kernel.models.order import Order, OrderItem
from mfg_kernel.services.observability import (
    log_dispatch_created,
    log_stock_adjustment_failed,
)
from mfg_kernel.services.product_matcher import ProductMatcher
from mfg_kernel.services.sequence_service import SequenceService
from mfg_kernel.services.stock_ledger import StockLedger
from mfg_kernel.services.transaction import insert_with_fresh_identifier, unit_of_work

logger = get_logger("services.dispatch")


def summarize_package(lines: Sequence[DispatchLineSnapshot]) -> str:
    """
    Human-readable package description.

    >>> summarize_package(lines)
    '2 lines, 80 units: Tarpaulin Roll x 50 @ 10.00; Tarpaulin Bundle x 30 @ 12.50'
    """
    units = sum(line.delivered_quantity for line in lines)
    parts = "; ".join(
        f"{line.product_name} x {line.delivered_quantity} @ {money(line.rate)}"
        for line in lines
    )
    noun = "line" if len(lines) == 1 else "lines"
    return f"{len(lines)} {noun}, {units} units: {parts}"


def parse_dispatch_status(value: DispatchStatus | str) -> DispatchStatus:
    try:
        return DispatchStatus(value)
    except ValueError:
        raise InvalidStatusError(
            "dispatch", str(value), [s.value for s in DispatchStatus]
        ) from None


class DispatchWorkflow:
    """
    Orchestrates dispatch creation and the dispatch lifecycle.

    Contract:
        ``create_dispatch`` either raises before anything is committed, or
        returns a ``DispatchResult`` for a committed dispatch.  Stock
        bookkeeping problems are reported in
        ``DispatchResult.stock_adjustments`` and never raised.

    Guarantees:
        - Phase 1 is all-or-nothing.
        - With ``auto_commit=True`` Phase 1 commits before Phase 2 starts
          and each Phase 2 entry commits on its own, so per-product stock
          locks are held briefly.
        - With ``auto_commit=False`` both phases run in savepoints of the
          caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorkflowConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or WorkflowConfig()
        self._auto_commit = auto_commit
        self._sequences = SequenceService(session)
        self._ledger = StockLedger(session)
        self._matcher = ProductMatcher(session, self._config.match_attributes)

    def _uow(self, operation: str):
        return unit_of_work(
            self._session,
            operation,
            self._config.transaction_timeout_seconds,
            self._auto_commit,
        )

    # ------------------------------------------------------------------
    # Dispatch creation
    # ------------------------------------------------------------------

    def create_dispatch(
        self,
        order_id: UUID,
        manifest: Sequence[ManifestLine],
        shipment_meta: ShipmentMeta | None,
        actor_id: UUID,
    ) -> DispatchResult:
        """
        Record a dispatch for ``order_id`` and reconcile stock.

        Args:
            order_id: Order being shipped.
            manifest: Delivered quantities and rates per line item.
            shipment_meta: Carrier, driver and address details.
            actor_id: Who records the dispatch.

        Returns:
            DispatchResult describing the committed dispatch, the order's
            new status and total, and one stock outcome per manifest entry.
        """
        meta = shipment_meta or ShipmentMeta()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
            order_id=str(order_id),
        ):
            logger.info("dispatch_started", extra={"line_count": len(manifest)})
            t0 = time.monotonic()

            try:
                with self._uow("create_dispatch"):
                    order, dispatch, items, fully_delivered, shipped_now = (
                        self._record_dispatch(order_id, manifest, meta, actor_id)
                    )
                    dispatch_info = DispatchInfo.from_model(dispatch)
                    order_status = order.order_status
                    order_total = order.total
            except MfgKernelError as exc:
                logger.warning(
                    "dispatch_rejected",
                    extra={"exc_code": exc.code, "reason": str(exc)},
                )
                raise

            with LogContext.bind(dispatch_id=dispatch_info.dispatch_code):
                outcomes = tuple(
                    self._adjust_stock(
                        dispatch_info.dispatch_code,
                        items[line.line_item_id],
                        line,
                        actor_id,
                    )
                    for line in manifest
                )

                result = DispatchResult(
                    dispatch=dispatch_info,
                    order_status=order_status,
                    order_total=order_total,
                    fully_delivered=fully_delivered,
                    shipped_now=shipped_now,
                    stock_adjustments=outcomes,
                )
                log_dispatch_created(
                    dispatch_code=dispatch_info.dispatch_code,
                    order_code=dispatch_info.order_code,
                    total_amount=str(dispatch_info.total_amount),
                    line_count=len(manifest),
                    fully_delivered=fully_delivered,
                    failed_adjustments=len(result.failed_adjustments),
                    duration_ms=(time.monotonic() - t0) * 1000,
                )
            return result

    def _lock_order(self, order_id: UUID) -> Order:
        order = self._session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _lock_items(self, order: Order) -> dict[UUID, OrderItem]:
        rows = self._session.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order.id)
            .order_by(OrderItem.position)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        return {row.id: row for row in rows}

    def _record_dispatch(
        self,
        order_id: UUID,
        manifest: Sequence[ManifestLine],
        meta: ShipmentMeta,
        actor_id: UUID,
    ) -> tuple[Order, Dispatch, dict[UUID, OrderItem], bool, bool]:
        if not manifest:
            raise InvalidManifestError(str(order_id), "manifest is empty")

        order = self._lock_order(order_id)
        if order.order_status is OrderStatus.CANCELLED:
            raise OrderCancelledError(order.order_code)
        if self._config.dispatch_cardinality is DispatchCardinality.SINGLE:
            existing = self._session.execute(
                select(Dispatch.dispatch_code)
                .where(Dispatch.order_id == order.id)
                .order_by(Dispatch.dispatch_code)
                .limit(1)
            ).scalar_one_or_none()
            if existing is not None:
                raise DispatchAlreadyExistsError(order.order_code, existing)

        items = self._lock_items(order)
        foreign = [str(line.line_item_id) for line in manifest if line.line_item_id not in items]
        if foreign:
            raise InvalidManifestError(
                order.order_code,
                "line items do not belong to the order",
                line_item_ids=foreign,
            )

        snapshots = [
            DispatchLineSnapshot(
                line_item_id=line.line_item_id,
                product_name=items[line.line_item_id].product.name,
                delivered_quantity=line.delivered_quantity,
                rate=line.rate,
                metric_value=line.metric_value,
                amount=line.amount,
                attributes=dict(line.attributes),
            )
            for line in manifest
        ]
        total_amount = money(sum((s.amount for s in snapshots), Decimal("0")))

        def build(code: str) -> Dispatch:
            return Dispatch(
                dispatch_code=code,
                order=order,
                status=DispatchStatus.READY_FOR_PICKUP.value,
                total_amount=total_amount,
                package_details=summarize_package(snapshots),
                line_items=[s.to_json() for s in snapshots],
                customer=meta.customer or order.customer_ref,
                shipping_address=meta.shipping_address,
                carrier=meta.carrier or order.carrier,
                transportation=meta.transportation,
                driver_name=meta.driver_name,
                driver_number=meta.driver_number,
                car_number=meta.car_number,
                tracking_id=meta.tracking_id,
                loading_date=meta.loading_date,
                remarks=meta.remarks,
                created_by_id=actor_id,
            )

        dispatch = insert_with_fresh_identifier(
            self._session,
            "dispatch",
            lambda: self._sequences.next_id(
                self._config.prefixes.dispatch,
                width=self._config.identifier_width,
                column=Dispatch.dispatch_code,
            ),
            build,
            self._config.identifier_retry_attempts,
        )

        for line in manifest:
            item = items[line.line_item_id]
            item.quantity = max(0, item.quantity - line.delivered_quantity)
            item.updated_by_id = actor_id

        fully_delivered = all(item.quantity == 0 for item in items.values())
        shipped_now = (
            fully_delivered
            and order.shipped_at is None
            and order.order_status not in SHIPPED_OR_LATER
        )
        if shipped_now:
            previous = order.status
            order.status = OrderStatus.SHIPPED.value
            order.shipped_at = self._clock.now()
            order.total = total_after_full_delivery(
                order.total, total_amount, self._config.order_total_policy
            )
            logger.info(
                "order_shipped",
                extra={
                    "order_code": order.order_code,
                    "from_status": previous,
                    "total": order.total,
                    "order_total_policy": self._config.order_total_policy.value,
                },
            )
        order.updated_by_id = actor_id
        self._session.flush()
        return order, dispatch, items, fully_delivered, shipped_now

    def _adjust_stock(
        self,
        dispatch_code: str,
        item: OrderItem,
        line: ManifestLine,
        actor_id: UUID,
    ) -> StockAdjustmentOutcome:
        """Best-effort decrement for one manifest entry (never raises)."""
        try:
            if self._auto_commit:
                apply_transaction_timeout(
                    self._session, self._config.transaction_timeout_seconds
                )
            with self._session.begin_nested():
                key = item.match_key().merged(line.attributes)
                product_id = self._matcher.resolve(key)
                level = self._ledger.decrement_stock(
                    product_id,
                    line.delivered_quantity,
                    actor_id,
                    dispatch_code=dispatch_code,
                )
            if self._auto_commit:
                self._session.commit()
        except (MfgKernelError, SQLAlchemyError) as exc:
            if self._auto_commit:
                self._session.rollback()
            code = exc.code if isinstance(exc, MfgKernelError) else "STORE_ERROR"
            log_stock_adjustment_failed(
                line_item_id=str(line.line_item_id),
                exc_code=code,
                reason=str(exc),
                dispatch_code=dispatch_code,
            )
            return StockAdjustmentOutcome(
                line_item_id=line.line_item_id,
                applied=False,
                error_code=code,
                error_message=str(exc),
            )
        return StockAdjustmentOutcome(
            line_item_id=line.line_item_id,
            applied=True,
            product_id=product_id,
            stock_level=level,
        )

    # ------------------------------------------------------------------
    # Dispatch lifecycle
    # ------------------------------------------------------------------

    def update_dispatch_status(
        self,
        dispatch_id: UUID,
        status: DispatchStatus | str,
        actor_id: UUID,
        tracking_id: str | None = None,
        remarks: str | None = None,
    ) -> DispatchInfo:
        """
        Move a dispatch to ``status``.

        DELIVERED stamps ``delivered_at`` and moves the order to DELIVERED
        (a cancelled order is left as it is).  Re-applying the current
        status only updates tracking id and remarks.
        """
        target = parse_dispatch_status(status)
        with LogContext.bind(actor_id=str(actor_id)):
            with self._uow("update_dispatch_status"):
                dispatch = self._session.execute(
                    select(Dispatch)
                    .where(Dispatch.id == dispatch_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if dispatch is None:
                    raise DispatchNotFoundError(str(dispatch_id))

                current = dispatch.dispatch_status
                if current is not target and not can_transition_dispatch(current, target):
                    raise InvalidStatusTransitionError(
                        "dispatch", dispatch.dispatch_code, current.value, target.value
                    )

                if tracking_id is not None:
                    dispatch.tracking_id = tracking_id
                if remarks is not None:
                    dispatch.remarks = remarks
                dispatch.updated_by_id = actor_id

                if current is not target:
                    dispatch.status = target.value
                    if target is DispatchStatus.DELIVERED:
                        dispatch.delivered_at = self._clock.now()
                        self._deliver_order(dispatch, actor_id)
                    logger.info(
                        "dispatch_status_changed",
                        extra={
                            "dispatch_code": dispatch.dispatch_code,
                            "from_status": current.value,
                            "to_status": target.value,
                        },
                    )
                self._session.flush()
                info = DispatchInfo.from_model(dispatch)
            return info

    def _deliver_order(self, dispatch: Dispatch, actor_id: UUID) -> None:
        order = self._lock_order(dispatch.order_id)
        if order.order_status is OrderStatus.CANCELLED:
            logger.warning(
                "delivered_dispatch_on_cancelled_order",
                extra={
                    "dispatch_code": dispatch.dispatch_code,
                    "order_code": order.order_code,
                },
            )
            return
        if order.order_status is not OrderStatus.DELIVERED:
            previous = order.status
            order.status = OrderStatus.DELIVERED.value
            order.updated_by_id = actor_id
            logger.info(
                "order_delivered",
                extra={
                    "order_code": order.order_code,
                    "from_status": previous,
                    "dispatch_code": dispatch.dispatch_code,
                },
            )
