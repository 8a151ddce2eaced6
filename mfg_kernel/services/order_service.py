"""
OrderService -- order creation and lifecycle maintenance.

Responsibility:
    Creates orders with priced line items and a sequential identifier,
    enforces the order state machine on status changes, replaces line
    items before the first dispatch, and cancels orders.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries
    when ``auto_commit=True``.

Invariants enforced:
    - Order.total starts as the sum of line totals (unit_price x quantity,
      rounded to cents).
    - Status changes follow ORDER_TRANSITIONS; SHIPPED additionally
      requires at least one dispatch.
    - Line items are frozen once a dispatch exists.

Failure modes:
    - MissingFieldError: empty customer reference or item list.
    - ProductNotFoundError: an item references an unknown product.
    - OrderNotFoundError, InvalidStatusError, InvalidStatusTransitionError,
      OrderCancelledError, OrderItemsLockedError.
    - DuplicateIdentifierError / TransactionTimeoutError (retryable).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfg_config import WorkflowConfig
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.domain.dtos import OrderInfo, OrderItemSpec
from mfg_kernel.domain.identifiers import date_scope
from mfg_kernel.domain.lifecycle import OrderStatus, can_transition_order
from mfg_kernel.domain.policies import money
from mfg_kernel.exceptions import (
    InvalidStatusError,
    InvalidStatusTransitionError,
    MissingFieldError,
    OrderCancelledError,
    OrderItemsLockedError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from mfg_kernel.logging_config import LogContext, get_logger
from mfg_kernel.models.dispatch import Dispatch
from mfg_kernel.models.inventory import Product
from mfg_kernel.models.order import Order, OrderItem
from mfg_kernel.services.base import BaseService
from mfg_kernel.services.sequence_service import SequenceService
from mfg_kernel.services.transaction import insert_with_fresh_identifier, unit_of_work

logger = get_logger("services.order")


def parse_order_status(value: OrderStatus | str) -> OrderStatus:
    """Coerce a status value, raising InvalidStatusError for unknown ones."""
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStatusError(
            "order", str(value), [s.value for s in OrderStatus]
        ) from None


class OrderService(BaseService[Order]):
    """
    Order creation and maintenance.

    Contract:
        Every public method returns an ``OrderInfo`` DTO.  With
        ``auto_commit=True`` (default) each call is its own transaction;
        with ``auto_commit=False`` the caller commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorkflowConfig | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or WorkflowConfig()
        self._auto_commit = auto_commit
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _uow(self, operation: str):
        return unit_of_work(
            self.session,
            operation,
            self._config.transaction_timeout_seconds,
            self._auto_commit,
        )

    def _lock_order(self, order_id: UUID) -> Order:
        order = self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _build_items(
        self,
        items: Sequence[OrderItemSpec],
        actor_id: UUID,
    ) -> list[OrderItem]:
        if not items:
            raise MissingFieldError("items")
        rows = []
        for position, spec in enumerate(items):
            product = self.session.get(Product, spec.product_id)
            if product is None:
                raise ProductNotFoundError(str(spec.product_id))
            unit_price = spec.unit_price if spec.unit_price is not None else product.price
            rows.append(
                OrderItem(
                    product_id=product.id,
                    product=product,
                    position=position,
                    quantity=spec.quantity,
                    unit=spec.unit,
                    unit_price=unit_price,
                    line_total=money(unit_price * spec.quantity),
                    color_top=spec.color_top,
                    color_bottom=spec.color_bottom,
                    length=spec.length,
                    width=spec.width,
                    created_by_id=actor_id,
                )
            )
        return rows

    def _has_dispatch(self, order_id: UUID) -> bool:
        return (
            self.session.execute(
                select(Dispatch.id).where(Dispatch.order_id == order_id).limit(1)
            ).first()
            is not None
        )

    @staticmethod
    def _sum_totals(rows: Sequence[OrderItem]) -> Decimal:
        return money(sum((row.line_total for row in rows), Decimal("0")))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_order(
        self,
        customer_ref: str,
        items: Sequence[OrderItemSpec],
        actor_id: UUID,
        ordered_at: datetime | None = None,
        sales_process: str | None = None,
        delivery_method: str | None = None,
        carrier: str | None = None,
        remarks: str | None = None,
    ) -> OrderInfo:
        """
        Create a PENDING order.

        Unit prices default to the product's current price.  The order code
        is ``ORD###`` or, with date-scoped numbering, ``ORD-YYYYMMDD-###``.
        """
        if not customer_ref or not customer_ref.strip():
            raise MissingFieldError("customer_ref")
        ordered_at = ordered_at or self._clock.now()
        prefix = self._config.prefixes.order
        scope = date_scope(ordered_at) if self._config.date_scoped_orders else None

        with LogContext.bind(actor_id=str(actor_id)):
            with self._uow("create_order"):
                rows = self._build_items(items, actor_id)

                def build(code: str) -> Order:
                    return Order(
                        order_code=code,
                        customer_ref=customer_ref.strip(),
                        status=OrderStatus.PENDING.value,
                        total=self._sum_totals(rows),
                        ordered_at=ordered_at,
                        sales_process=sales_process,
                        delivery_method=delivery_method,
                        carrier=carrier,
                        remarks=remarks,
                        items=list(rows),
                        created_by_id=actor_id,
                    )

                order = insert_with_fresh_identifier(
                    self.session,
                    "order",
                    lambda: self._sequences.next_id(
                        prefix,
                        scope=scope,
                        width=self._config.identifier_width,
                        column=Order.order_code,
                    ),
                    build,
                    self._config.identifier_retry_attempts,
                )
                info = OrderInfo.from_model(order)

            logger.info(
                "order_created",
                extra={
                    "order_code": info.order_code,
                    "customer_ref": info.customer_ref,
                    "total": info.total,
                    "item_count": len(info.items),
                },
            )
            return info

    def update_order_status(
        self,
        order_id: UUID,
        status: OrderStatus | str,
        actor_id: UUID,
    ) -> OrderInfo:
        """
        Move an order to ``status``.

        Setting the current status again is a no-op.
        """
        target = parse_order_status(status)
        with LogContext.bind(actor_id=str(actor_id), order_id=str(order_id)):
            with self._uow("update_order_status"):
                order = self._lock_order(order_id)
                current = order.order_status
                if current is not target:
                    if not can_transition_order(current, target):
                        raise InvalidStatusTransitionError(
                            "order", order.order_code, current.value, target.value
                        )
                    if target is OrderStatus.SHIPPED and not self._has_dispatch(order.id):
                        raise InvalidStatusTransitionError(
                            "order",
                            order.order_code,
                            current.value,
                            target.value,
                            reason="order has no dispatch",
                        )
                    order.status = target.value
                    if target is OrderStatus.SHIPPED and order.shipped_at is None:
                        order.shipped_at = self._clock.now()
                    order.updated_by_id = actor_id
                    self.session.flush()
                    logger.info(
                        "order_status_changed",
                        extra={
                            "order_code": order.order_code,
                            "from_status": current.value,
                            "to_status": target.value,
                        },
                    )
                info = OrderInfo.from_model(order)
            return info

    def cancel_order(self, order_id: UUID, actor_id: UUID) -> OrderInfo:
        return self.update_order_status(order_id, OrderStatus.CANCELLED, actor_id)

    def replace_order_items(
        self,
        order_id: UUID,
        items: Sequence[OrderItemSpec],
        actor_id: UUID,
    ) -> OrderInfo:
        """
        Replace every line item and recompute the order total.

        Refused for cancelled orders and once any dispatch exists.
        """
        with LogContext.bind(actor_id=str(actor_id), order_id=str(order_id)):
            with self._uow("replace_order_items"):
                order = self._lock_order(order_id)
                if order.order_status is OrderStatus.CANCELLED:
                    raise OrderCancelledError(order.order_code)
                if self._has_dispatch(order.id):
                    raise OrderItemsLockedError(order.order_code)
                rows = self._build_items(items, actor_id)
                order.items.clear()
                self.session.flush()
                order.items.extend(rows)
                order.total = self._sum_totals(rows)
                order.updated_by_id = actor_id
                self.session.flush()
                info = OrderInfo.from_model(order)

            logger.info(
                "order_items_replaced",
                extra={
                    "order_code": info.order_code,
                    "item_count": len(info.items),
                    "total": info.total,
                },
            )
            return info
