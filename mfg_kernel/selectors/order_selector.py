"""Read access to orders and their line items."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from mfg_kernel.domain.dtos import OrderInfo
from mfg_kernel.domain.lifecycle import OrderStatus
from mfg_kernel.exceptions import OrderNotFoundError
from mfg_kernel.models.order import Order, OrderItem
from mfg_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector[Order]):
    """Order queries returning OrderInfo DTOs."""

    def _query(self):
        return select(Order).options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.dispatches),
        )

    def get_order_details(self, order_id: UUID) -> OrderInfo:
        """
        Order with its items and dispatch codes.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
        """
        order = self.session.execute(
            self._query().where(Order.id == order_id)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return OrderInfo.from_model(order)

    def find_by_code(self, order_code: str) -> OrderInfo | None:
        order = self.session.execute(
            self._query().where(Order.order_code == order_code)
        ).scalar_one_or_none()
        return OrderInfo.from_model(order) if order else None

    def list_orders(
        self,
        status: OrderStatus | None = None,
        limit: int | None = None,
    ) -> list[OrderInfo]:
        """Orders newest first, optionally filtered by status."""
        stmt = self._query().order_by(Order.ordered_at.desc(), Order.order_code.desc())
        if status is not None:
            stmt = stmt.where(Order.status == OrderStatus(status).value)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [OrderInfo.from_model(o) for o in self.session.execute(stmt).scalars()]
