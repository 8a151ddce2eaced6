"""
Module: mfg_kernel.models.order
Responsibility: ORM persistence for the Order aggregate -- an order and the
    line items it owns.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - order_code is unique (uq_order_code).
    - OrderItem rows are owned: deleting an Order deletes its items.
    - OrderItem.quantity >= 0 (ck_order_item_quantity_non_negative).  The
      quantity is the OUTSTANDING quantity: dispatches decrement it and
      never delete the row.
    - Only DispatchWorkflow writes OrderItem.quantity after creation.
    - shipped_at is written once, when the order first ships, and is never
      cleared; later status moves (SHIPPED -> DELAYED) leave it in place.

Failure modes:
    - IntegrityError on duplicate order_code (allocator race; surfaced as
      DuplicateIdentifierError).
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase
from mfg_kernel.domain.lifecycle import OrderStatus
from mfg_kernel.domain.matching import ProductMatchKey, ProductType
from mfg_kernel.models.inventory import Product

if TYPE_CHECKING:
    from mfg_kernel.models.dispatch import Dispatch


class Order(TrackedBase):
    """
    Customer order.

    ``total`` starts as the sum of line totals and is only changed again
    by the dispatch workflow according to the configured OrderTotalPolicy.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_code", name="uq_order_code"),
        Index("idx_order_status", "status"),
        Index("idx_order_ordered_at", "ordered_at"),
    )

    order_code: Mapped[str] = mapped_column(String(40), nullable=False)
    customer_ref: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
    )
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    ordered_at: Mapped[datetime] = mapped_column(nullable=False)
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)

    sales_process: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    carrier: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    dispatches: Mapped[list["Dispatch"]] = relationship(
        back_populates="order",
        order_by="Dispatch.dispatch_code",
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_fully_delivered(self) -> bool:
        """Every line item has zero outstanding quantity."""
        return all(item.quantity == 0 for item in self.items)

    def __repr__(self) -> str:
        return f"<Order {self.order_code}: {self.status} total={self.total}>"


class OrderItem(TrackedBase):
    """
    Order line: product reference, outstanding quantity, unit price.

    Color and dimension attributes are manufacturing specification; they
    also seed the product match key used by the dispatch stock phase.
    """

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_order_item_quantity_non_negative"),
        Index("idx_order_item_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(default=0, nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(30), default="units", nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    color_top: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color_bottom: Mapped[str | None] = mapped_column(String(50), nullable=True)
    length: Mapped[Decimal | None] = mapped_column(nullable=True)
    width: Mapped[Decimal | None] = mapped_column(nullable=True)

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    def match_key(self) -> ProductMatchKey:
        """Product match key built from the line's own specification."""
        product = self.product
        return ProductMatchKey(
            name=product.name,
            product_type=ProductType(product.product_type) if product.product_type else None,
            gsm=product.gsm,
            color_top=self.color_top if self.color_top is not None else product.color_top,
            color_bottom=(
                self.color_bottom if self.color_bottom is not None else product.color_bottom
            ),
            length=self.length if self.length is not None else product.length,
            width=self.width if self.width is not None else product.width,
            roll_type=product.roll_type,
        )

    def __repr__(self) -> str:
        return f"<OrderItem {self.id} product={self.product_id} qty={self.quantity}>"
