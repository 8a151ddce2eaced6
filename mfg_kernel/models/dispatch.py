"""
Module: mfg_kernel.models.dispatch
Responsibility: ORM persistence for dispatches (shipments against an order).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - dispatch_code is unique (uq_dispatch_code), in its own numbering
      space (DIS###) separate from orders.
    - Nothing in the schema limits dispatches per order.  SINGLE cardinality
      is checked by DispatchWorkflow while it holds the order row lock, so
      two concurrent first dispatches cannot both pass the check.
    - line_items is an embedded JSON snapshot of the manifest (owned value
      copy): delivered quantities, rates and amounts as they were at
      dispatch time, independent of later order or price changes.
    - Dispatches are created once, move forward through DispatchStatus and
      are never deleted.

Failure modes:
    - IntegrityError on duplicate dispatch_code (allocator race; surfaced as
      DuplicateIdentifierError).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase
from mfg_kernel.domain.dtos import DispatchLineSnapshot
from mfg_kernel.domain.lifecycle import DispatchStatus
from mfg_kernel.models.order import Order


class Dispatch(TrackedBase):
    """Shipment record with a denormalized itemized breakdown."""

    __tablename__ = "dispatches"

    __table_args__ = (
        UniqueConstraint("dispatch_code", name="uq_dispatch_code"),
        Index("idx_dispatch_order", "order_id"),
        Index("idx_dispatch_status", "status"),
    )

    dispatch_code: Mapped[str] = mapped_column(String(40), nullable=False)
    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DispatchStatus.READY_FOR_PICKUP.value,
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    package_details: Mapped[str] = mapped_column(Text, nullable=False)
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    customer: Mapped[str | None] = mapped_column(String(200), nullable=True)
    shipping_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    carrier: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transportation: Mapped[str | None] = mapped_column(String(100), nullable=True)
    driver_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    driver_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    car_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tracking_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    loading_date: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped[Order] = relationship(back_populates="dispatches")

    @property
    def dispatch_status(self) -> DispatchStatus:
        return DispatchStatus(self.status)

    def line_snapshots(self) -> list[DispatchLineSnapshot]:
        return [DispatchLineSnapshot.from_json(row) for row in self.line_items]

    def __repr__(self) -> str:
        return f"<Dispatch {self.dispatch_code}: {self.status} amount={self.total_amount}>"
