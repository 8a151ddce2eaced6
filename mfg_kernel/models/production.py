"""
Module: mfg_kernel.models.production
Responsibility: ORM persistence for production batches.  A completed batch
    increments finished-product stock and consumes raw materials through
    the StockLedger.
Architecture position: Kernel > Models.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase
from mfg_kernel.domain.lifecycle import BatchStatus
from mfg_kernel.models.inventory import Product
from mfg_kernel.models.order import Order


class ProductionBatch(TrackedBase):
    __tablename__ = "production_batches"

    __table_args__ = (
        UniqueConstraint("batch_code", name="uq_batch_code"),
        CheckConstraint("quantity > 0", name="ck_batch_quantity_positive"),
        Index("idx_batch_status", "status"),
    )

    batch_code: Mapped[str] = mapped_column(String(40), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    order_id: Mapped[UUID | None] = mapped_column(ForeignKey("orders.id"), nullable=True)
    quantity: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=BatchStatus.PLANNED.value,
        nullable=False,
    )
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    product: Mapped[Product] = relationship()
    order: Mapped[Order | None] = relationship()

    def __repr__(self) -> str:
        return f"<ProductionBatch {self.batch_code}: {self.status} qty={self.quantity}>"
