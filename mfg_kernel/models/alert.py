"""
Module: mfg_kernel.models.alert
Responsibility: Persisted stock alerts raised by the StockLedger.

Alerts make stock drift observable: a clamped dispatch decrement records
how many units were shipped without book stock (STOCK_SHORTFALL), and a
mutation that moves an entity into LOW_STOCK or OUT_OF_STOCK raises the
matching alert.  Rows are written in the same transaction as the stock
change that caused them.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mfg_kernel.db.base import TrackedBase


class AlertType(str, Enum):
    STOCK_LOW = "STOCK_LOW"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    STOCK_SHORTFALL = "STOCK_SHORTFALL"


class AlertSeverity(str, Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"


class StockAlert(TrackedBase):
    __tablename__ = "stock_alerts"

    __table_args__ = (
        Index("idx_stock_alert_entity", "entity_kind", "entity_id"),
        Index("idx_stock_alert_unread", "is_read"),
    )

    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    item_code: Mapped[str] = mapped_column(String(40), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    stock: Mapped[int] = mapped_column(nullable=False)
    shortfall: Mapped[int] = mapped_column(default=0, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<StockAlert {self.alert_type} {self.item_code} stock={self.stock}>"
