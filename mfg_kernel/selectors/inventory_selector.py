"""
Read access to stock levels and stock alerts.

Status is read from the stored column; the StockLedger keeps it equal to
the classification of the stored stock.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from mfg_kernel.domain.dtos import StockItemInfo, StockLevel
from mfg_kernel.domain.stock import StockEntityKind, StockStatus
from mfg_kernel.exceptions import ProductNotFoundError, RawMaterialNotFoundError
from mfg_kernel.models.alert import AlertSeverity, AlertType, StockAlert
from mfg_kernel.models.inventory import Product, RawMaterial
from mfg_kernel.selectors.base import BaseSelector

_MODELS = {
    StockEntityKind.PRODUCT: (Product, ProductNotFoundError),
    StockEntityKind.RAW_MATERIAL: (RawMaterial, RawMaterialNotFoundError),
}


@dataclass(frozen=True)
class StockAlertInfo:
    id: UUID
    alert_type: AlertType
    severity: AlertSeverity
    entity_kind: StockEntityKind
    entity_id: UUID
    item_code: str
    message: str
    stock: int
    shortfall: int
    is_read: bool
    created_at: datetime

    @classmethod
    def from_model(cls, alert: StockAlert) -> "StockAlertInfo":
        return cls(
            id=alert.id,
            alert_type=AlertType(alert.alert_type),
            severity=AlertSeverity(alert.severity),
            entity_kind=StockEntityKind(alert.entity_kind),
            entity_id=alert.entity_id,
            item_code=alert.item_code,
            message=alert.message,
            stock=alert.stock,
            shortfall=alert.shortfall,
            is_read=alert.is_read,
            created_at=alert.created_at,
        )


class InventorySelector(BaseSelector[Product]):
    """Stock level and alert queries."""

    def stock_level(
        self,
        entity_id: UUID,
        kind: StockEntityKind = StockEntityKind.PRODUCT,
    ) -> StockLevel:
        model, not_found = _MODELS[kind]
        entity = self.session.get(model, entity_id)
        if entity is None:
            raise not_found(str(entity_id))
        return StockLevel(
            entity_id=entity.id,
            item_code=entity.item_code,
            stock=entity.stock,
            status=StockStatus(entity.status),
        )

    def get_item(
        self,
        entity_id: UUID,
        kind: StockEntityKind = StockEntityKind.PRODUCT,
    ) -> StockItemInfo:
        model, not_found = _MODELS[kind]
        entity = self.session.get(model, entity_id)
        if entity is None:
            raise not_found(str(entity_id))
        return StockItemInfo.from_model(entity, kind)

    def find_by_item_code(self, item_code: str) -> StockItemInfo | None:
        for kind, (model, _) in _MODELS.items():
            entity = self.session.execute(
                select(model).where(model.item_code == item_code)
            ).scalar_one_or_none()
            if entity is not None:
                return StockItemInfo.from_model(entity, kind)
        return None

    def low_stock_items(self) -> list[StockItemInfo]:
        """Products and raw materials currently LOW_STOCK or OUT_OF_STOCK."""
        flagged = (StockStatus.LOW_STOCK.value, StockStatus.OUT_OF_STOCK.value)
        items: list[StockItemInfo] = []
        for kind, (model, _) in _MODELS.items():
            rows = self.session.execute(
                select(model).where(model.status.in_(flagged)).order_by(model.item_code)
            ).scalars()
            items.extend(StockItemInfo.from_model(row, kind) for row in rows)
        return items

    def alerts(
        self,
        unread_only: bool = False,
        alert_type: AlertType | None = None,
    ) -> list[StockAlertInfo]:
        stmt = select(StockAlert).order_by(StockAlert.created_at.desc(), StockAlert.id)
        if unread_only:
            stmt = stmt.where(StockAlert.is_read.is_(False))
        if alert_type is not None:
            stmt = stmt.where(StockAlert.alert_type == AlertType(alert_type).value)
        return [StockAlertInfo.from_model(a) for a in self.session.execute(stmt).scalars()]

    def unread_alerts(self) -> list[StockAlertInfo]:
        return self.alerts(unread_only=True)
