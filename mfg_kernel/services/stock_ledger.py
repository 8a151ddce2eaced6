"""
StockLedger -- the only writer of stock quantities and stock status.

Responsibility:
    Increments, decrements and absolute adjustments of stock on finished
    products and raw materials.  Every mutation locks the stock row,
    recomputes the derived status in the same flush, and records alerts
    for threshold crossings and clamped decrements.

Architecture position:
    Kernel > Services -- imperative shell.  Pure arithmetic and status
    classification live in ``domain/stock.py``.

Invariants enforced:
    - Stock never goes negative.  ``decrement`` clamps at zero and reports
      the shortfall (dispatch path, never raises for shortage);
      ``consume`` refuses with InsufficientRawMaterialError (production).
    - ``status == classify_stock(stock, reorder_level)`` after every call.
    - Mutations of the same row serialize: the row is read with
      ``SELECT ... FOR UPDATE`` before it is changed.

Failure modes:
    - ProductNotFoundError / RawMaterialNotFoundError for unknown ids.
    - InvalidQuantityError for negative or non-integer amounts.
    - InsufficientRawMaterialError from ``consume``.

Audit relevance:
    Clamped decrements emit ``stock_shortfall`` and persist a
    STOCK_SHORTFALL alert, so stock drift is visible rather than silent.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfg_kernel.domain.dtos import StockLevel
from mfg_kernel.domain.stock import (
    StockEntityKind,
    StockStatus,
    clamp_decrement,
    classify_stock,
)
from mfg_kernel.exceptions import (
    InsufficientRawMaterialError,
    InvalidQuantityError,
    ProductNotFoundError,
    RawMaterialNotFoundError,
)
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.alert import AlertSeverity, AlertType, StockAlert
from mfg_kernel.models.inventory import Product, RawMaterial
from mfg_kernel.services.base import BaseService
from mfg_kernel.services.observability import (
    log_stock_shortfall,
    log_stock_status_changed,
)

logger = get_logger("services.stock_ledger")

StockEntity = Product | RawMaterial

MODEL_FOR_KIND: dict[StockEntityKind, type] = {
    StockEntityKind.PRODUCT: Product,
    StockEntityKind.RAW_MATERIAL: RawMaterial,
}

_ENTITY_KIND: dict[type, str] = {
    model: kind.value for kind, model in MODEL_FOR_KIND.items()
}

_NOT_FOUND: dict[type, type[Exception]] = {
    Product: ProductNotFoundError,
    RawMaterial: RawMaterialNotFoundError,
}

_ALERT_FOR_STATUS: dict[StockStatus, tuple[AlertType, AlertSeverity]] = {
    StockStatus.LOW_STOCK: (AlertType.STOCK_LOW, AlertSeverity.WARNING),
    StockStatus.OUT_OF_STOCK: (AlertType.OUT_OF_STOCK, AlertSeverity.ERROR),
}


def _require_amount(field_name: str, amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidQuantityError(field_name, amount)


class StockLedger(BaseService[Product]):
    """
    Stock mutations for products and raw materials.

    ``model`` selects the table (Product by default).  All methods flush;
    none commits.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock(self, model: type[StockEntity], entity_id: UUID) -> StockEntity:
        entity = self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entity is None:
            raise _NOT_FOUND[model](str(entity_id))
        return entity

    def _raise_alert(
        self,
        entity: StockEntity,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
        actor_id: UUID,
        shortfall: int = 0,
    ) -> None:
        self.session.add(
            StockAlert(
                alert_type=alert_type.value,
                severity=severity.value,
                entity_kind=_ENTITY_KIND[type(entity)],
                entity_id=entity.id,
                item_code=entity.item_code,
                message=message,
                stock=entity.stock,
                shortfall=shortfall,
                created_by_id=actor_id,
            )
        )

    def _apply(
        self,
        entity: StockEntity,
        new_stock: int,
        actor_id: UUID,
        operation: str,
        shortfall: int = 0,
        dispatch_code: str | None = None,
    ) -> StockLevel:
        kind = _ENTITY_KIND[type(entity)]
        old_stock = entity.stock
        old_status = StockStatus(entity.status)
        new_status = classify_stock(new_stock, entity.reorder_level)

        entity.stock = new_stock
        entity.status = new_status.value
        entity.updated_by_id = actor_id

        if new_status is not old_status:
            log_stock_status_changed(
                entity_kind=kind,
                entity_id=str(entity.id),
                item_code=entity.item_code,
                from_status=old_status.value,
                to_status=new_status.value,
                stock=new_stock,
            )
            if new_status in _ALERT_FOR_STATUS:
                alert_type, severity = _ALERT_FOR_STATUS[new_status]
                self._raise_alert(
                    entity,
                    alert_type,
                    severity,
                    f"{entity.name} ({entity.item_code}) is {new_status.value}: "
                    f"{new_stock} {entity.unit} left",
                    actor_id,
                )

        if shortfall:
            log_stock_shortfall(
                entity_kind=kind,
                entity_id=str(entity.id),
                item_code=entity.item_code,
                requested=old_stock + shortfall,
                shortfall=shortfall,
                dispatch_code=dispatch_code,
            )
            self._raise_alert(
                entity,
                AlertType.STOCK_SHORTFALL,
                AlertSeverity.ERROR,
                f"{entity.name} ({entity.item_code}): {shortfall} {entity.unit} "
                f"dispatched without book stock",
                actor_id,
                shortfall=shortfall,
            )

        self.session.flush()
        logger.info(
            "stock_mutated",
            extra={
                "operation": operation,
                "entity_kind": kind,
                "entity_id": str(entity.id),
                "item_code": entity.item_code,
                "old_stock": old_stock,
                "new_stock": new_stock,
                "status": new_status.value,
            },
        )
        return StockLevel(
            entity_id=entity.id,
            item_code=entity.item_code,
            stock=new_stock,
            status=new_status,
            shortfall=shortfall,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def decrement(
        self,
        entity_id: UUID,
        amount: int,
        actor_id: UUID,
        model: type[StockEntity] = Product,
        dispatch_code: str | None = None,
    ) -> StockLevel:
        """
        Subtract ``amount``, clamping at zero.

        Never raises for shortage; the uncovered amount is returned as
        ``StockLevel.shortfall`` and recorded as an alert.
        """
        _require_amount("amount", amount)
        entity = self._lock(model, entity_id)
        clamped = clamp_decrement(entity.stock, amount)
        return self._apply(
            entity,
            clamped.new_stock,
            actor_id,
            "decrement",
            shortfall=clamped.shortfall,
            dispatch_code=dispatch_code,
        )

    def decrement_stock(
        self,
        product_id: UUID,
        amount: int,
        actor_id: UUID,
        dispatch_code: str | None = None,
    ) -> StockLevel:
        """Clamped decrement of finished-product stock (dispatch path)."""
        return self.decrement(
            product_id, amount, actor_id, model=Product, dispatch_code=dispatch_code
        )

    def consume(
        self,
        entity_id: UUID,
        amount: int,
        actor_id: UUID,
        model: type[StockEntity] = RawMaterial,
    ) -> StockLevel:
        """Subtract ``amount``; refuse when stock does not cover it."""
        _require_amount("amount", amount)
        entity = self._lock(model, entity_id)
        if entity.stock < amount:
            raise InsufficientRawMaterialError(entity.item_code, amount, entity.stock)
        return self._apply(entity, entity.stock - amount, actor_id, "consume")

    def increment(
        self,
        entity_id: UUID,
        amount: int,
        actor_id: UUID,
        model: type[StockEntity] = Product,
    ) -> StockLevel:
        """Add ``amount`` (production completion, intake merge)."""
        _require_amount("amount", amount)
        entity = self._lock(model, entity_id)
        return self._apply(entity, entity.stock + amount, actor_id, "increment")

    def adjust(
        self,
        entity_id: UUID,
        new_stock: int,
        actor_id: UUID,
        model: type[StockEntity] = Product,
    ) -> StockLevel:
        """Set stock to an absolute, non-negative count (cycle count)."""
        _require_amount("new_stock", new_stock)
        entity = self._lock(model, entity_id)
        return self._apply(entity, new_stock, actor_id, "adjust")

    def set_reorder_level(
        self,
        entity_id: UUID,
        reorder_level: int | None,
        actor_id: UUID,
        model: type[StockEntity] = Product,
    ) -> StockLevel:
        """Change the reorder threshold; status is recomputed."""
        if reorder_level is not None:
            _require_amount("reorder_level", reorder_level)
        entity = self._lock(model, entity_id)
        entity.reorder_level = reorder_level
        return self._apply(entity, entity.stock, actor_id, "set_reorder_level")
