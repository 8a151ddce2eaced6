"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that cross the service boundary: dispatch
    manifests and shipment metadata (input), the dispatch line snapshot
    (embedded in the Dispatch row), and the result records returned by
    services and selectors.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only from
    the service and selector layers.

Invariants enforced:
    - ManifestLine quantities are non-negative integers and rates/metric
      values are non-negative Decimals (never float).
    - DispatchLineSnapshot is a value copy: later edits to the order item or
      product price never change a recorded dispatch.

Failure modes:
    - InvalidQuantityError from ManifestLine / OrderItemSpec construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from mfg_kernel.domain.lifecycle import BatchStatus, DispatchStatus, OrderStatus
from mfg_kernel.domain.policies import money
from mfg_kernel.domain.stock import StockEntityKind, StockStatus
from mfg_kernel.exceptions import InvalidQuantityError

if TYPE_CHECKING:
    from mfg_kernel.models.dispatch import Dispatch as DispatchModel
    from mfg_kernel.models.inventory import Product as ProductModel
    from mfg_kernel.models.inventory import RawMaterial as RawMaterialModel
    from mfg_kernel.models.order import Order as OrderModel
    from mfg_kernel.models.order import OrderItem as OrderItemModel
    from mfg_kernel.models.production import ProductionBatch as ProductionBatchModel


def _json_value(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _as_decimal(field_name: str, value: Any) -> Decimal:
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError as exc:
        raise InvalidQuantityError(field_name, value) from exc
    if not result.is_finite() or result < 0:
        raise InvalidQuantityError(field_name, value)
    return result


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class ManifestLine:
    """
    One entry of a dispatch manifest.

    ``attributes`` carries descriptive overrides (color, dimensions, ...)
    used to resolve the finished product whose stock is decremented.
    """

    line_item_id: UUID
    delivered_quantity: int
    rate: Decimal
    metric_value: Decimal = Decimal("1")
    attributes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.line_item_id, UUID):
            try:
                object.__setattr__(self, "line_item_id", UUID(str(self.line_item_id)))
            except ValueError as exc:
                raise InvalidQuantityError("line_item_id", self.line_item_id) from exc
        if (
            isinstance(self.delivered_quantity, bool)
            or not isinstance(self.delivered_quantity, int)
            or self.delivered_quantity < 0
        ):
            raise InvalidQuantityError("delivered_quantity", self.delivered_quantity)
        object.__setattr__(self, "rate", _as_decimal("rate", self.rate))
        object.__setattr__(
            self, "metric_value", _as_decimal("metric_value", self.metric_value)
        )

    @property
    def amount(self) -> Decimal:
        """rate x metric_value x delivered_quantity, in cents."""
        return money(self.rate * self.metric_value * self.delivered_quantity)


@dataclass(frozen=True)
class ShipmentMeta:
    """Shipment description copied onto the Dispatch row."""

    customer: str | None = None
    shipping_address: str | None = None
    carrier: str | None = None
    transportation: str | None = None
    driver_name: str | None = None
    driver_number: str | None = None
    car_number: str | None = None
    tracking_id: str | None = None
    loading_date: datetime | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class OrderItemSpec:
    """Requested line of a new order."""

    product_id: UUID
    quantity: int
    unit_price: Decimal | None = None
    unit: str = "units"
    color_top: str | None = None
    color_bottom: str | None = None
    length: Decimal | None = None
    width: Decimal | None = None

    def __post_init__(self):
        if (
            isinstance(self.quantity, bool)
            or not isinstance(self.quantity, int)
            or self.quantity <= 0
        ):
            raise InvalidQuantityError("quantity", self.quantity)
        if self.unit_price is not None:
            object.__setattr__(
                self, "unit_price", _as_decimal("unit_price", self.unit_price)
            )


# =============================================================================
# Snapshots and results
# =============================================================================


@dataclass(frozen=True)
class DispatchLineSnapshot:
    """Itemized breakdown row stored inside a Dispatch (owned value copy)."""

    line_item_id: UUID
    product_name: str
    delivered_quantity: int
    rate: Decimal
    metric_value: Decimal
    amount: Decimal
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {
            "line_item_id": str(self.line_item_id),
            "product_name": self.product_name,
            "delivered_quantity": self.delivered_quantity,
            "rate": str(self.rate),
            "metric_value": str(self.metric_value),
            "amount": str(self.amount),
            "attributes": {k: _json_value(v) for k, v in self.attributes.items()},
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> DispatchLineSnapshot:
        return cls(
            line_item_id=UUID(data["line_item_id"]),
            product_name=data["product_name"],
            delivered_quantity=int(data["delivered_quantity"]),
            rate=Decimal(data["rate"]),
            metric_value=Decimal(data["metric_value"]),
            amount=Decimal(data["amount"]),
            attributes=dict(data.get("attributes") or {}),
        )


@dataclass(frozen=True)
class StockLevel:
    """Stock quantity and derived status after a ledger mutation."""

    entity_id: UUID
    item_code: str
    stock: int
    status: StockStatus
    shortfall: int = 0


@dataclass(frozen=True)
class StockItemInfo:
    """Read model of a product or raw material stock row."""

    id: UUID
    kind: StockEntityKind
    item_code: str
    name: str
    unit: str
    price: Decimal
    stock: int
    reorder_level: int | None
    status: StockStatus

    @classmethod
    def from_model(
        cls,
        entity: ProductModel | RawMaterialModel,
        kind: StockEntityKind,
    ) -> StockItemInfo:
        return cls(
            id=entity.id,
            kind=kind,
            item_code=entity.item_code,
            name=entity.name,
            unit=entity.unit,
            price=entity.price,
            stock=entity.stock,
            reorder_level=entity.reorder_level,
            status=StockStatus(entity.status),
        )


@dataclass(frozen=True)
class StockAdjustmentOutcome:
    """Per-manifest-entry result of the best-effort stock phase."""

    line_item_id: UUID
    applied: bool
    product_id: UUID | None = None
    stock_level: StockLevel | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class OrderItemInfo:
    id: UUID
    product_id: UUID
    product_name: str
    quantity: int
    unit: str
    unit_price: Decimal
    line_total: Decimal
    color_top: str | None
    color_bottom: str | None
    length: Decimal | None
    width: Decimal | None

    @classmethod
    def from_model(cls, item: OrderItemModel) -> OrderItemInfo:
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product.name,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=item.unit_price,
            line_total=item.line_total,
            color_top=item.color_top,
            color_bottom=item.color_bottom,
            length=item.length,
            width=item.width,
        )


@dataclass(frozen=True)
class OrderInfo:
    id: UUID
    order_code: str
    customer_ref: str
    status: OrderStatus
    total: Decimal
    ordered_at: datetime
    items: tuple[OrderItemInfo, ...]
    dispatch_codes: tuple[str, ...] = ()
    shipped_at: datetime | None = None

    @property
    def is_fully_delivered(self) -> bool:
        return all(item.quantity == 0 for item in self.items)

    @classmethod
    def from_model(cls, order: OrderModel) -> OrderInfo:
        return cls(
            id=order.id,
            order_code=order.order_code,
            customer_ref=order.customer_ref,
            status=OrderStatus(order.status),
            total=order.total,
            ordered_at=order.ordered_at,
            items=tuple(OrderItemInfo.from_model(i) for i in order.items),
            dispatch_codes=tuple(d.dispatch_code for d in order.dispatches),
            shipped_at=order.shipped_at,
        )


@dataclass(frozen=True)
class DispatchInfo:
    id: UUID
    dispatch_code: str
    order_id: UUID
    order_code: str
    status: DispatchStatus
    total_amount: Decimal
    package_details: str
    lines: tuple[DispatchLineSnapshot, ...]
    customer: str | None = None
    shipping_address: str | None = None
    carrier: str | None = None
    driver_name: str | None = None
    tracking_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, dispatch: DispatchModel) -> DispatchInfo:
        return cls(
            id=dispatch.id,
            dispatch_code=dispatch.dispatch_code,
            order_id=dispatch.order_id,
            order_code=dispatch.order.order_code,
            status=DispatchStatus(dispatch.status),
            total_amount=dispatch.total_amount,
            package_details=dispatch.package_details,
            lines=tuple(dispatch.line_snapshots()),
            customer=dispatch.customer,
            shipping_address=dispatch.shipping_address,
            carrier=dispatch.carrier,
            driver_name=dispatch.driver_name,
            tracking_id=dispatch.tracking_id,
            created_at=dispatch.created_at,
        )


@dataclass(frozen=True)
class DispatchResult:
    """
    Outcome of DispatchWorkflow.create_dispatch.

    The dispatch is committed whenever a DispatchResult is returned;
    ``stock_adjustments`` reports the best-effort phase entry by entry and
    never turns the overall result into a failure.
    """

    dispatch: DispatchInfo
    order_status: OrderStatus
    order_total: Decimal
    fully_delivered: bool
    shipped_now: bool
    stock_adjustments: tuple[StockAdjustmentOutcome, ...] = ()

    @property
    def failed_adjustments(self) -> tuple[StockAdjustmentOutcome, ...]:
        return tuple(a for a in self.stock_adjustments if not a.applied)


@dataclass(frozen=True)
class ProductionBatchInfo:
    id: UUID
    batch_code: str
    product_id: UUID
    quantity: int
    status: BatchStatus
    order_id: UUID | None
    completed_at: datetime | None

    @classmethod
    def from_model(cls, batch: ProductionBatchModel) -> ProductionBatchInfo:
        return cls(
            id=batch.id,
            batch_code=batch.batch_code,
            product_id=batch.product_id,
            quantity=batch.quantity,
            status=BatchStatus(batch.status),
            order_id=batch.order_id,
            completed_at=batch.completed_at,
        )
