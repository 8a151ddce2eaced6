"""ORM models for the manufacturing kernel."""

from mfg_kernel.models.alert import AlertSeverity, AlertType, StockAlert
from mfg_kernel.models.dispatch import Dispatch
from mfg_kernel.models.inventory import Product, ProductMaterial, RawMaterial
from mfg_kernel.models.order import Order, OrderItem
from mfg_kernel.models.production import ProductionBatch

__all__ = [
    "AlertSeverity",
    "AlertType",
    "Dispatch",
    "Order",
    "OrderItem",
    "Product",
    "ProductMaterial",
    "ProductionBatch",
    "RawMaterial",
    "StockAlert",
]
