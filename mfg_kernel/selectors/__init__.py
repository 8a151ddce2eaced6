"""Read-only selectors returning frozen DTOs."""

from mfg_kernel.selectors.dispatch_selector import DispatchSelector
from mfg_kernel.selectors.inventory_selector import InventorySelector, StockAlertInfo
from mfg_kernel.selectors.order_selector import OrderSelector
from mfg_kernel.selectors.production_selector import ProductionSelector

__all__ = [
    "DispatchSelector",
    "InventorySelector",
    "OrderSelector",
    "ProductionSelector",
    "StockAlertInfo",
]
