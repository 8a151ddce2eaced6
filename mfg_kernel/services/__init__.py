"""Kernel services (imperative shell): every write path of the kernel."""

from mfg_kernel.services.alert_service import AlertService
from mfg_kernel.services.dispatch_workflow import DispatchWorkflow
from mfg_kernel.services.inventory_intake_service import InventoryIntakeService
from mfg_kernel.services.order_service import OrderService
from mfg_kernel.services.product_matcher import ProductMatcher
from mfg_kernel.services.production_service import ProductionService
from mfg_kernel.services.sequence_service import (
    SequenceCounter,
    SequenceService,
    next_sequence_id,
)
from mfg_kernel.services.stock_ledger import StockLedger

__all__ = [
    "AlertService",
    "DispatchWorkflow",
    "InventoryIntakeService",
    "OrderService",
    "ProductMatcher",
    "ProductionService",
    "SequenceCounter",
    "SequenceService",
    "StockLedger",
    "next_sequence_id",
]
