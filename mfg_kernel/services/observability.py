"""
Observability hooks for stock bookkeeping and dispatch.

Emits structured log events for metrics and dashboards:
- Stock drift: stock_shortfall (units shipped without book stock).
- Best-effort failures: stock_adjustment_failed (dispatch phase 2).
- Threshold crossings: stock_status_changed.
- Throughput: dispatch_created (with duration_ms).

All events use a consistent ``observability_event`` field and stable extra
fields so log aggregators can parse them and build metrics.

Usage:
    from mfg_kernel.services.observability import log_stock_shortfall
    log_stock_shortfall(entity_kind="product", entity_id=str(pid),
                        item_code="TR001", requested=50, shortfall=20)
"""

from __future__ import annotations

from typing import Any

from mfg_kernel.logging_config import get_logger

logger = get_logger("services.observability")

EVENT_STOCK_SHORTFALL = "stock_shortfall"
EVENT_STOCK_ADJUSTMENT_FAILED = "stock_adjustment_failed"
EVENT_STOCK_STATUS_CHANGED = "stock_status_changed"
EVENT_DISPATCH_CREATED = "dispatch_created"


def log_stock_shortfall(
    *,
    entity_kind: str,
    entity_id: str,
    item_code: str,
    requested: int,
    shortfall: int,
    dispatch_code: str | None = None,
    **extra: Any,
) -> None:
    """
    Log a decrement that was clamped at zero.

    ``shortfall`` is the number of units not covered by book stock.
    """
    payload: dict[str, Any] = {
        "observability_event": EVENT_STOCK_SHORTFALL,
        "entity_kind": entity_kind,
        "entity_id": entity_id,
        "item_code": item_code,
        "requested": requested,
        "shortfall": shortfall,
        **extra,
    }
    if dispatch_code is not None:
        payload["dispatch_code"] = dispatch_code
    logger.warning("stock_shortfall_clamped", extra=payload)


def log_stock_adjustment_failed(
    *,
    line_item_id: str,
    exc_code: str,
    reason: str,
    dispatch_code: str | None = None,
    **extra: Any,
) -> None:
    """Log a manifest entry whose stock decrement did not apply."""
    payload: dict[str, Any] = {
        "observability_event": EVENT_STOCK_ADJUSTMENT_FAILED,
        "line_item_id": line_item_id,
        "exc_code": exc_code,
        "reason": reason,
        **extra,
    }
    if dispatch_code is not None:
        payload["dispatch_code"] = dispatch_code
    logger.error("dispatch_stock_adjustment_failed", extra=payload)


def log_stock_status_changed(
    *,
    entity_kind: str,
    entity_id: str,
    item_code: str,
    from_status: str,
    to_status: str,
    stock: int,
    **extra: Any,
) -> None:
    payload: dict[str, Any] = {
        "observability_event": EVENT_STOCK_STATUS_CHANGED,
        "entity_kind": entity_kind,
        "entity_id": entity_id,
        "item_code": item_code,
        "from_status": from_status,
        "to_status": to_status,
        "stock": stock,
        **extra,
    }
    logger.info("stock_status_changed", extra=payload)


def log_dispatch_created(
    *,
    dispatch_code: str,
    order_code: str,
    total_amount: str,
    line_count: int,
    fully_delivered: bool,
    failed_adjustments: int = 0,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """Log a committed dispatch with its best-effort phase summary."""
    payload: dict[str, Any] = {
        "observability_event": EVENT_DISPATCH_CREATED,
        "dispatch_code": dispatch_code,
        "order_code": order_code,
        "total_amount": total_amount,
        "line_count": line_count,
        "fully_delivered": fully_delivered,
        "failed_adjustments": failed_adjustments,
        **extra,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    logger.info("dispatch_created", extra=payload)
