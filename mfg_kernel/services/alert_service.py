"""
AlertService -- acknowledge stock alerts.

Alerts are written by the StockLedger; this service only flips the read
flag.  Flush-only: the caller owns the transaction.
"""

from uuid import UUID

from sqlalchemy import update

from mfg_kernel.exceptions import StockAlertNotFoundError
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.alert import StockAlert
from mfg_kernel.services.base import BaseService

logger = get_logger("services.alert")


class AlertService(BaseService[StockAlert]):
    def mark_alert_read(self, alert_id: UUID, actor_id: UUID) -> None:
        alert = self.session.get(StockAlert, alert_id)
        if alert is None:
            raise StockAlertNotFoundError(str(alert_id))
        alert.is_read = True
        alert.updated_by_id = actor_id
        self.session.flush()

    def mark_all_read(self, actor_id: UUID) -> int:
        """Mark every unread alert as read; returns how many changed."""
        result = self.session.execute(
            update(StockAlert)
            .where(StockAlert.is_read.is_(False))
            .values(is_read=True, updated_by_id=actor_id)
            .execution_options(synchronize_session="evaluate")
        )
        self.session.flush()
        logger.info("stock_alerts_marked_read", extra={"count": result.rowcount})
        return result.rowcount
