"""AlertService: acknowledging stock alerts."""

from uuid import uuid4

import pytest

from mfg_kernel.exceptions import StockAlertNotFoundError
from mfg_kernel.selectors.inventory_selector import InventorySelector
from mfg_kernel.services.alert_service import AlertService
from mfg_kernel.services.stock_ledger import StockLedger


@pytest.fixture
def two_alerts(session, make_product, test_actor_id):
    ledger = StockLedger(session)
    ledger.decrement_stock(make_product(name="A", stock=5).id, 5, test_actor_id)
    ledger.decrement_stock(make_product(name="B", stock=5).id, 5, test_actor_id)
    return InventorySelector(session).unread_alerts()


def test_mark_one_read(session, two_alerts, test_actor_id):
    AlertService(session).mark_alert_read(two_alerts[0].id, test_actor_id)
    unread = InventorySelector(session).unread_alerts()
    assert [a.id for a in unread] == [two_alerts[1].id]


def test_mark_all_read(session, two_alerts, test_actor_id):
    assert AlertService(session).mark_all_read(test_actor_id) == 2
    assert InventorySelector(session).unread_alerts() == []
    assert AlertService(session).mark_all_read(test_actor_id) == 0


def test_unknown_alert(session, test_actor_id):
    with pytest.raises(StockAlertNotFoundError):
        AlertService(session).mark_alert_read(uuid4(), test_actor_id)
