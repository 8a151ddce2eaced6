"""OrderSelector and DispatchSelector read models."""

from decimal import Decimal
from uuid import uuid4

import pytest

from mfg_kernel.domain.dtos import ManifestLine
from mfg_kernel.domain.lifecycle import DispatchStatus, OrderStatus
from mfg_kernel.exceptions import DispatchNotFoundError, OrderNotFoundError
from mfg_kernel.selectors.dispatch_selector import DispatchSelector
from mfg_kernel.selectors.order_selector import OrderSelector
from mfg_kernel.services.dispatch_workflow import DispatchWorkflow


@pytest.fixture
def shipped(session, deterministic_clock, make_order, make_product, test_actor_id):
    """Order ORD001 dispatched in two parts (DIS001, DIS002)."""
    product = make_product(stock=100)
    order = make_order([(product, 10, Decimal("5.00"))])
    workflow = DispatchWorkflow(session, deterministic_clock)
    item_id = order.items[0].id
    for quantity in (4, 6):
        workflow.create_dispatch(
            order.id, [ManifestLine(item_id, quantity, Decimal("5.00"))], None, test_actor_id
        )
    return order


class TestOrderSelector:
    def test_details(self, session, shipped):
        info = OrderSelector(session).get_order_details(shipped.id)
        assert info.order_code == "ORD001"
        assert info.dispatch_codes == ("DIS001", "DIS002")
        assert info.is_fully_delivered

    def test_missing(self, session):
        with pytest.raises(OrderNotFoundError):
            OrderSelector(session).get_order_details(uuid4())

    def test_find_by_code(self, session, shipped):
        selector = OrderSelector(session)
        assert selector.find_by_code("ORD001").id == shipped.id
        assert selector.find_by_code("ORD999") is None

    def test_list_by_status(self, session, shipped, make_order, make_product):
        make_order([(make_product(name="Other"), 1)])
        selector = OrderSelector(session)
        assert [o.order_code for o in selector.list_orders(status=OrderStatus.SHIPPED)] == ["ORD001"]
        assert len(selector.list_orders()) == 2
        assert len(selector.list_orders(limit=1)) == 1


class TestDispatchSelector:
    def test_list_for_order(self, session, shipped):
        dispatches = DispatchSelector(session).list_for_order(shipped.id)
        assert [d.dispatch_code for d in dispatches] == ["DIS001", "DIS002"]
        assert [d.total_amount for d in dispatches] == [Decimal("20.00"), Decimal("30.00")]
        assert all(d.order_code == "ORD001" for d in dispatches)

    def test_get_and_list_by_status(self, session, shipped):
        selector = DispatchSelector(session)
        first = selector.list_for_order(shipped.id)[0]
        assert selector.get(first.id).dispatch_code == "DIS001"
        assert len(selector.list_by_status(DispatchStatus.READY_FOR_PICKUP)) == 2
        assert selector.list_by_status(DispatchStatus.DELIVERED) == []

    def test_missing(self, session):
        with pytest.raises(DispatchNotFoundError):
            DispatchSelector(session).get(uuid4())
