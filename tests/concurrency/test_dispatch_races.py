"""
Concurrent dispatches and identifier allocation.

These tests use real commits on separate sessions (one per thread).
Writers serialize on the order row lock (PostgreSQL) or on the database
write lock (SQLite), so:
  - two dispatches completing the last open line items of one order see
    exactly one full-delivery transition,
  - no outstanding-quantity or stock update is lost,
  - concurrently allocated identifiers are unique and contiguous.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import delete, select

from mfg_kernel.domain.dtos import ManifestLine, OrderItemSpec
from mfg_kernel.domain.lifecycle import OrderStatus
from mfg_kernel.domain.matching import ProductType
from mfg_kernel.models.inventory import Product
from mfg_kernel.selectors.order_selector import OrderSelector
from mfg_kernel.services.dispatch_workflow import DispatchWorkflow
from mfg_kernel.services.inventory_intake_service import InventoryIntakeService
from mfg_kernel.services.order_service import OrderService
from mfg_kernel.services.sequence_service import SequenceCounter, SequenceService

pytestmark = pytest.mark.slow_locks


def _seed_order(session_factory, actor_id, quantities):
    setup = session_factory()
    intake = InventoryIntakeService(setup)
    specs = []
    product_ids = []
    for index, quantity in enumerate(quantities):
        product = intake.add_finished_product(
            ProductType.ROLL, f"Race Roll {index}", 100, actor_id, price=Decimal("10")
        )
        product_ids.append(product.id)
        specs.append(OrderItemSpec(product_id=product.id, quantity=quantity))
    order = OrderService(setup).create_order("Race Co", specs, actor_id)
    setup.close()
    return order, product_ids


def test_exactly_one_dispatch_ships_the_order(session_factory, test_actor_id):
    order, product_ids = _seed_order(session_factory, test_actor_id, [10, 10])
    barrier = threading.Barrier(2)

    def dispatch(item_id):
        s = session_factory()
        try:
            barrier.wait(timeout=10)
            return DispatchWorkflow(s).create_dispatch(
                order.id, [ManifestLine(item_id, 10, Decimal("10"))], None, test_actor_id
            )
        finally:
            s.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(dispatch, [item.id for item in order.items]))

    assert sorted(r.shipped_now for r in results) == [False, True]
    assert sorted(r.fully_delivered for r in results) == [False, True]
    assert {r.dispatch.dispatch_code for r in results} == {"DIS001", "DIS002"}

    check = session_factory()
    info = OrderSelector(check).get_order_details(order.id)
    assert info.status is OrderStatus.SHIPPED
    assert [i.quantity for i in info.items] == [0, 0]
    # increment policy: creation total 200 plus the completing dispatch (100)
    assert info.total == Decimal("300.00")
    stocks = check.execute(
        select(Product.stock).where(Product.id.in_(product_ids))
    ).scalars().all()
    assert stocks == [90, 90]


def test_no_lost_quantity_updates(session_factory, test_actor_id):
    order, product_ids = _seed_order(session_factory, test_actor_id, [40])
    item_id = order.items[0].id
    workers = 4
    barrier = threading.Barrier(workers)

    def dispatch(_):
        s = session_factory()
        try:
            barrier.wait(timeout=10)
            return DispatchWorkflow(s).create_dispatch(
                order.id, [ManifestLine(item_id, 10, Decimal("10"))], None, test_actor_id
            )
        finally:
            s.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(dispatch, range(workers)))

    assert sum(r.shipped_now for r in results) == 1
    check = session_factory()
    info = OrderSelector(check).get_order_details(order.id)
    assert info.items[0].quantity == 0
    assert check.get(Product, product_ids[0]).stock == 60


def test_concurrent_identifier_allocation_is_unique(session_factory):
    workers = 8
    barrier = threading.Barrier(workers)

    def allocate(_):
        s = session_factory()
        try:
            barrier.wait(timeout=10)
            code = SequenceService(s).next_id("DIS")
            s.commit()
            return code
        finally:
            s.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        codes = list(pool.map(allocate, range(workers)))

    assert sorted(codes) == [f"DIS{n:03d}" for n in range(1, workers + 1)]


def test_concurrent_first_use_seeds_counter_once(session_factory, test_actor_id):
    setup = session_factory()
    intake = InventoryIntakeService(setup)
    for index in range(3):
        intake.add_finished_product(
            ProductType.ROLL, f"Seed Roll {index}", 1, test_actor_id, width=Decimal(index + 1)
        )
    # Drop the counter so the next allocations must seed from stored codes
    setup.execute(delete(SequenceCounter))
    setup.commit()
    setup.close()

    workers = 6
    barrier = threading.Barrier(workers)

    def allocate(_):
        s = session_factory()
        try:
            barrier.wait(timeout=10)
            code = SequenceService(s).next_id("TR", column=Product.item_code)
            s.commit()
            return code
        finally:
            s.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        codes = list(pool.map(allocate, range(workers)))

    assert sorted(codes) == [f"TR{n:03d}" for n in range(4, 4 + workers)]
