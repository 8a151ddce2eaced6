#!/usr/bin/env python3
"""
Seed the database with a small, realistic order-to-dispatch run.

Recreates the schema, receives raw materials and finished goods, plans and
completes a production batch, creates an order, dispatches it in two
partial shipments and marks the last dispatch delivered.  Prints each step.

Usage:
  python3 scripts/seed_data.py [--db-url URL] [--config PATH]
"""

import argparse
import os
import sys
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("DATABASE_URL", "sqlite:///mfg_kernel.db")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed demo orders and dispatches")
    p.add_argument("--db-url", default=DEFAULT_DB_URL, help="Database URL")
    p.add_argument(
        "--config",
        default=None,
        help="Workflow config YAML (default: packaged defaults.yaml)",
    )
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from mfg_config import get_active_config
    from mfg_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session,
        init_engine_from_url,
        reset_engine,
    )
    from mfg_kernel.domain.clock import SystemClock
    from mfg_kernel.domain.dtos import ManifestLine, OrderItemSpec, ShipmentMeta
    from mfg_kernel.domain.lifecycle import BatchStatus, DispatchStatus
    from mfg_kernel.domain.matching import ProductType
    from mfg_kernel.exceptions import MfgKernelError
    from mfg_kernel.services import (
        DispatchWorkflow,
        InventoryIntakeService,
        OrderService,
        ProductionService,
    )

    config = get_active_config(args.config)
    clock = SystemClock()
    actor_id = uuid4()

    print()
    print("  [1/6] Recreating schema...")
    init_engine_from_url(args.db_url)
    drop_tables()
    create_tables()
    session = get_session()

    try:
        intake = InventoryIntakeService(session, config=config)
        orders = OrderService(session, clock=clock, config=config)
        production = ProductionService(session, clock=clock, config=config)
        workflow = DispatchWorkflow(session, clock=clock, config=config)

        print("  [2/6] Receiving stock...")
        hdpe = intake.add_raw_material(
            "HDPE granules", 2_000, actor_id, unit="kg", price="1.20",
            supplier="Polymer Supply Co", reorder_level=300,
        )
        roll = intake.add_finished_product(
            ProductType.ROLL, "Tarpaulin Roll", 40, actor_id, price="10.00",
            gsm=120, color_top="blue", color_bottom="silver",
            width=Decimal("3.0"), roll_type="laminated", reorder_level=10,
        )
        bundle = intake.add_finished_product(
            ProductType.BUNDLE, "Tarpaulin Bundle", 60, actor_id, price="12.50",
            gsm=90, color_top="green", color_bottom="green",
            length=Decimal("6.0"), width=Decimal("4.0"),
        )
        intake.set_material_requirement(roll.id, hdpe.id, 25, actor_id)
        print(f"        {hdpe.item_code} {roll.item_code} {bundle.item_code}")

        print("  [3/6] Producing 20 rolls...")
        batch = production.create_batch(roll.id, 20, actor_id)
        production.update_batch_status(batch.id, BatchStatus.IN_PROGRESS, actor_id)
        batch = production.update_batch_status(batch.id, BatchStatus.COMPLETED, actor_id)
        print(f"        {batch.batch_code} {batch.status.value}")

        print("  [4/6] Creating order...")
        order = orders.create_order(
            "Greenfield Farms",
            [
                OrderItemSpec(product_id=roll.id, quantity=50),
                OrderItemSpec(product_id=bundle.id, quantity=30),
            ],
            actor_id,
            delivery_method="truck",
        )
        print(f"        {order.order_code} total={order.total}")

        print("  [5/6] Dispatching in two shipments...")
        roll_line, bundle_line = order.items
        meta = ShipmentMeta(
            customer="Greenfield Farms",
            shipping_address="12 Orchard Road",
            carrier="FastFreight",
            driver_name="R. Okafor",
        )
        first = workflow.create_dispatch(
            order.id,
            [ManifestLine(roll_line.id, 30, roll_line.unit_price)],
            meta,
            actor_id,
        )
        second = workflow.create_dispatch(
            order.id,
            [
                ManifestLine(roll_line.id, 20, roll_line.unit_price),
                ManifestLine(bundle_line.id, 30, bundle_line.unit_price),
            ],
            meta,
            actor_id,
        )
        for result in (first, second):
            print(
                f"        {result.dispatch.dispatch_code} "
                f"amount={result.dispatch.total_amount} "
                f"order={result.order_status.value} "
                f"failed_adjustments={len(result.failed_adjustments)}"
            )

        print("  [6/6] Delivering...")
        delivered = workflow.update_dispatch_status(
            second.dispatch.id, DispatchStatus.DELIVERED, actor_id
        )
        print(f"        {delivered.dispatch_code} {delivered.status.value}")
    except MfgKernelError as exc:
        session.rollback()
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        session.close()
        reset_engine()

    print()
    print("  Done.")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
