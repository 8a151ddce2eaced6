"""
DispatchWorkflow: recording shipments, reconciling stock and driving the
dispatch lifecycle.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from mfg_config import WorkflowConfig
from mfg_kernel.domain.dtos import ManifestLine, ShipmentMeta
from mfg_kernel.domain.lifecycle import DispatchStatus, OrderStatus
from mfg_kernel.domain.policies import DispatchCardinality, OrderTotalPolicy
from mfg_kernel.exceptions import (
    DispatchAlreadyExistsError,
    DispatchNotFoundError,
    InvalidManifestError,
    InvalidStatusError,
    InvalidStatusTransitionError,
    OrderCancelledError,
    OrderNotFoundError,
)
from mfg_kernel.models.alert import AlertType, StockAlert
from mfg_kernel.models.dispatch import Dispatch
from mfg_kernel.models.order import OrderItem
from mfg_kernel.selectors.order_selector import OrderSelector
from mfg_kernel.services.dispatch_workflow import DispatchWorkflow, summarize_package
from mfg_kernel.services.sequence_service import SequenceService


@pytest.fixture
def workflow(session, deterministic_clock, workflow_config) -> DispatchWorkflow:
    return DispatchWorkflow(session, deterministic_clock, workflow_config)


@pytest.fixture
def roll(make_product):
    return make_product(name="Tarpaulin Roll", stock=200, price=Decimal("10.00"))


@pytest.fixture
def bundle(make_product):
    from mfg_kernel.domain.matching import ProductType

    return make_product(
        name="Tarpaulin Bundle",
        product_type=ProductType.BUNDLE,
        stock=100,
        price=Decimal("12.50"),
        length=Decimal("6"),
        width=Decimal("4"),
    )


def _dispatch_count(session) -> int:
    return session.execute(select(func.count()).select_from(Dispatch)).scalar_one()


def _full_manifest(order, rate=Decimal("10.00")):
    return [
        ManifestLine(item.id, item.quantity, rate)
        for item in order.items
    ]


class TestCreateDispatch:
    def test_full_delivery_ships_order(self, session, workflow, make_order, roll, test_actor_id):
        """Order ORD001 for 50 units at 10.00, dispatched in full."""
        order = make_order([(roll, 50, Decimal("10.00"))])
        assert order.total == Decimal("500.00")

        result = workflow.create_dispatch(
            order.id, _full_manifest(order), None, test_actor_id
        )

        assert result.dispatch.dispatch_code == "DIS001"
        assert result.dispatch.total_amount == Decimal("500.00")
        assert result.fully_delivered is True
        assert result.shipped_now is True
        assert result.order_status is OrderStatus.SHIPPED
        assert result.order_total == Decimal("1000.00")
        assert roll.stock == 150

        refreshed = OrderSelector(session).get_order_details(order.id)
        assert refreshed.status is OrderStatus.SHIPPED
        assert refreshed.items[0].quantity == 0
        assert refreshed.dispatch_codes == ("DIS001",)

    def test_dispatch_snapshot_and_summary(
        self, workflow, make_order, roll, bundle, test_actor_id
    ):
        order = make_order([(roll, 50), (bundle, 30)])
        manifest = [
            ManifestLine(order.items[0].id, 50, Decimal("10.00")),
            ManifestLine(order.items[1].id, 30, Decimal("12.50")),
        ]
        result = workflow.create_dispatch(order.id, manifest, None, test_actor_id)

        info = result.dispatch
        assert info.total_amount == Decimal("875.00")
        assert info.package_details == (
            "2 lines, 80 units: Tarpaulin Roll x 50 @ 10.00; "
            "Tarpaulin Bundle x 30 @ 12.50"
        )
        assert [line.delivered_quantity for line in info.lines] == [50, 30]
        assert info.lines[1].amount == Decimal("375.00")
        assert info.status is DispatchStatus.READY_FOR_PICKUP

    def test_metric_value_scales_amount(self, workflow, make_order, roll, test_actor_id):
        order = make_order([(roll, 10)])
        manifest = [ManifestLine(order.items[0].id, 10, Decimal("2.00"), Decimal("3.5"))]
        result = workflow.create_dispatch(order.id, manifest, None, test_actor_id)
        assert result.dispatch.total_amount == Decimal("70.00")

    def test_shipment_meta_defaults_from_order(
        self, workflow, make_order, roll, test_actor_id
    ):
        order = make_order([(roll, 5)], customer_ref="Harbor Supplies")
        result = workflow.create_dispatch(
            order.id,
            _full_manifest(order),
            ShipmentMeta(driver_name="K. Osei", tracking_id="TRK-1"),
            test_actor_id,
        )
        assert result.dispatch.customer == "Harbor Supplies"
        assert result.dispatch.driver_name == "K. Osei"
        assert result.dispatch.tracking_id == "TRK-1"

    def test_partial_dispatch_keeps_status(self, session, workflow, make_order, roll, test_actor_id):
        order = make_order([(roll, 50, Decimal("10.00"))], status=OrderStatus.COMPLETED)

        result = workflow.create_dispatch(
            order.id,
            [ManifestLine(order.items[0].id, 20, Decimal("10.00"))],
            None,
            test_actor_id,
        )

        assert result.fully_delivered is False
        assert result.shipped_now is False
        assert result.order_status is OrderStatus.COMPLETED
        assert result.order_total == Decimal("500.00")
        assert session.get(OrderItem, order.items[0].id).quantity == 30
        assert roll.stock == 180

    def test_second_dispatch_completes_order(self, workflow, make_order, roll, test_actor_id):
        order = make_order([(roll, 50, Decimal("10.00"))])
        item_id = order.items[0].id
        workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 20, Decimal("10.00"))], None, test_actor_id
        )
        result = workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 30, Decimal("10.00"))], None, test_actor_id
        )

        assert result.dispatch.dispatch_code == "DIS002"
        assert result.shipped_now is True
        # only the completing dispatch is added under the increment policy
        assert result.order_total == Decimal("800.00")

    def test_dispatch_after_shipped_does_not_increment_again(
        self, workflow, make_order, roll, test_actor_id
    ):
        order = make_order([(roll, 10, Decimal("10.00"))])
        item_id = order.items[0].id
        first = workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 10, Decimal("10.00"))], None, test_actor_id
        )
        again = workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 1, Decimal("10.00"))], None, test_actor_id
        )

        assert first.shipped_now is True
        assert again.fully_delivered is True
        assert again.shipped_now is False
        assert again.order_total == first.order_total

    def test_delayed_after_shipping_does_not_ship_again(
        self, session, workflow, order_service, make_order, roll, test_actor_id
    ):
        order = make_order([(roll, 10, Decimal("10.00"))])
        item_id = order.items[0].id
        first = workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 10, Decimal("10.00"))], None, test_actor_id
        )
        shipped_at = OrderSelector(session).get_order_details(order.id).shipped_at
        order_service.update_order_status(order.id, OrderStatus.DELAYED, test_actor_id)

        again = workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 5, Decimal("10.00"))], None, test_actor_id
        )

        assert first.order_total == Decimal("200.00")
        assert shipped_at is not None
        assert again.fully_delivered is True
        assert again.shipped_now is False
        assert again.order_status is OrderStatus.DELAYED
        assert again.order_total == Decimal("200.00")
        assert OrderSelector(session).get_order_details(order.id).shipped_at == shipped_at

    def test_manually_shipped_order_is_not_shipped_again(
        self, workflow, order_service, make_order, roll, test_actor_id
    ):
        order = make_order([(roll, 10, Decimal("10.00"))], status=OrderStatus.COMPLETED)
        item_id = order.items[0].id
        workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 4, Decimal("10.00"))], None, test_actor_id
        )
        shipped = order_service.update_order_status(
            order.id, OrderStatus.SHIPPED, test_actor_id
        )
        order_service.update_order_status(order.id, OrderStatus.DELAYED, test_actor_id)

        result = workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 6, Decimal("10.00"))], None, test_actor_id
        )

        assert shipped.shipped_at is not None
        assert result.fully_delivered is True
        assert result.shipped_now is False
        assert result.order_total == Decimal("100.00")

    def test_over_delivery_clamps_outstanding_quantity(
        self, session, workflow, make_order, roll, test_actor_id
    ):
        order = make_order([(roll, 50)])
        result = workflow.create_dispatch(
            order.id,
            [ManifestLine(order.items[0].id, 60, Decimal("10.00"))],
            None,
            test_actor_id,
        )
        assert result.fully_delivered is True
        assert session.get(OrderItem, order.items[0].id).quantity == 0
        assert roll.stock == 140

    def test_preserve_total_policy(
        self, session, deterministic_clock, make_order, roll, test_actor_id
    ):
        workflow = DispatchWorkflow(
            session,
            deterministic_clock,
            WorkflowConfig(order_total_policy=OrderTotalPolicy.PRESERVE_ORDER_TOTAL),
        )
        order = make_order([(roll, 50, Decimal("10.00"))])
        result = workflow.create_dispatch(
            order.id, _full_manifest(order), None, test_actor_id
        )
        assert result.order_status is OrderStatus.SHIPPED
        assert result.order_total == Decimal("500.00")

    def test_caller_owned_transaction(
        self, session, deterministic_clock, make_order, roll, test_actor_id
    ):
        workflow = DispatchWorkflow(session, deterministic_clock, auto_commit=False)
        order = make_order([(roll, 50)])
        result = workflow.create_dispatch(
            order.id, _full_manifest(order), None, test_actor_id
        )
        assert result.shipped_now is True
        assert roll.stock == 150
        assert session.in_transaction()

    def test_logs_dispatch_created(
        self, workflow, make_order, roll, test_actor_id, captured_logs
    ):
        order = make_order([(roll, 5)])
        workflow.create_dispatch(order.id, _full_manifest(order), None, test_actor_id)

        [event] = [
            r for r in captured_logs()
            if r.get("observability_event") == "dispatch_created"
        ]
        assert event["dispatch_code"] == "DIS001"
        assert event["failed_adjustments"] == 0
        assert event["fully_delivered"] is True
        assert "duration_ms" in event
        assert event["order_id"] == str(order.id)
        assert "correlation_id" in event


class TestCreateDispatchRejections:
    def test_unknown_order(self, session, workflow, test_actor_id):
        with pytest.raises(OrderNotFoundError):
            workflow.create_dispatch(
                uuid4(), [ManifestLine(uuid4(), 1, Decimal("1"))], None, test_actor_id
            )
        assert _dispatch_count(session) == 0

    def test_empty_manifest_mutates_nothing(
        self, session, workflow, make_order, roll, test_actor_id
    ):
        order = make_order([(roll, 50)])
        with pytest.raises(InvalidManifestError):
            workflow.create_dispatch(order.id, [], None, test_actor_id)

        assert _dispatch_count(session) == 0
        assert SequenceService(session).current_value("DIS") is None
        assert roll.stock == 200

    def test_foreign_line_item_rejected(
        self, session, workflow, make_order, roll, test_actor_id
    ):
        first = make_order([(roll, 10)])
        second = make_order([(roll, 10)])
        manifest = [
            ManifestLine(first.items[0].id, 5, Decimal("10")),
            ManifestLine(second.items[0].id, 5, Decimal("10")),
        ]
        with pytest.raises(InvalidManifestError) as exc_info:
            workflow.create_dispatch(first.id, manifest, None, test_actor_id)

        assert exc_info.value.line_item_ids == [str(second.items[0].id)]
        assert _dispatch_count(session) == 0
        assert session.get(OrderItem, first.items[0].id).quantity == 10
        assert roll.stock == 200

    def test_cancelled_order(self, workflow, order_service, make_order, roll, test_actor_id):
        order = make_order([(roll, 10)])
        order_service.cancel_order(order.id, test_actor_id)
        with pytest.raises(OrderCancelledError):
            workflow.create_dispatch(order.id, _full_manifest(order), None, test_actor_id)

    def test_single_cardinality_refuses_second_dispatch(
        self, session, deterministic_clock, make_order, roll, test_actor_id
    ):
        workflow = DispatchWorkflow(
            session,
            deterministic_clock,
            WorkflowConfig(dispatch_cardinality=DispatchCardinality.SINGLE),
        )
        order = make_order([(roll, 10)])
        item_id = order.items[0].id
        workflow.create_dispatch(
            order.id, [ManifestLine(item_id, 4, Decimal("10"))], None, test_actor_id
        )
        with pytest.raises(DispatchAlreadyExistsError) as exc_info:
            workflow.create_dispatch(
                order.id, [ManifestLine(item_id, 6, Decimal("10"))], None, test_actor_id
            )

        assert exc_info.value.dispatch_id == "DIS001"
        assert exc_info.value.retryable is False
        assert _dispatch_count(session) == 1

    def test_rejection_logged(self, workflow, test_actor_id, captured_logs):
        with pytest.raises(OrderNotFoundError):
            workflow.create_dispatch(
                uuid4(), [ManifestLine(uuid4(), 1, Decimal("1"))], None, test_actor_id
            )
        rejected = [r for r in captured_logs() if r["message"] == "dispatch_rejected"]
        assert rejected[0]["exc_code"] == "ORDER_NOT_FOUND"


class TestBestEffortStockPhase:
    def test_unmatched_product_still_commits_dispatch(
        self, session, workflow, make_order, roll, test_actor_id
    ):
        order = make_order([(roll, 10)])
        manifest = [
            ManifestLine(
                order.items[0].id, 10, Decimal("10"), attributes={"color_top": "green"}
            )
        ]
        result = workflow.create_dispatch(order.id, manifest, None, test_actor_id)

        [outcome] = result.stock_adjustments
        assert outcome.applied is False
        assert outcome.error_code == "NO_PRODUCT_MATCH"
        assert result.failed_adjustments == (outcome,)
        assert result.shipped_now is True
        assert _dispatch_count(session) == 1
        assert roll.stock == 200

    def test_ambiguous_match_reported(
        self, session, workflow, make_order, make_product, roll, test_actor_id
    ):
        order = make_order([(roll, 10)])
        make_product(name="Tarpaulin Roll", stock=5)
        result = workflow.create_dispatch(
            order.id, _full_manifest(order), None, test_actor_id
        )
        assert result.stock_adjustments[0].error_code == "AMBIGUOUS_PRODUCT_MATCH"
        assert result.dispatch.dispatch_code == "DIS001"

    def test_failure_isolated_per_entry(
        self, workflow, make_order, roll, bundle, test_actor_id, captured_logs
    ):
        order = make_order([(roll, 10), (bundle, 5)])
        manifest = [
            ManifestLine(order.items[0].id, 10, Decimal("10"), attributes={"gsm": 999}),
            ManifestLine(order.items[1].id, 5, Decimal("12.50")),
        ]
        result = workflow.create_dispatch(order.id, manifest, None, test_actor_id)

        applied = [o.applied for o in result.stock_adjustments]
        assert applied == [False, True]
        assert bundle.stock == 95
        failed = [
            r for r in captured_logs()
            if r.get("observability_event") == "stock_adjustment_failed"
        ]
        assert len(failed) == 1
        assert failed[0]["dispatch_code"] == "DIS001"

    def test_shortfall_clamped_and_alerted(
        self, session, workflow, make_order, make_product, test_actor_id
    ):
        scarce = make_product(name="Scarce Roll", stock=30)
        order = make_order([(scarce, 50)])
        result = workflow.create_dispatch(
            order.id, _full_manifest(order), None, test_actor_id
        )

        level = result.stock_adjustments[0].stock_level
        assert level.stock == 0
        assert level.shortfall == 20
        alert_types = set(session.execute(select(StockAlert.alert_type)).scalars())
        assert AlertType.STOCK_SHORTFALL.value in alert_types


class TestUpdateDispatchStatus:
    def _dispatch(self, workflow, make_order, roll, actor_id, quantity=10):
        order = make_order([(roll, 10)])
        result = workflow.create_dispatch(
            order.id,
            [ManifestLine(order.items[0].id, quantity, Decimal("10"))],
            None,
            actor_id,
        )
        return order, result.dispatch

    def test_in_transit_with_tracking(self, workflow, make_order, roll, test_actor_id):
        _, dispatch = self._dispatch(workflow, make_order, roll, test_actor_id)
        info = workflow.update_dispatch_status(
            dispatch.id, DispatchStatus.IN_TRANSIT, test_actor_id, tracking_id="TRK-9"
        )
        assert info.status is DispatchStatus.IN_TRANSIT
        assert info.tracking_id == "TRK-9"

    def test_delivered_moves_order_to_delivered(
        self, session, workflow, make_order, roll, test_actor_id
    ):
        order, dispatch = self._dispatch(workflow, make_order, roll, test_actor_id)
        workflow.update_dispatch_status(dispatch.id, "DELIVERED", test_actor_id)

        assert session.get(Dispatch, dispatch.id).delivered_at is not None
        assert OrderSelector(session).get_order_details(order.id).status is OrderStatus.DELIVERED

    def test_delivered_is_terminal(self, workflow, make_order, roll, test_actor_id):
        _, dispatch = self._dispatch(workflow, make_order, roll, test_actor_id)
        workflow.update_dispatch_status(dispatch.id, DispatchStatus.DELIVERED, test_actor_id)
        with pytest.raises(InvalidStatusTransitionError):
            workflow.update_dispatch_status(dispatch.id, DispatchStatus.IN_TRANSIT, test_actor_id)

    def test_same_status_updates_remarks_only(self, workflow, make_order, roll, test_actor_id):
        _, dispatch = self._dispatch(workflow, make_order, roll, test_actor_id)
        info = workflow.update_dispatch_status(
            dispatch.id, DispatchStatus.READY_FOR_PICKUP, test_actor_id, remarks="dock 4"
        )
        assert info.status is DispatchStatus.READY_FOR_PICKUP

    def test_cancelled_order_left_cancelled(
        self, session, workflow, order_service, make_order, roll, test_actor_id, captured_logs
    ):
        order, dispatch = self._dispatch(workflow, make_order, roll, test_actor_id, quantity=4)
        order_service.cancel_order(order.id, test_actor_id)
        workflow.update_dispatch_status(dispatch.id, DispatchStatus.DELIVERED, test_actor_id)

        assert OrderSelector(session).get_order_details(order.id).status is OrderStatus.CANCELLED
        assert any(
            r["message"] == "delivered_dispatch_on_cancelled_order" for r in captured_logs()
        )

    def test_unknown_status(self, workflow, make_order, roll, test_actor_id):
        _, dispatch = self._dispatch(workflow, make_order, roll, test_actor_id)
        with pytest.raises(InvalidStatusError):
            workflow.update_dispatch_status(dispatch.id, "RETURNED", test_actor_id)

    def test_unknown_dispatch(self, workflow, test_actor_id):
        with pytest.raises(DispatchNotFoundError):
            workflow.update_dispatch_status(uuid4(), DispatchStatus.IN_TRANSIT, test_actor_id)


def test_summarize_single_line():
    from mfg_kernel.domain.dtos import DispatchLineSnapshot

    line = DispatchLineSnapshot(
        line_item_id=uuid4(),
        product_name="Tarpaulin Roll",
        delivered_quantity=50,
        rate=Decimal("10"),
        metric_value=Decimal("1"),
        amount=Decimal("500.00"),
    )
    assert summarize_package([line]) == "1 line, 50 units: Tarpaulin Roll x 50 @ 10.00"
