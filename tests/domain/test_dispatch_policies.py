"""Order total policy and monetary rounding."""

from decimal import Decimal

import pytest

from mfg_kernel.domain.policies import (
    DispatchCardinality,
    OrderTotalPolicy,
    money,
    total_after_full_delivery,
)


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert money(Decimal("1.005")) == Decimal("1.01")
        assert money(Decimal("1.004")) == Decimal("1.00")

    def test_keeps_two_places(self):
        assert str(money(Decimal("500"))) == "500.00"


class TestTotalAfterFullDelivery:
    def test_increment_adds_dispatch_amount(self):
        """An order of 500 fully dispatched for 500 reports 1000."""
        total = total_after_full_delivery(
            Decimal("500.00"),
            Decimal("500.00"),
            OrderTotalPolicy.INCREMENT_ON_FULL_DELIVERY,
        )
        assert total == Decimal("1000.00")

    def test_preserve_keeps_creation_total(self):
        total = total_after_full_delivery(
            Decimal("500.00"),
            Decimal("500.00"),
            OrderTotalPolicy.PRESERVE_ORDER_TOTAL,
        )
        assert total == Decimal("500.00")

    @pytest.mark.parametrize("policy", list(OrderTotalPolicy))
    def test_every_policy_handled(self, policy):
        total = total_after_full_delivery(Decimal("10.00"), Decimal("2.50"), policy)
        assert total in (Decimal("10.00"), Decimal("12.50"))


def test_policy_values_match_config_spelling():
    assert OrderTotalPolicy("increment_on_full_delivery") is OrderTotalPolicy.INCREMENT_ON_FULL_DELIVERY
    assert DispatchCardinality("single") is DispatchCardinality.SINGLE
