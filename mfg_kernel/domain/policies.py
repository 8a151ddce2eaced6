"""
Policies -- named, configurable choices in the dispatch workflow.

Two behaviors of the dispatch path are product-owner decisions rather than
settled rules, so each is an explicit enum selected by configuration and
covered by tests for every member:

OrderTotalPolicy
    What happens to ``Order.total`` when a dispatch fully delivers the order.

    INCREMENT_ON_FULL_DELIVERY
        ``total += dispatch.total_amount``.  Long-standing behavior: the
        dispatch value is added on top of the creation-time order total
        (an order of 500 fully dispatched for 500 reports 1000).
    PRESERVE_ORDER_TOTAL
        ``total`` keeps its creation-time value (sum of line totals).

DispatchCardinality
    How many dispatches an order may have.

    MULTIPLE
        Partial deliveries: any number of dispatches, each decrementing
        outstanding line-item quantities.
    SINGLE
        At most one dispatch per order; a second one is a Conflict.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

CENT = Decimal("0.01")


class OrderTotalPolicy(str, Enum):
    INCREMENT_ON_FULL_DELIVERY = "increment_on_full_delivery"
    PRESERVE_ORDER_TOTAL = "preserve_order_total"


class DispatchCardinality(str, Enum):
    MULTIPLE = "multiple"
    SINGLE = "single"


def money(value: Decimal) -> Decimal:
    """Quantize a monetary amount to cents (half-up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def total_after_full_delivery(
    current_total: Decimal,
    dispatch_amount: Decimal,
    policy: OrderTotalPolicy,
) -> Decimal:
    """Order total once a dispatch has fully delivered the order."""
    if policy is OrderTotalPolicy.INCREMENT_ON_FULL_DELIVERY:
        return money(current_total + dispatch_amount)
    return current_total
