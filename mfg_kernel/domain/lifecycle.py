"""
Lifecycle -- order, dispatch and production batch state machines.

Responsibility:
    Declares the status enums and the permitted transitions for Order,
    Dispatch and ProductionBatch.  Services consult these tables before
    writing any status column.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Order lifecycle::

    PENDING -> PROCESSING -> IN_PRODUCTION -> COMPLETED -> SHIPPED -> DELIVERED
        \\____________\\______________\\___________\\_________/
                 CANCELLED / DELAYED (side transitions)

    DELAYED resumes into PROCESSING, IN_PRODUCTION or COMPLETED.
    SHIPPED is only reachable while a Dispatch exists for the order
    (checked by OrderService; the workflow sets it on full delivery).
    DELIVERED and CANCELLED are terminal.

Dispatch lifecycle::

    READY_FOR_PICKUP -> IN_TRANSIT -> DELIVERED
           \\______________/
               DELAYED -> IN_TRANSIT | DELIVERED

    DELIVERED is terminal and forces the order to DELIVERED.

Production batch lifecycle::

    PLANNED -> IN_PROGRESS -> COMPLETED
        \\__________\\_______> CANCELLED
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    IN_PRODUCTION = "IN_PRODUCTION"
    COMPLETED = "COMPLETED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    DELAYED = "DELAYED"


class DispatchStatus(str, Enum):
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    DELAYED = "DELAYED"


class BatchStatus(str, Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
        OrderStatus.DELAYED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.IN_PRODUCTION,
        OrderStatus.CANCELLED,
        OrderStatus.DELAYED,
    }),
    OrderStatus.IN_PRODUCTION: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.DELAYED,
    }),
    OrderStatus.COMPLETED: frozenset({
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.DELAYED,
    }),
    OrderStatus.DELAYED: frozenset({
        OrderStatus.PROCESSING,
        OrderStatus.IN_PRODUCTION,
        OrderStatus.COMPLETED,
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.SHIPPED: frozenset({
        OrderStatus.DELIVERED,
        OrderStatus.DELAYED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

DISPATCH_TRANSITIONS: dict[DispatchStatus, frozenset[DispatchStatus]] = {
    DispatchStatus.READY_FOR_PICKUP: frozenset({
        DispatchStatus.IN_TRANSIT,
        DispatchStatus.DELIVERED,
        DispatchStatus.DELAYED,
    }),
    DispatchStatus.IN_TRANSIT: frozenset({
        DispatchStatus.DELIVERED,
        DispatchStatus.DELAYED,
    }),
    DispatchStatus.DELAYED: frozenset({
        DispatchStatus.IN_TRANSIT,
        DispatchStatus.DELIVERED,
    }),
    DispatchStatus.DELIVERED: frozenset(),
}

BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.PLANNED: frozenset({
        BatchStatus.IN_PROGRESS,
        BatchStatus.COMPLETED,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.IN_PROGRESS: frozenset({
        BatchStatus.COMPLETED,
        BatchStatus.CANCELLED,
    }),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.CANCELLED: frozenset(),
}

# Orders past these states no longer accept shipment-driven changes.
TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
SHIPPED_OR_LATER = frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED})


def can_transition_order(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


def can_transition_dispatch(current: DispatchStatus, target: DispatchStatus) -> bool:
    return target in DISPATCH_TRANSITIONS[current]


def can_transition_batch(current: BatchStatus, target: BatchStatus) -> bool:
    return target in BATCH_TRANSITIONS[current]
