"""
Stock -- pure stock arithmetic and status classification.

Responsibility:
    The single definition of how a stock quantity maps to a StockStatus,
    and of the clamp-at-zero decrement used by the dispatch path.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Used by the
    StockLedger (the only writer of stock columns) and by selectors that
    report stock levels.

Invariants enforced:
    - Status is a pure function of (stock, reorder_level); it is never set
      independently of a stock mutation.
    - Stock never goes negative: clamp_decrement() floors at zero and
      reports the clamped-away amount as shortfall.
"""

from dataclasses import dataclass
from enum import Enum


class StockStatus(str, Enum):
    """Derived stock classification for raw materials and products."""

    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


def classify_stock(stock: int, reorder_level: int | None) -> StockStatus:
    """
    Classify a stock quantity.

    OUT_OF_STOCK if stock <= 0; LOW_STOCK if a reorder level is configured
    and stock <= reorder level; IN_STOCK otherwise.

    A reorder level of 0 behaves like "no threshold": stock <= 0 is already
    OUT_OF_STOCK.
    """
    if stock <= 0:
        return StockStatus.OUT_OF_STOCK
    if reorder_level and stock <= reorder_level:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


@dataclass(frozen=True)
class ClampedDecrement:
    """Result of clamp_decrement: the new stock and the amount not covered."""

    new_stock: int
    shortfall: int


def clamp_decrement(stock: int, amount: int) -> ClampedDecrement:
    """
    Subtract ``amount`` from ``stock`` without going below zero.

    >>> clamp_decrement(30, 50)
    ClampedDecrement(new_stock=0, shortfall=20)
    """
    remaining = stock - amount
    if remaining >= 0:
        return ClampedDecrement(new_stock=remaining, shortfall=0)
    return ClampedDecrement(new_stock=0, shortfall=-remaining)


class StockEntityKind(str, Enum):
    """Tables owned by the StockLedger."""

    PRODUCT = "product"
    RAW_MATERIAL = "raw_material"
