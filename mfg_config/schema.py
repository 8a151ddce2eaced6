"""
Configuration schema (``mfg_config.schema``).

Frozen dataclasses describing every tunable of the kernel.  Field defaults
mirror ``defaults.yaml``; a WorkflowConfig() built in code is therefore
equivalent to the shipped defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mfg_kernel.domain.matching import DEFAULT_MATCH_ATTRIBUTES, ProductType
from mfg_kernel.domain.policies import DispatchCardinality, OrderTotalPolicy

SUPPORTED_SCHEMA_VERSION = 1

_MATCHABLE = frozenset(
    {"name", "gsm", "color_top", "color_bottom", "length", "width", "roll_type"}
)


@dataclass(frozen=True)
class IdentifierPrefixes:
    order: str = "ORD"
    dispatch: str = "DIS"
    raw_material: str = "RM-"
    roll: str = "TR"
    bundle: str = "TB"
    production_batch: str = "BATCH-"

    def for_product_type(self, product_type: ProductType) -> str:
        return self.roll if product_type is ProductType.ROLL else self.bundle


@dataclass(frozen=True)
class WorkflowConfig:
    """
    Complete runtime configuration.

    Invariants:
        - transaction_timeout_seconds > 0
        - identifier_width >= 1
        - identifier_retry_attempts >= 1
        - match attributes reference known ProductMatchKey fields and
          always include ``name``.
    """

    transaction_timeout_seconds: float = 10.0
    identifier_retry_attempts: int = 3
    identifier_width: int = 3
    date_scoped_orders: bool = False
    prefixes: IdentifierPrefixes = field(default_factory=IdentifierPrefixes)
    order_total_policy: OrderTotalPolicy = OrderTotalPolicy.INCREMENT_ON_FULL_DELIVERY
    dispatch_cardinality: DispatchCardinality = DispatchCardinality.MULTIPLE
    match_attributes: dict[ProductType, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_MATCH_ATTRIBUTES)
    )
    checksum: str | None = None

    def __post_init__(self):
        if self.transaction_timeout_seconds <= 0:
            raise ValueError("transaction_timeout_seconds must be positive")
        if self.identifier_width < 1:
            raise ValueError("identifier_width must be at least 1")
        if self.identifier_retry_attempts < 1:
            raise ValueError("identifier_retry_attempts must be at least 1")
        for product_type, attrs in self.match_attributes.items():
            unknown = set(attrs) - _MATCHABLE
            if unknown:
                raise ValueError(
                    f"Unknown match attributes for {product_type.value}: {sorted(unknown)}"
                )
            if "name" not in attrs:
                raise ValueError(
                    f"Match attributes for {product_type.value} must include 'name'"
                )
