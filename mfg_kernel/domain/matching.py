"""
Matching -- descriptive-attribute identity for finished products.

Responsibility:
    The dispatch path has no foreign key from a manifest entry to a
    Product.  Finished goods (tarpaulin rolls and bundles) are identified by
    their name plus type-specific variant attributes.  ProductMatchKey is
    that attribute tuple, and ``predicates()`` yields the column filters a
    lookup must apply.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Consumed by ProductMatcher (dispatch
    stock path) and InventoryIntakeService (merge-on-intake).

Invariants enforced:
    - An attribute left as None is not constrained.
    - Only attributes relevant to the product type take part in matching
      (rolls ignore length, bundles ignore roll_type).
"""

from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from mfg_kernel.exceptions import InvalidQuantityError


class ProductType(str, Enum):
    ROLL = "ROLL"
    BUNDLE = "BUNDLE"


# Default match attributes per product type; overridable from config.
DEFAULT_MATCH_ATTRIBUTES: dict[ProductType, tuple[str, ...]] = {
    ProductType.ROLL: ("name", "roll_type", "gsm", "color_top", "color_bottom", "width"),
    ProductType.BUNDLE: ("name", "gsm", "color_top", "color_bottom", "length", "width"),
}


@dataclass(frozen=True)
class ProductMatchKey:
    """Attribute tuple identifying a finished product variant."""

    name: str
    product_type: ProductType | None = None
    gsm: int | None = None
    color_top: str | None = None
    color_bottom: str | None = None
    length: Decimal | None = None
    width: Decimal | None = None
    roll_type: str | None = None

    def predicates(
        self,
        match_attributes: dict[ProductType, tuple[str, ...]] | None = None,
    ) -> dict[str, Any]:
        """
        Column -> value filters for a product lookup.

        Without a product type every non-None attribute is used.
        """
        attrs = match_attributes or DEFAULT_MATCH_ATTRIBUTES
        if self.product_type is None:
            names: tuple[str, ...] = tuple(
                k for k in asdict(self) if k != "product_type"
            )
        else:
            names = attrs[self.product_type]
        filters: dict[str, Any] = {}
        if self.product_type is not None:
            filters["product_type"] = self.product_type.value
        for attr in names:
            value = getattr(self, attr)
            if value is not None:
                filters[attr] = value
        return filters

    def merged(self, overrides: dict[str, Any] | None) -> "ProductMatchKey":
        """Copy with non-None overrides applied (manifest attrs over item attrs)."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        clean = {
            k: v for k, v in overrides.items() if v is not None and k in known
        }
        try:
            if "product_type" in clean:
                clean["product_type"] = ProductType(clean["product_type"])
            for dim in ("length", "width"):
                if dim in clean:
                    clean[dim] = Decimal(str(clean[dim]))
            if "gsm" in clean:
                clean["gsm"] = int(clean["gsm"])
        except (ValueError, ArithmeticError) as exc:
            raise InvalidQuantityError("attributes", overrides) from exc
        return replace(self, **clean)

    def as_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (used in errors and logs)."""
        out: dict[str, Any] = {}
        for k, v in asdict(self).items():
            if v is None:
                continue
            if isinstance(v, Enum):
                v = v.value
            elif isinstance(v, Decimal):
                v = str(v)
            out[k] = v
        return out
