"""
ProductMatcher -- resolve a finished product from descriptive attributes.

Manifest entries and intake requests identify finished goods by name plus
variant attributes rather than by id.  Resolution requires exactly one
candidate; zero or several are explicit errors.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfg_kernel.domain.matching import DEFAULT_MATCH_ATTRIBUTES, ProductMatchKey, ProductType
from mfg_kernel.exceptions import AmbiguousProductMatchError, NoProductMatchError
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.inventory import Product

logger = get_logger("services.product_matcher")


class ProductMatcher:
    """Read-only product lookup by ProductMatchKey."""

    def __init__(
        self,
        session: Session,
        match_attributes: dict[ProductType, tuple[str, ...]] | None = None,
    ):
        self._session = session
        self._match_attributes = match_attributes or DEFAULT_MATCH_ATTRIBUTES

    def candidates(self, key: ProductMatchKey) -> list[Product]:
        stmt = select(Product)
        for column, value in key.predicates(self._match_attributes).items():
            stmt = stmt.where(getattr(Product, column) == value)
        return list(self._session.execute(stmt.order_by(Product.item_code)).scalars())

    def find(self, key: ProductMatchKey) -> Product | None:
        """The single matching product, or None when nothing matches."""
        found = self.candidates(key)
        if len(found) > 1:
            raise AmbiguousProductMatchError(
                key.as_dict(), [p.item_code for p in found]
            )
        return found[0] if found else None

    def resolve(self, key: ProductMatchKey) -> UUID:
        """
        Product id for ``key``.

        Raises:
            NoProductMatchError: no product carries the attributes.
            AmbiguousProductMatchError: more than one does.
        """
        product = self.find(key)
        if product is None:
            raise NoProductMatchError(key.as_dict())
        logger.debug(
            "product_resolved",
            extra={"item_code": product.item_code, "match_key": key.as_dict()},
        )
        return product.id
