"""
InventoryIntakeService -- receiving raw materials and finished goods.

Responsibility:
    Registers raw materials (RM-###) and finished products (TR### rolls,
    TB### bundles), merges finished-goods intake into an existing product
    with the same variant attributes, maintains bills of materials, reorder
    levels and cycle-count adjustments.  All stock changes go through the
    StockLedger; new rows start at zero stock and receive their opening
    quantity as a ledger increment.

Failure modes:
    - MissingFieldError for a blank name.
    - InvalidQuantityError for negative quantities or prices.
    - AmbiguousProductMatchError when intake attributes match several
      products.
    - ProductNotFoundError / RawMaterialNotFoundError.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfg_config import WorkflowConfig
from mfg_kernel.domain.dtos import StockItemInfo, StockLevel
from mfg_kernel.domain.matching import ProductMatchKey, ProductType
from mfg_kernel.domain.stock import StockEntityKind, StockStatus
from mfg_kernel.exceptions import (
    InvalidQuantityError,
    MissingFieldError,
    ProductNotFoundError,
    RawMaterialNotFoundError,
)
from mfg_kernel.logging_config import LogContext, get_logger
from mfg_kernel.models.inventory import Product, ProductMaterial, RawMaterial
from mfg_kernel.services.base import BaseService
from mfg_kernel.services.product_matcher import ProductMatcher
from mfg_kernel.services.sequence_service import SequenceService
from mfg_kernel.services.stock_ledger import MODEL_FOR_KIND, StockLedger
from mfg_kernel.services.transaction import insert_with_fresh_identifier, unit_of_work

logger = get_logger("services.inventory_intake")


def _require_name(name: str) -> str:
    if not name or not name.strip():
        raise MissingFieldError("name")
    return name.strip()


def _require_price(price: Decimal | int | str) -> Decimal:
    try:
        value = Decimal(str(price))
    except ArithmeticError:
        raise InvalidQuantityError("price", price) from None
    if not value.is_finite() or value < 0:
        raise InvalidQuantityError("price", price)
    return value


class InventoryIntakeService(BaseService[Product]):
    """Stock intake and inventory maintenance."""

    def __init__(
        self,
        session: Session,
        config: WorkflowConfig | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session)
        self._config = config or WorkflowConfig()
        self._auto_commit = auto_commit
        self._sequences = SequenceService(session)
        self._ledger = StockLedger(session)
        self._matcher = ProductMatcher(session, self._config.match_attributes)

    def _uow(self, operation: str):
        return unit_of_work(
            self.session,
            operation,
            self._config.transaction_timeout_seconds,
            self._auto_commit,
        )

    def _next_code(self, prefix: str, column) -> str:
        return self._sequences.next_id(
            prefix, width=self._config.identifier_width, column=column
        )

    # ------------------------------------------------------------------
    # Raw materials
    # ------------------------------------------------------------------

    def add_raw_material(
        self,
        name: str,
        quantity: int,
        actor_id: UUID,
        unit: str = "units",
        price: Decimal | int | str = Decimal("0"),
        supplier: str | None = None,
        category: str | None = None,
        reorder_level: int | None = None,
        remarks: str | None = None,
    ) -> StockItemInfo:
        """Register a raw material with its opening stock (code RM-###)."""
        name = _require_name(name)
        unit_price = _require_price(price)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidQuantityError("quantity", quantity)

        with LogContext.bind(actor_id=str(actor_id)):
            with self._uow("add_raw_material"):
                material = insert_with_fresh_identifier(
                    self.session,
                    "raw_material",
                    lambda: self._next_code(
                        self._config.prefixes.raw_material, RawMaterial.item_code
                    ),
                    lambda code: RawMaterial(
                        item_code=code,
                        name=name,
                        unit=unit,
                        price=unit_price,
                        stock=0,
                        reorder_level=reorder_level,
                        status=StockStatus.OUT_OF_STOCK.value,
                        supplier=supplier,
                        category=category,
                        remarks=remarks,
                        created_by_id=actor_id,
                    ),
                    self._config.identifier_retry_attempts,
                )
                self._ledger.increment(
                    material.id, quantity, actor_id, model=RawMaterial
                )
                info = StockItemInfo.from_model(material, StockEntityKind.RAW_MATERIAL)

            logger.info(
                "raw_material_added",
                extra={"item_code": info.item_code, "stock": info.stock},
            )
            return info

    # ------------------------------------------------------------------
    # Finished products
    # ------------------------------------------------------------------

    def add_finished_product(
        self,
        product_type: ProductType | str,
        name: str,
        quantity: int,
        actor_id: UUID,
        price: Decimal | int | str = Decimal("0"),
        gsm: int | None = None,
        color_top: str | None = None,
        color_bottom: str | None = None,
        length: Decimal | None = None,
        width: Decimal | None = None,
        weight: Decimal | None = None,
        roll_type: str | None = None,
        roll_number: int | None = None,
        pieces_per_bundle: int | None = None,
        category: str | None = None,
        variant: str | None = None,
        unit: str = "units",
        reorder_level: int | None = None,
        remarks: str | None = None,
    ) -> StockItemInfo:
        """
        Receive finished goods.

        If a product with the same variant attributes exists its stock is
        incremented; otherwise a new product is created (TR### for rolls,
        TB### for bundles).
        """
        name = _require_name(name)
        unit_price = _require_price(price)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidQuantityError("quantity", quantity)
        try:
            kind = ProductType(product_type)
        except ValueError:
            raise InvalidQuantityError("product_type", product_type) from None

        key = ProductMatchKey(
            name=name,
            product_type=kind,
            gsm=gsm,
            color_top=color_top,
            color_bottom=color_bottom,
            length=Decimal(str(length)) if length is not None else None,
            width=Decimal(str(width)) if width is not None else None,
            roll_type=roll_type,
        )

        with LogContext.bind(actor_id=str(actor_id)):
            with self._uow("add_finished_product"):
                product = self._matcher.find(key)
                merged = product is not None
                if product is None:
                    product = insert_with_fresh_identifier(
                        self.session,
                        "product",
                        lambda: self._next_code(
                            self._config.prefixes.for_product_type(kind),
                            Product.item_code,
                        ),
                        lambda code: Product(
                            item_code=code,
                            name=name,
                            product_type=kind.value,
                            unit=unit,
                            price=unit_price,
                            stock=0,
                            reorder_level=reorder_level,
                            status=StockStatus.OUT_OF_STOCK.value,
                            gsm=gsm,
                            color_top=color_top,
                            color_bottom=color_bottom,
                            length=key.length,
                            width=key.width,
                            weight=weight,
                            roll_type=roll_type,
                            roll_number=roll_number,
                            pieces_per_bundle=pieces_per_bundle,
                            category=category,
                            variant=variant,
                            remarks=remarks,
                            created_by_id=actor_id,
                        ),
                        self._config.identifier_retry_attempts,
                    )
                self._ledger.increment(product.id, quantity, actor_id)
                info = StockItemInfo.from_model(product, StockEntityKind.PRODUCT)

            logger.info(
                "finished_product_received",
                extra={
                    "item_code": info.item_code,
                    "merged": merged,
                    "received": quantity,
                    "stock": info.stock,
                },
            )
            return info

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def set_material_requirement(
        self,
        product_id: UUID,
        raw_material_id: UUID,
        quantity_per_unit: int,
        actor_id: UUID,
    ) -> None:
        """Create or update a bill-of-materials row."""
        if (
            isinstance(quantity_per_unit, bool)
            or not isinstance(quantity_per_unit, int)
            or quantity_per_unit <= 0
        ):
            raise InvalidQuantityError("quantity_per_unit", quantity_per_unit)

        with self._uow("set_material_requirement"):
            if self.session.get(Product, product_id) is None:
                raise ProductNotFoundError(str(product_id))
            if self.session.get(RawMaterial, raw_material_id) is None:
                raise RawMaterialNotFoundError(str(raw_material_id))
            row = self.session.execute(
                select(ProductMaterial).where(
                    ProductMaterial.product_id == product_id,
                    ProductMaterial.raw_material_id == raw_material_id,
                )
            ).scalar_one_or_none()
            if row is None:
                self.session.add(
                    ProductMaterial(
                        product_id=product_id,
                        raw_material_id=raw_material_id,
                        quantity_per_unit=quantity_per_unit,
                        created_by_id=actor_id,
                    )
                )
            else:
                row.quantity_per_unit = quantity_per_unit
                row.updated_by_id = actor_id
            self.session.flush()

    def set_reorder_level(
        self,
        entity_id: UUID,
        reorder_level: int | None,
        actor_id: UUID,
        kind: StockEntityKind = StockEntityKind.PRODUCT,
    ) -> StockLevel:
        with self._uow("set_reorder_level"):
            level = self._ledger.set_reorder_level(
                entity_id, reorder_level, actor_id, model=MODEL_FOR_KIND[kind]
            )
        return level

    def adjust_stock(
        self,
        entity_id: UUID,
        new_stock: int,
        actor_id: UUID,
        kind: StockEntityKind = StockEntityKind.PRODUCT,
    ) -> StockLevel:
        """Cycle-count correction: set stock to an absolute value."""
        with self._uow("adjust_stock"):
            level = self._ledger.adjust(
                entity_id, new_stock, actor_id, model=MODEL_FOR_KIND[kind]
            )
        logger.info(
            "stock_adjusted",
            extra={"item_code": level.item_code, "stock": level.stock},
        )
        return level
