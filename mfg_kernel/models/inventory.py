"""
Module: mfg_kernel.models.inventory
Responsibility: ORM persistence for stock-keeping entities -- finished
    products, raw materials and the bill of materials linking them.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - stock >= 0 (ck_product_stock_non_negative / ck_raw_material_stock_non_negative).
    - item_code is unique per table.
    - status is written only together with stock, by the StockLedger, and
      always equals classify_stock(stock, reorder_level).

Failure modes:
    - IntegrityError on duplicate item_code (translated to
      DuplicateIdentifierError by the intake service).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase
from mfg_kernel.domain.stock import StockStatus, classify_stock


class StockKeepingMixin:
    """Columns shared by every entity the StockLedger owns."""

    item_code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit: Mapped[str] = mapped_column(String(30), default="units", nullable=False)
    price: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    stock: Mapped[int] = mapped_column(default=0, nullable=False)
    reorder_level: Mapped[int | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=StockStatus.OUT_OF_STOCK.value,
        nullable=False,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def derived_status(self) -> StockStatus:
        """What status should be for the current stock (pure)."""
        return classify_stock(self.stock, self.reorder_level)


class Product(StockKeepingMixin, TrackedBase):
    """
    Finished good (tarpaulin roll or bundle).

    Variant attributes (gsm, colors, dimensions, roll type) identify a
    product in the dispatch path; see domain.matching.ProductMatchKey.
    """

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        Index("idx_product_name", "name"),
        Index("idx_product_status", "status"),
    )

    product_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gsm: Mapped[int | None] = mapped_column(nullable=True)
    color_top: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color_bottom: Mapped[str | None] = mapped_column(String(50), nullable=True)
    length: Mapped[Decimal | None] = mapped_column(nullable=True)
    width: Mapped[Decimal | None] = mapped_column(nullable=True)
    weight: Mapped[Decimal | None] = mapped_column(nullable=True)
    roll_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    roll_number: Mapped[int | None] = mapped_column(nullable=True)
    pieces_per_bundle: Mapped[int | None] = mapped_column(nullable=True)
    variant: Mapped[str | None] = mapped_column(String(100), nullable=True)

    materials: Mapped[list["ProductMaterial"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product {self.item_code} {self.name!r} stock={self.stock} {self.status}>"


class RawMaterial(StockKeepingMixin, TrackedBase):
    """Raw material consumed by production batches."""

    __tablename__ = "raw_materials"

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_raw_material_stock_non_negative"),
        Index("idx_raw_material_status", "status"),
    )

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return f"<RawMaterial {self.item_code} {self.name!r} stock={self.stock} {self.status}>"


class ProductMaterial(TrackedBase):
    """Bill of materials row: raw material consumed per unit of product."""

    __tablename__ = "product_materials"

    __table_args__ = (
        UniqueConstraint("product_id", "raw_material_id", name="uq_product_material"),
        CheckConstraint("quantity_per_unit > 0", name="ck_product_material_qty_positive"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    raw_material_id: Mapped[UUID] = mapped_column(
        ForeignKey("raw_materials.id"),
        nullable=False,
    )
    quantity_per_unit: Mapped[int] = mapped_column(nullable=False)

    product: Mapped[Product] = relationship(back_populates="materials")
    raw_material: Mapped[RawMaterial] = relationship()
