"""
ProductionService -- production batches and their stock effects.

Responsibility:
    Plans production batches against a product's bill of materials and
    drives the batch lifecycle.  Completing a batch adds the produced
    quantity to finished-goods stock and consumes the raw materials, in
    one transaction, through the StockLedger.

Invariants enforced:
    - A batch is only planned when current raw stock covers its bill of
      materials; completion re-checks (stock may have moved since).
    - Stock effects happen exactly once, on the transition to COMPLETED.

Failure modes:
    - ProductNotFoundError, OrderNotFoundError, ProductionBatchNotFoundError.
    - InvalidQuantityError for a non-positive batch quantity.
    - InsufficientRawMaterialError when the bill of materials cannot be met.
    - InvalidStatusError / InvalidStatusTransitionError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfg_config import WorkflowConfig
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.domain.dtos import ProductionBatchInfo
from mfg_kernel.domain.lifecycle import BatchStatus, can_transition_batch
from mfg_kernel.exceptions import (
    InsufficientRawMaterialError,
    InvalidQuantityError,
    InvalidStatusError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    ProductionBatchNotFoundError,
    ProductNotFoundError,
)
from mfg_kernel.logging_config import LogContext, get_logger
from mfg_kernel.models.inventory import Product, RawMaterial
from mfg_kernel.models.order import Order
from mfg_kernel.models.production import ProductionBatch
from mfg_kernel.services.base import BaseService
from mfg_kernel.services.sequence_service import SequenceService
from mfg_kernel.services.stock_ledger import StockLedger
from mfg_kernel.services.transaction import insert_with_fresh_identifier, unit_of_work

logger = get_logger("services.production")


class ProductionService(BaseService[ProductionBatch]):
    """Production batch planning and completion."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorkflowConfig | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or WorkflowConfig()
        self._auto_commit = auto_commit
        self._sequences = SequenceService(session)
        self._ledger = StockLedger(session)

    def _uow(self, operation: str):
        return unit_of_work(
            self.session,
            operation,
            self._config.transaction_timeout_seconds,
            self._auto_commit,
        )

    def _check_materials(self, product: Product, quantity: int) -> None:
        for requirement in product.materials:
            material = requirement.raw_material
            required = requirement.quantity_per_unit * quantity
            if material.stock < required:
                raise InsufficientRawMaterialError(
                    material.item_code, required, material.stock
                )

    def create_batch(
        self,
        product_id: UUID,
        quantity: int,
        actor_id: UUID,
        order_id: UUID | None = None,
    ) -> ProductionBatchInfo:
        """Plan a batch of ``quantity`` units (status PLANNED, code BATCH-###)."""
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError("quantity", quantity)

        with LogContext.bind(actor_id=str(actor_id)):
            with self._uow("create_batch"):
                product = self.session.get(Product, product_id)
                if product is None:
                    raise ProductNotFoundError(str(product_id))
                if order_id is not None and self.session.get(Order, order_id) is None:
                    raise OrderNotFoundError(str(order_id))
                self._check_materials(product, quantity)

                batch = insert_with_fresh_identifier(
                    self.session,
                    "production_batch",
                    lambda: self._sequences.next_id(
                        self._config.prefixes.production_batch,
                        width=self._config.identifier_width,
                        column=ProductionBatch.batch_code,
                    ),
                    lambda code: ProductionBatch(
                        batch_code=code,
                        product_id=product.id,
                        order_id=order_id,
                        quantity=quantity,
                        status=BatchStatus.PLANNED.value,
                        created_by_id=actor_id,
                    ),
                    self._config.identifier_retry_attempts,
                )
                info = ProductionBatchInfo.from_model(batch)

            logger.info(
                "production_batch_created",
                extra={
                    "batch_code": info.batch_code,
                    "item_code": product.item_code,
                    "quantity": quantity,
                },
            )
            return info

    def update_batch_status(
        self,
        batch_id: UUID,
        status: BatchStatus | str,
        actor_id: UUID,
    ) -> ProductionBatchInfo:
        """
        Move a batch through PLANNED -> IN_PROGRESS -> COMPLETED / CANCELLED.

        COMPLETED increments product stock and consumes raw materials.
        """
        try:
            target = BatchStatus(status)
        except ValueError:
            raise InvalidStatusError(
                "production_batch", str(status), [s.value for s in BatchStatus]
            ) from None

        with LogContext.bind(actor_id=str(actor_id), batch_id=str(batch_id)):
            with self._uow("update_batch_status"):
                batch = self.session.execute(
                    select(ProductionBatch)
                    .where(ProductionBatch.id == batch_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if batch is None:
                    raise ProductionBatchNotFoundError(str(batch_id))

                current = BatchStatus(batch.status)
                if current is target:
                    return ProductionBatchInfo.from_model(batch)
                if not can_transition_batch(current, target):
                    raise InvalidStatusTransitionError(
                        "production_batch", batch.batch_code, current.value, target.value
                    )

                now = self._clock.now()
                if target in (BatchStatus.IN_PROGRESS, BatchStatus.COMPLETED):
                    batch.started_at = batch.started_at or now
                if target is BatchStatus.COMPLETED:
                    batch.completed_at = now
                    self._complete(batch, actor_id)

                batch.status = target.value
                batch.updated_by_id = actor_id
                self.session.flush()
                info = ProductionBatchInfo.from_model(batch)

            logger.info(
                "production_batch_status_changed",
                extra={
                    "batch_code": info.batch_code,
                    "from_status": current.value,
                    "to_status": target.value,
                },
            )
            return info

    def _complete(self, batch: ProductionBatch, actor_id: UUID) -> None:
        for requirement in batch.product.materials:
            self._ledger.consume(
                requirement.raw_material_id,
                requirement.quantity_per_unit * batch.quantity,
                actor_id,
                model=RawMaterial,
            )
        self._ledger.increment(batch.product_id, batch.quantity, actor_id)
