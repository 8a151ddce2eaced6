"""Read access to production batches (the production schedule)."""

from uuid import UUID

from sqlalchemy import select

from mfg_kernel.domain.dtos import ProductionBatchInfo
from mfg_kernel.domain.lifecycle import BatchStatus
from mfg_kernel.exceptions import InvalidStatusError, ProductionBatchNotFoundError
from mfg_kernel.models.production import ProductionBatch
from mfg_kernel.selectors.base import BaseSelector


class ProductionSelector(BaseSelector[ProductionBatch]):
    """Production batch queries returning ProductionBatchInfo DTOs."""

    def get(self, batch_id: UUID) -> ProductionBatchInfo:
        """
        Raises:
            ProductionBatchNotFoundError: If the batch doesn't exist.
        """
        batch = self.session.get(ProductionBatch, batch_id)
        if batch is None:
            raise ProductionBatchNotFoundError(str(batch_id))
        return ProductionBatchInfo.from_model(batch)

    def list_batches(
        self,
        status: BatchStatus | str | None = None,
        order_id: UUID | None = None,
    ) -> list[ProductionBatchInfo]:
        """Batches newest first, optionally filtered by status and order."""
        stmt = select(ProductionBatch).order_by(
            ProductionBatch.created_at.desc(), ProductionBatch.batch_code.desc()
        )
        if status is not None:
            try:
                target = BatchStatus(status)
            except ValueError:
                raise InvalidStatusError(
                    "production_batch", str(status), [s.value for s in BatchStatus]
                ) from None
            stmt = stmt.where(ProductionBatch.status == target.value)
        if order_id is not None:
            stmt = stmt.where(ProductionBatch.order_id == order_id)
        return [
            ProductionBatchInfo.from_model(b) for b in self.session.execute(stmt).scalars()
        ]
