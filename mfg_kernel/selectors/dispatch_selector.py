"""Read access to dispatches."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from mfg_kernel.domain.dtos import DispatchInfo
from mfg_kernel.domain.lifecycle import DispatchStatus
from mfg_kernel.exceptions import DispatchNotFoundError
from mfg_kernel.models.dispatch import Dispatch
from mfg_kernel.selectors.base import BaseSelector


class DispatchSelector(BaseSelector[Dispatch]):
    """Dispatch queries returning DispatchInfo DTOs."""

    def _query(self):
        return select(Dispatch).options(selectinload(Dispatch.order))

    def get(self, dispatch_id: UUID) -> DispatchInfo:
        """
        Raises:
            DispatchNotFoundError: If the dispatch doesn't exist.
        """
        dispatch = self.session.execute(
            self._query().where(Dispatch.id == dispatch_id)
        ).scalar_one_or_none()
        if dispatch is None:
            raise DispatchNotFoundError(str(dispatch_id))
        return DispatchInfo.from_model(dispatch)

    def list_for_order(self, order_id: UUID) -> list[DispatchInfo]:
        stmt = (
            self._query()
            .where(Dispatch.order_id == order_id)
            .order_by(Dispatch.dispatch_code)
        )
        return [DispatchInfo.from_model(d) for d in self.session.execute(stmt).scalars()]

    def list_by_status(self, status: DispatchStatus) -> list[DispatchInfo]:
        stmt = (
            self._query()
            .where(Dispatch.status == DispatchStatus(status).value)
            .order_by(Dispatch.dispatch_code)
        )
        return [DispatchInfo.from_model(d) for d in self.session.execute(stmt).scalars()]
