"""
SequenceService -- human-readable identifier allocation via locked counter rows.

Responsibility:
    Allocates the sequential identifiers used across the kernel (ORD001,
    DIS004, RM-012, TR007, BATCH-001, date-scoped ORD-20240521-003).  Each
    numbering space (prefix plus optional scope) owns one counter row that
    is locked with ``SELECT ... FOR UPDATE`` for the increment.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by OrderService, DispatchWorkflow, InventoryIntakeService and
    ProductionService before inserting a row with a new identifier.

Invariants enforced:
    - The aggregate "read the last identifier and add one" pattern is never
      used for allocation; the locked counter row is the source of truth.
      Existing identifiers are parsed only once, to seed a counter on first
      use (databases populated before the counter existed).
    - Identifier columns still carry unique constraints.  A losing insert
      surfaces as DuplicateIdentifierError and the caller retries.
    - Transactional: an allocation rolled back with its transaction is
      returned to the sequence.  Allocation is not promised gap-free.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from collections.abc import Callable

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import InstrumentedAttribute, Mapped, Session, mapped_column

from mfg_kernel.db.base import Base
from mfg_kernel.domain.identifiers import (
    DEFAULT_WIDTH,
    format_identifier,
    identifier_stem,
    parse_sequence_number,
    sequence_name,
)
from mfg_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    One row per numbering space ("DIS", "ORD:20240521", ...).
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(80),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for allocating sequence numbers and formatted identifiers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        code = SequenceService(session).next_id("DIS", column=Dispatch.dispatch_code)
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(
        self,
        name: str,
        seed: Callable[[], int] | None = None,
    ) -> int:
        """
        Lock the counter row for ``name``, increment it and return the value.

        Args:
            name: Counter name.
            seed: Called only when the counter row does not exist yet;
                returns the highest value already in use (0 if none).

        Returns:
            The next value (always > 0).
        """
        counter = self._locked_counter(name)

        if counter is None:
            start = (seed() if seed is not None else 0) + 1
            # Savepoint so a lost creation race does not roll back the caller
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=name, current_value=start))
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": name, "value": start},
                )
                return start
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked_counter(name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def highest_existing(
        self,
        column: InstrumentedAttribute,
        prefix: str,
        scope: str | None = None,
    ) -> int:
        """
        Highest sequence number among existing identifiers in ``column``.

        Identifiers that do not parse for this prefix/scope are ignored.
        """
        stem = identifier_stem(prefix, scope)
        codes = self._session.execute(
            select(column).where(column.startswith(stem, autoescape=True))
        ).scalars()
        highest = 0
        for code in codes:
            try:
                highest = max(highest, parse_sequence_number(code, prefix, scope))
            except ValueError:
                continue
        return highest

    def next_id(
        self,
        prefix: str,
        scope: str | None = None,
        width: int = DEFAULT_WIDTH,
        column: InstrumentedAttribute | None = None,
    ) -> str:
        """
        Allocate the next formatted identifier for a prefix (and scope).

        When ``column`` is given, a counter created on first use is seeded
        from the identifiers already stored in that column.

        >>> service.next_id("DIS", column=Dispatch.dispatch_code)  # after DIS003
        'DIS004'
        """
        seed = None
        if column is not None:
            seed = lambda: self.highest_existing(column, prefix, scope)  # noqa: E731
        number = self.next_value(sequence_name(prefix, scope), seed=seed)
        identifier = format_identifier(prefix, number, scope=scope, width=width)
        logger.debug(
            "identifier_allocated",
            extra={"prefix": prefix, "scope": scope, "identifier": identifier},
        )
        return identifier

    def current_value(self, name: str) -> int | None:
        """Current value of a counter without incrementing (None if absent)."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def reset(self, name: str, value: int = 0) -> None:
        """
        Reset a counter to a specific value.

        WARNING: for tests and data migration scripts only.
        """
        counter = self._locked_counter(name)
        if counter is None:
            self._session.add(SequenceCounter(name=name, current_value=value))
        else:
            counter.current_value = value
        self._session.flush()


def next_sequence_id(
    session: Session,
    prefix: str,
    scope: str | None = None,
    width: int = DEFAULT_WIDTH,
    column: InstrumentedAttribute | None = None,
) -> str:
    """Module-level convenience for SequenceService(session).next_id(...)."""
    return SequenceService(session).next_id(
        prefix, scope=scope, width=width, column=column
    )
