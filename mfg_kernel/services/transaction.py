"""
Transaction helpers shared by the orchestrating services.

``unit_of_work`` wraps one atomic step: it bounds lock waits with the
configured timeout, commits or rolls back when the service owns the
transaction (``auto_commit``), and translates lock/statement timeouts into
the retryable TransactionTimeoutError.  When the caller owns the
transaction the step still runs inside a savepoint, so a failure leaves
nothing half-applied.

``insert_with_fresh_identifier`` inserts a row whose identifier comes from
the SequenceService, re-allocating on a unique-constraint loss.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from mfg_kernel.db.base import Base
from mfg_kernel.db.engine import apply_transaction_timeout, is_lock_timeout
from mfg_kernel.exceptions import DuplicateIdentifierError, TransactionTimeoutError
from mfg_kernel.logging_config import get_logger

logger = get_logger("services.transaction")

ModelType = TypeVar("ModelType", bound=Base)


@contextmanager
def unit_of_work(
    session: Session,
    operation: str,
    timeout_seconds: float,
    auto_commit: bool,
) -> Iterator[Session]:
    """
    Run the enclosed block atomically.

    Raises:
        TransactionTimeoutError: lock wait or statement timeout.
        Any exception raised inside the block, after rollback.
    """
    try:
        if auto_commit:
            apply_transaction_timeout(session, timeout_seconds)
            yield session
            session.commit()
        else:
            with session.begin_nested():
                yield session
    except OperationalError as exc:
        if auto_commit:
            session.rollback()
        if is_lock_timeout(exc):
            logger.warning(
                "transaction_timeout",
                extra={"operation": operation, "timeout_seconds": timeout_seconds},
            )
            raise TransactionTimeoutError(operation, timeout_seconds) from exc
        raise
    except Exception:
        if auto_commit:
            session.rollback()
        raise


def insert_with_fresh_identifier(
    session: Session,
    entity_type: str,
    allocate: Callable[[], str],
    build: Callable[[str], ModelType],
    attempts: int,
) -> ModelType:
    """
    Allocate an identifier, build the row and insert it.

    Each attempt runs in a savepoint.  An IntegrityError (the identifier
    was taken outside the counter) rolls the savepoint back and the next
    attempt allocates again.

    Raises:
        DuplicateIdentifierError: every attempt lost.
    """
    identifier = ""
    for attempt in range(1, attempts + 1):
        identifier = allocate()
        savepoint = session.begin_nested()
        try:
            row = build(identifier)
            session.add(row)
            session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "identifier_conflict_retry",
                extra={
                    "entity_type": entity_type,
                    "identifier": identifier,
                    "attempt": attempt,
                },
            )
    raise DuplicateIdentifierError(entity_type, identifier)
