"""Structured JSON logging for the manufacturing kernel."""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from mfg_kernel.exceptions import MfgKernelError

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

# Fields stamped on every record emitted inside a LogContext.bind() block.
_CONTEXT_FIELDS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"mfg_log_{name}", default=None)
    for name in (
        "correlation_id",
        "actor_id",
        "order_id",
        "dispatch_id",
        "batch_id",
    )
}


class LogContext:
    """
    Workflow-scoped log fields (correlation, actor, order, dispatch, batch).

    Backed by context variables, so nested service calls on one thread or
    task see the enclosing fields and concurrent dispatches never mix.
    """

    FIELDS = tuple(_CONTEXT_FIELDS)

    @staticmethod
    def get_all() -> dict[str, str]:
        """Non-None context fields."""
        ctx: dict[str, str] = {}
        for name, var in _CONTEXT_FIELDS.items():
            value = var.get()
            if value is not None:
                ctx[name] = value
        return ctx

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_FIELDS.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """
        Set fields for the duration of the block, restoring them on exit.

        None values and names outside FIELDS are ignored.
        """
        tokens = [
            (_CONTEXT_FIELDS[name], _CONTEXT_FIELDS[name].set(value))
            for name, value in fields.items()
            if value is not None and name in _CONTEXT_FIELDS
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Handle UUID, datetime, Decimal and Enum in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(
                record.created, tz=UTC
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if isinstance(exc, MfgKernelError):
                payload["exc_code"] = exc.code
                payload["exc_category"] = exc.category
                payload["exc_retryable"] = exc.retryable
                # Context attributes set by the subclass constructor
                for k, v in vars(exc).items():
                    if not k.startswith("_"):
                        payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "mfg_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the mfg_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_installed: list[logging.Handler] = []
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the mfg_kernel logger hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    if handler is not None:
        h = handler
    else:
        h = logging.StreamHandler(stream or sys.stderr)

    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)
    _installed.append(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    while _installed:
        logger.removeHandler(_installed.pop())
    logger.setLevel(logging.WARNING)
