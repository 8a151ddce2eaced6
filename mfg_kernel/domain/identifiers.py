"""
Identifiers -- human-readable sequential identifier formatting.

Responsibility:
    Formats and parses the prefixed, zero-padded identifiers used by
    orders (``ORD001`` or date-scoped ``ORD-20240521-003``), dispatches
    (``DIS004``), raw materials (``RM-012``), finished products
    (``TR007`` / ``TB002``) and production batches (``BATCH-001``).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The
    SequenceService owns allocation; this module only knows the shape.

Failure modes:
    - ValueError from parse_sequence_number() when the identifier does not
      carry the expected prefix/scope or its suffix is not numeric.
"""

from datetime import datetime

DEFAULT_WIDTH = 3


def date_scope(moment: datetime) -> str:
    """Date scope token used by date-scoped numbering (YYYYMMDD)."""
    return moment.strftime("%Y%m%d")


def identifier_stem(prefix: str, scope: str | None = None) -> str:
    """
    The part of an identifier that precedes the numeric suffix.

    Unscoped: the prefix itself (``DIS``, ``RM-``).
    Scoped: ``{prefix}-{scope}-`` (``ORD-20240521-``).
    """
    if scope:
        return f"{prefix.rstrip('-')}-{scope}-"
    return prefix


def format_identifier(
    prefix: str,
    number: int,
    scope: str | None = None,
    width: int = DEFAULT_WIDTH,
) -> str:
    """
    Format a sequence number as an identifier.

    Numbers wider than ``width`` are not truncated (``DIS1000``).
    """
    if number < 1:
        raise ValueError(f"Sequence numbers start at 1, got {number}")
    return f"{identifier_stem(prefix, scope)}{number:0{width}d}"


def parse_sequence_number(
    identifier: str,
    prefix: str,
    scope: str | None = None,
) -> int:
    """Extract the trailing sequence number from an identifier."""
    stem = identifier_stem(prefix, scope)
    if not identifier.startswith(stem):
        raise ValueError(
            f"Identifier {identifier!r} does not start with {stem!r}"
        )
    suffix = identifier[len(stem):]
    if not suffix.isdigit():
        raise ValueError(
            f"Identifier {identifier!r} has non-numeric suffix {suffix!r}"
        )
    return int(suffix)


def sequence_name(prefix: str, scope: str | None = None) -> str:
    """Counter row name for a numbering space (one row per prefix/scope)."""
    if scope:
        return f"{prefix}:{scope}"
    return prefix
