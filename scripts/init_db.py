#!/usr/bin/env python3
"""
Create (or recreate) the kernel schema.

Usage:
  python3 scripts/init_db.py [--db-url URL] [--drop]

The database URL defaults to $DATABASE_URL, then to a local SQLite file.
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("DATABASE_URL", "sqlite:///mfg_kernel.db")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the manufacturing kernel schema")
    p.add_argument(
        "--db-url",
        default=DEFAULT_DB_URL,
        help=f"Database URL (default: {DEFAULT_DB_URL!r}, or DATABASE_URL)",
    )
    p.add_argument(
        "--drop",
        action="store_true",
        help="Drop all kernel tables before creating them",
    )
    p.add_argument("--echo", action="store_true", help="Log SQL statements")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from sqlalchemy.exc import SQLAlchemyError

    from mfg_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        reset_engine,
    )

    print()
    print("  [1/2] Connecting...")
    try:
        init_engine_from_url(args.db_url, echo=args.echo)
    except SQLAlchemyError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print("  [2/2] Creating tables...")
    try:
        if args.drop:
            drop_tables()
        create_tables()
    except SQLAlchemyError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        reset_engine()

    print()
    print("  Done. Next: python3 scripts/seed_data.py")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
