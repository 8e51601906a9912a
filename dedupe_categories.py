"""Merge duplicate categories.

Usage:
    python dedupe_categories.py [--dry-run] [--database-url URL]
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from config import get_log_level, get_settings
from database import create_db_engine, make_session_factory
from dedupe import dedupe_categories
from store import SQLAlchemyStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dedupe_categories",
        description=(
            "Merge categories sharing owner, name and color into the oldest one"
        ),
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List duplicate groups without changing anything",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override the configured database URL",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    engine = None
    try:
        logging.basicConfig(level=get_log_level())
        engine = create_db_engine(args.database_url or get_settings().database_url)
        store = SQLAlchemyStore(make_session_factory(engine))
        report = dedupe_categories(store, dry_run=args.dry_run)
    except Exception as exc:
        logger.exception("dedupe_fatal")
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if engine is not None:
            engine.dispose()

    for line in report.lines():
        print(line)
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
