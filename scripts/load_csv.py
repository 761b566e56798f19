#!/usr/bin/env python
"""
One-off CSV load

Runs a single ingestion of a sales file against the configured database,
outside the API process.

Usage:
    python scripts/load_csv.py --file data/generated/sales.csv
    python scripts/load_csv.py --file sales.csv --db-url sqlite+aiosqlite:///sales.db --create-tables
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from src.config.logging import configure_logging
from src.database.connection import close_database, init_database
from src.ingestion import LoadResult, create_csv_loader

logger = structlog.get_logger(__name__)


async def run(file_path: str, db_url: Optional[str], create_tables: bool) -> LoadResult:
    await init_database(url=db_url, create_tables=create_tables)
    try:
        return await create_csv_loader().load_file(file_path)
    finally:
        await close_database()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Load a sales CSV into the database")
    parser.add_argument("--file", required=True, help="CSV file to load")
    parser.add_argument("--db-url", default=None, help="Async SQLAlchemy URL (defaults to settings)")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        result = asyncio.run(run(args.file, args.db_url, args.create_tables))
    except Exception as e:
        logger.error("Load aborted", path=args.file, error=str(e))
        return 1

    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
