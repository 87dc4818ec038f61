"""
Create the Page Hoppers tables in the configured database.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import inspect

from pagehoppers.config import get_settings
from pagehoppers.db import SqlDbClient

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the Page Hoppers schema")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL environment variable not set")
        return 1

    logger.info("Migrating database...")
    # SqlDbClient creates any missing tables on construction.
    client = SqlDbClient(database_url)
    tables = sorted(inspect(client.engine).get_table_names())
    logger.info("Database migration completed; tables: %s", ", ".join(tables))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
