"""
Seed a parent account for local development.

Does nothing if a parent with the given email already exists.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pagehoppers.accounts import register_parent
from pagehoppers.config import get_settings
from pagehoppers.db import SqlDbClient

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a test parent account")
    parser.add_argument("--email", type=str, default="parent@example.com")
    parser.add_argument("--password", type=str, default="testpassword")
    parser.add_argument("--name", type=str, default="Test Parent")
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

    settings = get_settings()
    database_url = args.database_url or settings.database_url
    if not database_url:
        logger.error("DATABASE_URL environment variable not set")
        return 1

    db = SqlDbClient(database_url)
    if db.get_parent_by_email(args.email):
        logger.info("Parent %s already exists", args.email)
        return 0

    register_parent(
        db,
        name=args.name,
        email=args.email,
        password=args.password,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    logger.info("Test parent created: %s", args.email)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
