"""
Reading-log ingestion and listing.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Optional

from pagehoppers.db import DbClient, ReadingLogRecord, ReadingStatus, Role
from pagehoppers.errors import InvalidArgumentError, NotFoundError
from pagehoppers.security import Principal

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def parse_status(value: Optional[str]) -> ReadingStatus:
    try:
        return ReadingStatus((value or "").strip())
    except ValueError as exc:
        raise InvalidArgumentError("Status must be 'started' or 'completed'") from exc


def parse_log_date(value: Optional[str]) -> date:
    value = (value or "").strip()
    # strptime alone accepts unpadded months and days.
    if not _DATE_RE.fullmatch(value):
        raise InvalidArgumentError("Invalid date format. Use YYYY-MM-DD")
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise InvalidArgumentError("Invalid date format. Use YYYY-MM-DD") from exc


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def create_reading_log(
    db: DbClient,
    child: Principal,
    *,
    title: Optional[str],
    status: Optional[str],
    date: Optional[str],
    author: Optional[str] = None,
    open_library_key: Optional[str] = None,
    cover_id: Optional[int] = None,
) -> ReadingLogRecord:
    if any(_optional_text(value) is None for value in (title, status, date)):
        raise InvalidArgumentError("Title, status, and date are required")
    parsed_status = parse_status(status)
    parsed_date = parse_log_date(date)

    # The client verifies the child exists and raises NotFoundError otherwise.
    record = db.create_reading_log(
        child.user_id,
        title=title.strip(),
        status=parsed_status,
        date=parsed_date,
        author=_optional_text(author),
        open_library_key=_optional_text(open_library_key),
        cover_id=cover_id,
    )
    logger.info(
        "Child id=%s logged %s book id=%s", child.user_id, parsed_status.value, record.id
    )
    return record


def list_own_logs(db: DbClient, child: Principal) -> list[ReadingLogRecord]:
    if not db.get_user(child.user_id, Role.CHILD):
        raise NotFoundError("Child not found")
    return db.list_reading_logs(child.user_id)


def list_child_logs_for_parent(
    db: DbClient, parent: Principal, child_id: int
) -> list[ReadingLogRecord]:
    if not db.get_child_of_parent(child_id, parent.user_id):
        raise NotFoundError("Child not found or unauthorized")
    return db.list_reading_logs(child_id)
