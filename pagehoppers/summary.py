"""
Reading summary: current book, last completed book and completion counts.

The summary is derived on every request from a child's full set of reading
logs; nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from pagehoppers.db import DbClient, ReadingLogRecord, ReadingStatus, Role, UserRecord
from pagehoppers.errors import NotFoundError
from pagehoppers.security import Principal


@dataclass
class ReadingSummary:
    child_id: Optional[int] = None
    name: Optional[str] = None
    current_book: Optional[ReadingLogRecord] = None
    last_completed_book: Optional[ReadingLogRecord] = None
    total_uncompleted: int = 0
    completed_this_month: int = 0
    completed_this_year: int = 0
    total_completed: int = 0


def summarize_reading_logs(
    logs: Iterable[ReadingLogRecord], today: date
) -> ReadingSummary:
    """
    Aggregate one child's logs into a ReadingSummary.

    Input order does not matter: logs are sorted by date (newest first) before
    picking the current and last completed book. Logs sharing a date keep
    their input order.
    """
    summary = ReadingSummary()
    for log in sorted(logs, key=lambda log: log.date, reverse=True):
        if log.status == ReadingStatus.STARTED:
            summary.total_uncompleted += 1
            if summary.current_book is None:
                summary.current_book = log
        elif log.status == ReadingStatus.COMPLETED:
            summary.total_completed += 1
            if summary.last_completed_book is None:
                summary.last_completed_book = log
            if log.date.year == today.year:
                summary.completed_this_year += 1
                if log.date.month == today.month:
                    summary.completed_this_month += 1
    return summary


def get_reading_summary(db: DbClient, child_id: int, today: date) -> ReadingSummary:
    child = db.get_user(child_id, Role.CHILD)
    if not child:
        raise NotFoundError("Child not found")
    summary = summarize_reading_logs(db.list_reading_logs(child.id), today)
    summary.child_id = child.id
    summary.name = child.name
    return summary


def authorize_summary_access(
    db: DbClient, principal: Principal, child_id: int
) -> UserRecord:
    """
    Resolve the child whose summary ``principal`` asked for.

    Children may only read their own summary, parents only their own
    children's. Anything else looks like an unknown child.
    """
    if principal.is_child:
        child = db.get_user(child_id, Role.CHILD) if principal.user_id == child_id else None
    else:
        child = db.get_child_of_parent(child_id, principal.user_id)
    if not child:
        raise NotFoundError("Child not found")
    return child
