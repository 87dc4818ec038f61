"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import itertools
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Iterator, Optional, Protocol

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from pagehoppers.errors import AlreadyExistsError, InternalError, NotFoundError

logger = logging.getLogger(__name__)

# Ids and integer columns are 32-bit INTEGER in Postgres.
MAX_INT = 2**31 - 1


class Role(str, Enum):
    PARENT = "parent"
    CHILD = "child"


class ReadingStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DbClient(Protocol):
    """Interface for database access."""

    def create_parent(
        self, name: str, email: str, password_hash: str
    ) -> "UserRecord":
        ...

    def create_child(
        self, parent_id: int, name: str, age: int, pin_hash: str
    ) -> "UserRecord":
        ...

    def get_user(self, user_id: int, role: Role) -> Optional["UserRecord"]:
        ...

    def get_parent_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def list_children(self, parent_id: int) -> list["UserRecord"]:
        ...

    def get_child_of_parent(
        self, child_id: int, parent_id: int
    ) -> Optional["UserRecord"]:
        ...

    def record_login(self, user_id: int) -> None:
        ...

    def create_reading_log(
        self,
        child_id: int,
        *,
        title: str,
        status: ReadingStatus,
        date: date,
        author: Optional[str] = None,
        open_library_key: Optional[str] = None,
        cover_id: Optional[int] = None,
    ) -> "ReadingLogRecord":
        ...

    def list_reading_logs(self, child_id: int) -> list["ReadingLogRecord"]:
        ...


@dataclass
class UserRecord:
    id: int
    name: str
    role: Role
    email: Optional[str] = None
    password_hash: Optional[str] = None
    pin_hash: Optional[str] = None
    age: Optional[int] = None
    parent_id: Optional[int] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "email": self.email,
            "age": self.age,
            "parent_id": self.parent_id,
            "last_login_at": self.last_login_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ReadingLogRecord:
    id: int
    child_id: int
    title: str
    status: ReadingStatus
    date: date
    author: Optional[str] = None
    open_library_key: Optional[str] = None
    cover_id: Optional[int] = None
    created_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "child_id": self.child_id,
            "title": self.title,
            "author": self.author,
            "status": self.status.value,
            "date": self.date,
            "open_library_key": self.open_library_key,
            "cover_id": self.cover_id,
            "created_at": self.created_at,
        }


def _log_sort_key(log: ReadingLogRecord) -> tuple:
    return (log.date, log.created_at, log.id)


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[int, UserRecord] = {}
        self.logs: Dict[int, ReadingLogRecord] = {}
        self._user_ids = itertools.count(1)
        self._log_ids = itertools.count(1)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.logs.clear()
        self._user_ids = itertools.count(1)
        self._log_ids = itertools.count(1)

    def create_parent(self, name: str, email: str, password_hash: str) -> UserRecord:
        if self.get_parent_by_email(email):
            raise AlreadyExistsError("Email already registered")
        record = UserRecord(
            id=next(self._user_ids),
            name=name,
            role=Role.PARENT,
            email=email,
            password_hash=password_hash,
        )
        self.users[record.id] = record
        return record

    def create_child(
        self, parent_id: int, name: str, age: int, pin_hash: str
    ) -> UserRecord:
        if not self.get_user(parent_id, Role.PARENT):
            raise NotFoundError("Parent not found")
        record = UserRecord(
            id=next(self._user_ids),
            name=name,
            role=Role.CHILD,
            age=age,
            pin_hash=pin_hash,
            parent_id=parent_id,
        )
        self.users[record.id] = record
        return record

    def get_user(self, user_id: int, role: Role) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if user and user.role == role:
            return user
        return None

    def get_parent_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.role == Role.PARENT and user.email == email:
                return user
        return None

    def list_children(self, parent_id: int) -> list[UserRecord]:
        return [
            user
            for user in sorted(self.users.values(), key=lambda u: u.id)
            if user.role == Role.CHILD and user.parent_id == parent_id
        ]

    def get_child_of_parent(
        self, child_id: int, parent_id: int
    ) -> Optional[UserRecord]:
        child = self.get_user(child_id, Role.CHILD)
        if child and child.parent_id == parent_id:
            return child
        return None

    def record_login(self, user_id: int) -> None:
        user = self.users.get(user_id)
        if user:
            now = _utcnow()
            user.last_login_at = now
            user.updated_at = now

    def create_reading_log(
        self,
        child_id: int,
        *,
        title: str,
        status: ReadingStatus,
        date: date,
        author: Optional[str] = None,
        open_library_key: Optional[str] = None,
        cover_id: Optional[int] = None,
    ) -> ReadingLogRecord:
        if not self.get_user(child_id, Role.CHILD):
            raise NotFoundError("Child not found")
        record = ReadingLogRecord(
            id=next(self._log_ids),
            child_id=child_id,
            title=title,
            status=status,
            date=date,
            author=author,
            open_library_key=open_library_key,
            cover_id=cover_id,
        )
        self.logs[record.id] = record
        return record

    def list_reading_logs(self, child_id: int) -> list[ReadingLogRecord]:
        logs = [log for log in self.logs.values() if log.child_id == child_id]
        return sorted(logs, key=_log_sort_key, reverse=True)


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise each thread sees an empty database.
            engine_kwargs.update(
                connect_args={"check_same_thread": False}, poolclass=StaticPool
            )
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database operation failed")
            raise InternalError("Database operation failed") from exc
        finally:
            session.close()

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            name=row.name,
            role=Role(row.role),
            email=row.email,
            password_hash=row.password_hash,
            pin_hash=row.pin_hash,
            age=row.age,
            parent_id=row.parent_id,
            last_login_at=_as_utc(row.last_login_at),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    def _to_log_record(self, row: "ReadingLogRow") -> ReadingLogRecord:
        return ReadingLogRecord(
            id=row.id,
            child_id=row.child_id,
            title=row.title,
            status=ReadingStatus(row.status),
            date=row.date,
            author=row.author,
            open_library_key=row.open_library_key,
            cover_id=row.cover_id,
            created_at=_as_utc(row.created_at),
        )

    def _get_user_row(
        self, session: Session, user_id: int, role: Role
    ) -> Optional["UserRow"]:
        if not 0 < user_id <= MAX_INT:
            return None
        stmt = select(UserRow).where(UserRow.id == user_id, UserRow.role == role.value)
        return session.execute(stmt).scalar_one_or_none()

    def create_parent(self, name: str, email: str, password_hash: str) -> UserRecord:
        now = _utcnow()
        with self._session() as session:
            row = UserRow(
                name=name,
                role=Role.PARENT.value,
                email=email,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise AlreadyExistsError("Email already registered") from exc
            session.refresh(row)
            return self._to_user_record(row)

    def create_child(
        self, parent_id: int, name: str, age: int, pin_hash: str
    ) -> UserRecord:
        now = _utcnow()
        with self._session() as session:
            if not self._get_user_row(session, parent_id, Role.PARENT):
                raise NotFoundError("Parent not found")
            row = UserRow(
                name=name,
                role=Role.CHILD.value,
                age=age,
                pin_hash=pin_hash,
                parent_id=parent_id,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_user_record(row)

    def get_user(self, user_id: int, role: Role) -> Optional[UserRecord]:
        with self._session() as session:
            row = self._get_user_row(session, user_id, role)
            return self._to_user_record(row) if row else None

    def get_parent_by_email(self, email: str) -> Optional[UserRecord]:
        with self._session() as session:
            stmt = select(UserRow).where(
                UserRow.email == email, UserRow.role == Role.PARENT.value
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def list_children(self, parent_id: int) -> list[UserRecord]:
        with self._session() as session:
            stmt = (
                select(UserRow)
                .where(
                    UserRow.parent_id == parent_id,
                    UserRow.role == Role.CHILD.value,
                )
                .order_by(UserRow.id.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_user_record(row) for row in rows]

    def get_child_of_parent(
        self, child_id: int, parent_id: int
    ) -> Optional[UserRecord]:
        if not 0 < child_id <= MAX_INT:
            return None
        with self._session() as session:
            stmt = select(UserRow).where(
                UserRow.id == child_id,
                UserRow.parent_id == parent_id,
                UserRow.role == Role.CHILD.value,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def record_login(self, user_id: int) -> None:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return
            now = _utcnow()
            row.last_login_at = now
            row.updated_at = now
            session.commit()

    def create_reading_log(
        self,
        child_id: int,
        *,
        title: str,
        status: ReadingStatus,
        date: date,
        author: Optional[str] = None,
        open_library_key: Optional[str] = None,
        cover_id: Optional[int] = None,
    ) -> ReadingLogRecord:
        with self._session() as session:
            if not self._get_user_row(session, child_id, Role.CHILD):
                raise NotFoundError("Child not found")
            row = ReadingLogRow(
                child_id=child_id,
                title=title,
                author=author,
                status=status.value,
                date=date,
                open_library_key=open_library_key,
                cover_id=cover_id,
                created_at=_utcnow(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_log_record(row)

    def list_reading_logs(self, child_id: int) -> list[ReadingLogRecord]:
        with self._session() as session:
            stmt = (
                select(ReadingLogRow)
                .where(ReadingLogRow.child_id == child_id)
                .order_by(
                    ReadingLogRow.date.desc(),
                    ReadingLogRow.created_at.desc(),
                    ReadingLogRow.id.desc(),
                )
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_log_record(row) for row in rows]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    role = Column(String(16), nullable=False, index=True)
    email = Column(String, nullable=True, unique=True)
    password_hash = Column(String, nullable=True)
    pin_hash = Column(String, nullable=True)
    age = Column(Integer, nullable=True)
    parent_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ReadingLogRow(Base):
    __tablename__ = "reading_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    child_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=True)
    status = Column(String(16), nullable=False)
    date = Column(Date, nullable=False)
    open_library_key = Column(String, nullable=True)
    cover_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
