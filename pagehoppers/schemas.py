"""
Pydantic schemas for the Page Hoppers API.
"""

from __future__ import annotations

from datetime import date as Date, datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from pagehoppers.db import MAX_INT, ReadingLogRecord, UserRecord
from pagehoppers.summary import ReadingSummary


class ParentRegisterRequest(BaseModel):
    name: str = Field(..., max_length=255)
    email: str = Field(..., max_length=255)
    password: str


class ParentLoginRequest(BaseModel):
    email: str
    password: str


class ChildLoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    child_id: int = Field(..., alias="childId")
    pin: str


class LoginResponse(BaseModel):
    token: str


class MessageResponse(BaseModel):
    message: str


class CreateChildRequest(BaseModel):
    name: str = Field(..., max_length=255)
    age: int = Field(..., le=MAX_INT)
    pin: str


class ChildResponse(BaseModel):
    id: int
    name: str


class UserResponse(BaseModel):
    id: int
    name: str
    role: str
    email: Optional[str] = None
    age: Optional[int] = None
    parent_id: Optional[int] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserResponse":
        return cls(**record.as_dict())


class CreateReadingLogRequest(BaseModel):
    # Required fields are checked by the service so the error messages match.
    title: Optional[str] = Field(default=None, max_length=512)
    status: Optional[str] = None
    date: Optional[str] = None
    author: Optional[str] = Field(default=None, max_length=512)
    open_library_key: Optional[str] = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("openLibraryKey", "open_library_key"),
    )
    cover_id: Optional[int] = Field(
        default=None,
        gt=0,
        le=MAX_INT,
        validation_alias=AliasChoices("coverId", "cover_id"),
    )


class ReadingLogResponse(BaseModel):
    id: int
    child_id: int
    title: str
    author: Optional[str] = None
    status: str
    date: Date
    open_library_key: Optional[str] = None
    cover_id: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: ReadingLogRecord) -> "ReadingLogResponse":
        return cls(**record.as_dict())


class ReadingSummaryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    child_id: int
    name: str
    current_book: Optional[ReadingLogResponse] = Field(
        default=None, alias="currentBook"
    )
    last_completed_book: Optional[ReadingLogResponse] = Field(
        default=None, alias="lastCompletedBook"
    )
    total_uncompleted: int = Field(default=0, alias="totalUncompletedBooks")
    completed_this_month: int = Field(default=0, alias="totalBooksReadThisMonth")
    completed_this_year: int = Field(default=0, alias="totalBooksReadThisYear")
    total_completed: int = Field(default=0, alias="totalCompletedBooks")

    @classmethod
    def from_summary(cls, summary: ReadingSummary) -> "ReadingSummaryResponse":
        def _book(record: Optional[ReadingLogRecord]) -> Optional[ReadingLogResponse]:
            return ReadingLogResponse.from_record(record) if record else None

        return cls(
            child_id=summary.child_id,
            name=summary.name,
            current_book=_book(summary.current_book),
            last_completed_book=_book(summary.last_completed_book),
            total_uncompleted=summary.total_uncompleted,
            completed_this_month=summary.completed_this_month,
            completed_this_year=summary.completed_this_year,
            total_completed=summary.total_completed,
        )


class HealthResponse(BaseModel):
    status: str
