"""
HTTP routes for the Page Hoppers API.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Path, Query

from pagehoppers import accounts, reading_logs, summary
from pagehoppers.config import Settings
from pagehoppers.db import MAX_INT, DbClient
from pagehoppers.dependencies import (
    get_app_settings,
    get_db_client,
    get_principal,
    get_today,
    get_token_issuer,
    require_child,
    require_parent,
)
from pagehoppers.schemas import (
    ChildLoginRequest,
    ChildResponse,
    CreateChildRequest,
    CreateReadingLogRequest,
    HealthResponse,
    LoginResponse,
    MessageResponse,
    ParentLoginRequest,
    ParentRegisterRequest,
    ReadingLogResponse,
    ReadingSummaryResponse,
    UserResponse,
)
from pagehoppers.security import Principal, TokenIssuer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# Public auth routes


@router.post(
    "/auth/parent/register", response_model=MessageResponse, status_code=201
)
def parent_register(
    payload: ParentRegisterRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    accounts.register_parent(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    return MessageResponse(message="Parent registered successfully")


@router.post("/auth/parent/login", response_model=LoginResponse)
def parent_login(
    payload: ParentLoginRequest,
    db: DbClient = Depends(get_db_client),
    tokens: TokenIssuer = Depends(get_token_issuer),
):
    token = accounts.login_parent(
        db, tokens, email=payload.email, password=payload.password
    )
    return LoginResponse(token=token)


@router.post("/auth/child/login", response_model=LoginResponse)
def child_login(
    payload: ChildLoginRequest,
    db: DbClient = Depends(get_db_client),
    tokens: TokenIssuer = Depends(get_token_issuer),
):
    token = accounts.login_child(
        db, tokens, child_id=payload.child_id, pin=payload.pin
    )
    return LoginResponse(token=token)


# Parent routes


@router.get("/children", response_model=list[UserResponse])
def list_children(
    parent: Principal = Depends(require_parent),
    db: DbClient = Depends(get_db_client),
):
    return [UserResponse.from_record(child) for child in accounts.list_children(db, parent)]


@router.post("/children", response_model=ChildResponse)
def create_child(
    payload: CreateChildRequest,
    parent: Principal = Depends(require_parent),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    child = accounts.create_child(
        db,
        parent,
        name=payload.name,
        age=payload.age,
        pin=payload.pin,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    return ChildResponse(id=child.id, name=child.name)


@router.get("/children/reading-logs", response_model=list[ReadingLogResponse])
def list_child_reading_logs(
    child_id: int = Query(
        ..., gt=0, le=MAX_INT, description="Id of one of the parent's children"
    ),
    parent: Principal = Depends(require_parent),
    db: DbClient = Depends(get_db_client),
):
    logs = reading_logs.list_child_logs_for_parent(db, parent, child_id)
    return [ReadingLogResponse.from_record(log) for log in logs]


@router.get("/children/{child_id}/summary", response_model=ReadingSummaryResponse)
def get_child_summary(
    child_id: int = Path(..., gt=0, le=MAX_INT),
    principal: Principal = Depends(get_principal),
    db: DbClient = Depends(get_db_client),
    today: date = Depends(get_today),
):
    child = summary.authorize_summary_access(db, principal, child_id)
    result = summary.get_reading_summary(db, child.id, today)
    return ReadingSummaryResponse.from_summary(result)


# Child routes


@router.post("/reading-logs", response_model=ReadingLogResponse)
def create_reading_log(
    payload: CreateReadingLogRequest,
    child: Principal = Depends(require_child),
    db: DbClient = Depends(get_db_client),
):
    record = reading_logs.create_reading_log(
        db,
        child,
        title=payload.title,
        status=payload.status,
        date=payload.date,
        author=payload.author,
        open_library_key=payload.open_library_key,
        cover_id=payload.cover_id,
    )
    return ReadingLogResponse.from_record(record)


@router.get("/reading-logs", response_model=list[ReadingLogResponse])
def list_reading_logs(
    child: Principal = Depends(require_child),
    db: DbClient = Depends(get_db_client),
):
    return [
        ReadingLogResponse.from_record(log)
        for log in reading_logs.list_own_logs(db, child)
    ]


@router.get("/reading-logs/summary", response_model=ReadingSummaryResponse)
def get_own_summary(
    child: Principal = Depends(require_child),
    db: DbClient = Depends(get_db_client),
    today: date = Depends(get_today),
):
    result = summary.get_reading_summary(db, child.user_id, today)
    return ReadingSummaryResponse.from_summary(result)
