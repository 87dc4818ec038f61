"""
Dependency wiring for the FastAPI app.

Clients are built once by ``create_app`` and kept on ``app.state``; the
functions here hand them to route handlers.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pagehoppers.config import Settings
from pagehoppers.db import DbClient, InMemoryDbClient, SqlDbClient
from pagehoppers.errors import PermissionDeniedError, UnauthenticatedError
from pagehoppers.security import Principal, TokenIssuer

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


def build_db_client(settings: Settings) -> DbClient:
    """
    Pick the database client for this process.
    """
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory database client")
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.tokens


def get_today() -> date:
    """Current calendar day; overridden in tests."""
    return date.today()


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("Authorization header required")
    return tokens.decode(credentials.credentials)


def require_parent(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_parent:
        raise PermissionDeniedError("Parent token required")
    return principal


def require_child(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_child:
        raise PermissionDeniedError("Child token required")
    return principal
