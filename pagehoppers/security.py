"""
Password/PIN hashing and bearer-token handling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from pagehoppers.config import DEFAULT_JWT_SECRET, Settings
from pagehoppers.db import Role, UserRecord
from pagehoppers.errors import InternalError, UnauthenticatedError

logger = logging.getLogger(__name__)


def hash_secret(secret: str, *, rounds: int = 12) -> str:
    """Hash a password or PIN with bcrypt."""
    try:
        hashed = bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    except ValueError as exc:
        # bcrypt refuses secrets longer than 72 bytes.
        raise InternalError("Could not hash secret") from exc
    return hashed.decode("utf-8")


def verify_secret(secret: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, decoded from a bearer token."""

    user_id: int
    role: Role
    parent_id: Optional[int] = None

    @property
    def is_parent(self) -> bool:
        return self.role == Role.PARENT

    @property
    def is_child(self) -> bool:
        return self.role == Role.CHILD


class TokenIssuer:
    """Signs and verifies the JWTs handed out at login."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        parent_ttl: timedelta = timedelta(hours=24),
        child_ttl: timedelta = timedelta(hours=12),
    ):
        if not secret:
            raise ValueError("A JWT secret is required")
        self._secret = secret
        self._algorithm = algorithm
        self._parent_ttl = parent_ttl
        self._child_ttl = child_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        if settings.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET is not set; using the development placeholder")
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            parent_ttl=timedelta(hours=settings.parent_token_ttl_hours),
            child_ttl=timedelta(hours=settings.child_token_ttl_hours),
        )

    def issue(self, user: UserRecord, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        claims: dict = {"user_id": user.id, "role": user.role.value, "iat": issued_at}
        if user.role == Role.CHILD:
            claims["parent_id"] = user.parent_id
            claims["exp"] = issued_at + self._child_ttl
        else:
            claims["exp"] = issued_at + self._parent_ttl
        try:
            return jwt.encode(claims, self._secret, algorithm=self._algorithm)
        except jwt.PyJWTError as exc:
            raise InternalError("Could not generate token") from exc

    def decode(self, token: str) -> Principal:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "user_id", "role"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise UnauthenticatedError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise UnauthenticatedError("Invalid token") from exc

        try:
            role = Role(claims["role"])
            user_id = int(claims["user_id"])
            parent_id = claims.get("parent_id")
            parent_id = int(parent_id) if parent_id is not None else None
        except (TypeError, ValueError) as exc:
            raise UnauthenticatedError("Invalid token claims") from exc
        if role == Role.CHILD and parent_id is None:
            raise UnauthenticatedError("Invalid token claims")
        return Principal(user_id=user_id, role=role, parent_id=parent_id)
