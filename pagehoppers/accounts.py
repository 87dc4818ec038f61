"""
Parent and child account operations: registration, login, child management.
"""

from __future__ import annotations

import logging

from pagehoppers.db import DbClient, Role, UserRecord
from pagehoppers.errors import (
    AlreadyExistsError,
    InvalidArgumentError,
    UnauthenticatedError,
)
from pagehoppers.security import Principal, TokenIssuer, hash_secret, verify_secret

logger = logging.getLogger(__name__)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def register_parent(
    db: DbClient,
    *,
    name: str,
    email: str,
    password: str,
    bcrypt_rounds: int = 12,
) -> UserRecord:
    if _blank(name) or _blank(email) or _blank(password):
        raise InvalidArgumentError("Name, email, and password are required")
    email = email.strip()
    if db.get_parent_by_email(email):
        # The unique index on email still guards against concurrent registrations.
        raise AlreadyExistsError("Email already registered")
    parent = db.create_parent(
        name.strip(), email, hash_secret(password, rounds=bcrypt_rounds)
    )
    logger.info("Registered parent id=%s", parent.id)
    return parent


def login_parent(
    db: DbClient, tokens: TokenIssuer, *, email: str, password: str
) -> str:
    parent = db.get_parent_by_email((email or "").strip())
    if not parent or not verify_secret(password or "", parent.password_hash):
        logger.warning("Parent login failed")
        raise UnauthenticatedError("Invalid credentials")
    db.record_login(parent.id)
    logger.info("Parent id=%s logged in", parent.id)
    return tokens.issue(parent)


def login_child(db: DbClient, tokens: TokenIssuer, *, child_id: int, pin: str) -> str:
    child = db.get_user(child_id, Role.CHILD)
    if not child:
        logger.warning("Child login failed: unknown id=%s", child_id)
        raise UnauthenticatedError("Invalid credentials")
    if not verify_secret(pin or "", child.pin_hash):
        logger.warning("Child login failed: wrong PIN for id=%s", child_id)
        raise UnauthenticatedError("Invalid PIN")
    db.record_login(child.id)
    logger.info("Child id=%s logged in", child.id)
    return tokens.issue(child)


def create_child(
    db: DbClient,
    parent: Principal,
    *,
    name: str,
    age: int,
    pin: str,
    bcrypt_rounds: int = 12,
) -> UserRecord:
    if _blank(name) or _blank(pin) or age is None or age <= 0:
        raise InvalidArgumentError("Name, Age, and PIN are required")
    child = db.create_child(
        parent.user_id, name.strip(), age, hash_secret(pin, rounds=bcrypt_rounds)
    )
    logger.info("Parent id=%s created child id=%s", parent.user_id, child.id)
    return child


def list_children(db: DbClient, parent: Principal) -> list[UserRecord]:
    return db.list_children(parent.user_id)
