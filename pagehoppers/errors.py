"""
Error taxonomy shared by the services and the HTTP layer.
"""

from __future__ import annotations


class PageHoppersError(Exception):
    """Base class for all Page Hoppers errors."""

    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class InvalidArgumentError(PageHoppersError):
    """Malformed or missing request fields."""

    status_code = 400


class UnauthenticatedError(PageHoppersError):
    """Bad credentials or token."""

    status_code = 401


class PermissionDeniedError(PageHoppersError):
    """The caller is authenticated but not allowed to use this route."""

    status_code = 403


class NotFoundError(PageHoppersError):
    """Unknown user or parent/child relationship."""

    status_code = 404


class AlreadyExistsError(PageHoppersError):
    """The record already exists."""

    status_code = 409


class InternalError(PageHoppersError):
    """Storage or hashing failure."""

    status_code = 500
