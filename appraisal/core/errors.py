"""
Error taxonomy shared by services and routers.

HTTP errors are raised as FastAPI HTTPExceptions carrying
``{"code": ..., "message": ...}`` details.
"""

from __future__ import annotations

import enum

from fastapi import HTTPException, status


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes returned in ``detail.code``."""

    AUTH = "AUTH"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    INVALID_DATA = "INVALID_DATA"
    DUPLICATE = "DUPLICATE"
    DATABASE_FAILURE = "DATABASE_FAILURE"
    PROVIDER_FAILURE = "PROVIDER_FAILURE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class StoreUnavailableError(Exception):
    """The membership store could not complete a query."""


class ProviderError(Exception):
    """An identity provider call failed."""


def api_error(
    status_code: int,
    code: ErrorCode,
    message: str,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    """Build an HTTPException with the standard detail payload."""
    return HTTPException(
        status_code=status_code,
        detail={"code": code.value, "message": message},
        headers=headers,
    )


def not_authenticated(message: str = "User not authenticated.") -> HTTPException:
    return api_error(
        status.HTTP_401_UNAUTHORIZED,
        ErrorCode.AUTH,
        message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden(message: str = "Unauthorized to perform this action.") -> HTTPException:
    return api_error(status.HTTP_403_FORBIDDEN, ErrorCode.FORBIDDEN, message)


def not_found(message: str = "The requested resource could not be found.") -> HTTPException:
    return api_error(status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, message)


def invalid_data(message: str = "Invalid data provided.") -> HTTPException:
    return api_error(status.HTTP_400_BAD_REQUEST, ErrorCode.INVALID_DATA, message)
