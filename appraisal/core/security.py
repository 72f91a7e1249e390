"""
Security utilities.

Identity provider access-token validation, invitation tokens and expiry.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from appraisal.core.config import settings


# ---------------------------------------------------------------------------
# Provider access tokens
# ---------------------------------------------------------------------------

def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and validate an access token issued by the identity provider.

    Raises:
        JWTError: If the token is invalid, expired, tampered or has no subject.
    """
    options = {"verify_aud": settings.IDENTITY_AUDIENCE is not None}
    payload = jwt.decode(
        token,
        settings.IDENTITY_JWT_KEY,
        algorithms=[settings.IDENTITY_JWT_ALGORITHM],
        audience=settings.IDENTITY_AUDIENCE,
        options=options,
    )
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload


# ---------------------------------------------------------------------------
# Invitation tokens
# ---------------------------------------------------------------------------

def generate_invite_token() -> str:
    """Generate a secure random invitation token."""
    return secrets.token_urlsafe(32)


def token_digest(token: str) -> str:
    """SHA-256 hex digest of an invitation token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------

def utcnow() -> datetime:
    return datetime.now(UTC)


def generate_expiry(days: int) -> datetime:
    """Timestamp ``days`` days from now."""
    return utcnow() + timedelta(days=days)


def is_expired(expires: datetime, now: datetime | None = None) -> bool:
    """
    Whether ``expires`` lies in the past.

    Naive timestamps (SQLite drops tzinfo) are read as UTC.
    """
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=UTC)
    return (now or utcnow()) > expires
