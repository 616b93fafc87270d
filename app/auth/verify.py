"""
verify.py
---------
Purpose:
    Manage-booking session tokens (HS256).

Notes:
    - Issued after a visitor proves control of an email with a verification code.
    - The token binds the lowercased email; manage routes compare it to the booking.
    - Provides `manage_session_dependency` for reschedule/cancel routes.
"""

from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings

SESSION_AUDIENCE = "manage-booking"
SESSION_ALGORITHM = "HS256"

_security = HTTPBearer()


class SessionConfigError(RuntimeError):
    """MANAGE_SESSION_SECRET is not set."""


def _secret() -> str:
    if not settings.MANAGE_SESSION_SECRET:
        raise SessionConfigError("MANAGE_SESSION_SECRET is not configured")
    return settings.MANAGE_SESSION_SECRET


def issue_session_token(email: str, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(UTC)
    claims = {
        "sub": email.strip().lower(),
        "aud": SESSION_AUDIENCE,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.MANAGE_SESSION_TTL_MINUTES),
    }
    return jwt.encode(claims, _secret(), algorithm=SESSION_ALGORITHM)


def verify_session_token(token: str) -> str:
    """Return the email bound to a valid session token."""
    try:
        secret = _secret()
    except SessionConfigError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Booking management is unavailable"
        ) from e

    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[SESSION_ALGORITHM],
            audience=SESSION_AUDIENCE,
            options={"verify_exp": True, "require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    return decoded["sub"]


def manage_session_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> str:
    return verify_session_token(credentials.credentials)
