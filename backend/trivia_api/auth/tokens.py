"""
JWT issuance and validation for user sessions.

HS256 with a shared secret from settings. Tokens carry the user id as `sub`
and expire after JWT_EXPIRES_DAYS.
"""

from __future__ import annotations

import datetime
import uuid

from jose import JWTError, jwt

from trivia_api.core.config import settings
from trivia_api.core.errors import AuthError
from trivia_api.core.timestamps import utcnow


def create_access_token(user_id: uuid.UUID) -> str:
    now = utcnow()
    claims = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + datetime.timedelta(days=settings.JWT_EXPIRES_DAYS)).timestamp()),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> uuid.UUID:
    """
    Validate a token and return the user id it was issued for.

    Raises:
        AuthError: bad signature, expired, or missing/invalid subject.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise AuthError("Not authorized, invalid token") from exc

    subject = payload.get("sub")
    try:
        return uuid.UUID(str(subject))
    except ValueError as exc:
        raise AuthError("Not authorized, invalid token") from exc
