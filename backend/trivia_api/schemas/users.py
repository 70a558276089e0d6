"""Pydantic v2 schemas for user registration, login and profile."""

from __future__ import annotations

import datetime
import uuid

from pydantic import Field

from trivia_api.schemas.base import CamelModel, Envelope

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserRegister(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., pattern=_EMAIL_PATTERN, max_length=255)
    password: str = Field(..., min_length=6)


class UserLogin(CamelModel):
    email: str = Field(..., pattern=_EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class UserUpdate(CamelModel):
    """All fields optional; only the ones sent are changed."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, pattern=_EMAIL_PATTERN, max_length=255)
    password: str | None = Field(default=None, min_length=6)


class UserOut(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    is_admin: bool
    created_at: datetime.datetime | None = None


class AuthenticatedUserOut(UserOut):
    token: str


class UserEnvelope(Envelope):
    user: UserOut


class AuthEnvelope(Envelope):
    user: AuthenticatedUserOut
