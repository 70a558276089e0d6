"""
Pydantic v2 schemas for API key management.

The raw key only ever appears in ApiKeyCreatedOut, returned once by
POST /api/keys. Every other response shows the stored prefix.
"""

from __future__ import annotations

import datetime
import uuid

from pydantic import Field

from trivia_api.schemas.base import CamelModel, Envelope


class ApiKeyCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)


class ApiKeyUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    is_active: bool | None = None


class RateLimitUpdate(CamelModel):
    limit: int = Field(..., ge=1, description="Requests allowed per window.")
    window: int = Field(..., ge=1, description="Window length in seconds.")


class RateLimitOut(CamelModel):
    id: int
    limit: int
    window: int = Field(validation_alias="window_seconds")
    requests: int
    reset_at: datetime.datetime


class ApiKeyOut(CamelModel):
    id: uuid.UUID
    name: str
    prefix: str
    is_active: bool
    last_used_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    rate_limits: list[RateLimitOut] = Field(default_factory=list)


class ApiKeyCreatedOut(ApiKeyOut):
    key: str = Field(..., description="The raw API key. Shown only once.")


class ApiKeyEnvelope(Envelope):
    api_key: ApiKeyOut


class ApiKeyCreatedEnvelope(Envelope):
    api_key: ApiKeyCreatedOut


class ApiKeyListEnvelope(Envelope):
    count: int
    api_keys: list[ApiKeyOut]


class RateLimitEnvelope(Envelope):
    rate_limit: RateLimitOut
