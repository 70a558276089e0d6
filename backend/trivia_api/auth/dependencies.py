"""
FastAPI dependencies for authentication.

Two credential types:
  • Users (key management, profile) send `Authorization: Bearer <JWT>`.
  • API consumers (trivia endpoints) send `X-API-Key: <key>`.

API key flow:
  1. Extract the X-API-Key header
  2. Hash and look up the key
  3. Verify is_active (inactive keys get 403, not 401)
  4. Verify the owning user still exists
  5. Stamp last_used_at
  6. Return ApiKeyContext (api_key + owner)

Raw keys are NEVER logged; only the stored prefix is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from trivia_api.auth.tokens import decode_access_token
from trivia_api.core.errors import AuthError, ForbiddenError
from trivia_api.core.timestamps import utcnow
from trivia_api.models.api_key import APIKey
from trivia_api.models.user import User
from trivia_api.stores.credentials import SqlCredentialStore, get_credential_store

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

Store = Annotated[SqlCredentialStore, Depends(get_credential_store)]


@dataclass(frozen=True, slots=True)
class ApiKeyContext:
    """Authenticated API-key request context.

    Attributes:
        api_key: The key used for this request. The rate limiter reads
                 its id and policies.
        user:    The key's owner.
    """

    api_key: APIKey
    user: User


async def get_current_user(
    store: Store,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User:
    """Resolve a Bearer JWT to its User. Raises AuthError (401) otherwise."""
    if credentials is None:
        raise AuthError("Not authorized, no token provided")

    user_id = decode_access_token(credentials.credentials)
    user = await store.get_user(user_id)
    if user is None:
        raise AuthError("Not authorized, user not found")
    return user


async def get_api_key_context(
    store: Store,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> ApiKeyContext:
    """
    FastAPI dependency: resolve the X-API-Key header to an ApiKeyContext.

    Raises AuthError (401) for a missing or unknown key, or a key whose
    owner no longer exists; ForbiddenError (403) for a deactivated key.
    """
    if not x_api_key:
        raise AuthError("API key is required. Please include an X-API-Key header.")

    api_key = await store.find_key_by_token(x_api_key)
    if api_key is None:
        raise AuthError("Invalid API key.")

    if not api_key.is_active:
        raise ForbiddenError("API key is not active.")

    owner = await store.get_user(api_key.user_id)
    if owner is None:
        logger.error("API key %s references missing user %s", api_key.prefix, api_key.user_id)
        raise AuthError("Invalid API key.")

    await store.touch_last_used(api_key.id, utcnow())
    return ApiKeyContext(api_key=api_key, user=owner)
