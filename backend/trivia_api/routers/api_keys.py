"""
API keys router: per-user key management.

All endpoints require a user JWT and only ever see the caller's own keys;
someone else's key id answers 404 exactly like a missing one.

The raw key is returned once, by POST. Only its SHA-256 hash and a short
display prefix are stored.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, status

from trivia_api.auth.dependencies import Store, get_current_user
from trivia_api.auth.hashing import generate_api_key
from trivia_api.core.config import settings
from trivia_api.core.errors import NotFound
from trivia_api.core.timestamps import utcnow
from trivia_api.models.api_key import APIKey
from trivia_api.models.user import User
from trivia_api.schemas.api_keys import (
    ApiKeyCreate,
    ApiKeyCreatedEnvelope,
    ApiKeyCreatedOut,
    ApiKeyEnvelope,
    ApiKeyListEnvelope,
    ApiKeyOut,
    ApiKeyUpdate,
    RateLimitEnvelope,
    RateLimitOut,
    RateLimitUpdate,
)
from trivia_api.schemas.base import MessageOut

logger = logging.getLogger(__name__)

router = APIRouter(tags=["API Keys"])

CurrentUser = Annotated[User, Depends(get_current_user)]

PREFIX_LENGTH = 12


async def _owned_key(store: Store, key_id: uuid.UUID, user: User) -> APIKey:
    api_key = await store.get_key(key_id)
    if api_key is None or api_key.user_id != user.id:
        raise NotFound("API key not found")
    return api_key


# ── 1. Create ───────────────────────────────────────────────
@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiKeyCreatedEnvelope,
    summary="Create an API key",
    description="Returns the raw key once. Store it; it cannot be retrieved later.",
)
async def create_api_key(body: ApiKeyCreate, user: CurrentUser, store: Store) -> ApiKeyCreatedEnvelope:
    raw_key, key_hash = generate_api_key()
    api_key = await store.create_key(
        user.id,
        body.name,
        key_hash,
        raw_key[:PREFIX_LENGTH],
        limit=settings.DEFAULT_RATE_LIMIT,
        window_seconds=settings.DEFAULT_RATE_WINDOW_SECONDS,
        now=utcnow(),
    )
    logger.info("Created API key %s for user %s", api_key.prefix, user.id)

    out = ApiKeyOut.model_validate(api_key)
    return ApiKeyCreatedEnvelope(api_key=ApiKeyCreatedOut(**out.model_dump(), key=raw_key))


# ── 2. Read ─────────────────────────────────────────────────
@router.get(
    "",
    response_model=ApiKeyListEnvelope,
    summary="List the caller's API keys",
)
async def list_api_keys(user: CurrentUser, store: Store) -> ApiKeyListEnvelope:
    keys = await store.list_keys(user.id)
    return ApiKeyListEnvelope(
        count=len(keys),
        api_keys=[ApiKeyOut.model_validate(k) for k in keys],
    )


@router.get(
    "/{key_id}",
    response_model=ApiKeyEnvelope,
    summary="Get one API key",
)
async def get_api_key(key_id: uuid.UUID, user: CurrentUser, store: Store) -> ApiKeyEnvelope:
    api_key = await _owned_key(store, key_id, user)
    return ApiKeyEnvelope(api_key=ApiKeyOut.model_validate(api_key))


# ── 3. Update / delete ──────────────────────────────────────
@router.put(
    "/{key_id}",
    response_model=ApiKeyEnvelope,
    summary="Rename or (de)activate an API key",
)
async def update_api_key(
    key_id: uuid.UUID, body: ApiKeyUpdate, user: CurrentUser, store: Store
) -> ApiKeyEnvelope:
    api_key = await _owned_key(store, key_id, user)
    fields = body.model_dump(exclude_none=True)
    if fields:
        api_key = await store.update_key(api_key, **fields)
        logger.info("Updated API key %s: %s", api_key.prefix, sorted(fields))
    return ApiKeyEnvelope(api_key=ApiKeyOut.model_validate(api_key))


@router.delete(
    "/{key_id}",
    response_model=MessageOut,
    summary="Delete an API key",
)
async def delete_api_key(key_id: uuid.UUID, user: CurrentUser, store: Store) -> MessageOut:
    api_key = await _owned_key(store, key_id, user)
    await store.delete_key(api_key)
    logger.info("Deleted API key %s", api_key.prefix)
    return MessageOut(message="API key deleted")


# ── 4. Rate limit ───────────────────────────────────────────
@router.put(
    "/{key_id}/rate-limit",
    response_model=RateLimitEnvelope,
    summary="Replace an API key's rate limit",
    description=(
        "Sets a new request ceiling and window length. "
        "The counter restarts at 0 and the window restarts now."
    ),
)
async def update_rate_limit(
    key_id: uuid.UUID, body: RateLimitUpdate, user: CurrentUser, store: Store
) -> RateLimitEnvelope:
    api_key = await _owned_key(store, key_id, user)
    policy = await store.replace_policy(
        api_key.id,
        limit=body.limit,
        window_seconds=body.window,
        now=utcnow(),
    )
    logger.info(
        "Rate limit for API key %s set to %d per %ds",
        api_key.prefix,
        body.limit,
        body.window,
    )
    return RateLimitEnvelope(rate_limit=RateLimitOut.model_validate(policy))
