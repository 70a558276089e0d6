"""
Credential store: users, API keys and their rate limit policies.

The rate limit guard and the auth dependencies only talk to the
CredentialStore protocol. SqlCredentialStore is the Postgres implementation;
it is built per request around the request-scoped session (see
get_credential_store) so nothing holds a global handle.

Every SQLAlchemy failure is rolled back and re-raised as PersistenceError.
"""

from __future__ import annotations

import datetime
import uuid
from typing import Any, Protocol

from fastapi import Depends
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trivia_api.auth.hashing import hash_api_key
from trivia_api.core.database import get_db_session
from trivia_api.models.api_key import APIKey
from trivia_api.models.rate_limit import RateLimit
from trivia_api.models.user import User
from trivia_api.stores.base import wrap_db_errors


class CredentialStore(Protocol):
    """Operations the rate limit guard and API-key auth depend on."""

    async def find_key_by_token(self, token: str) -> APIKey | None: ...

    async def get_user(self, user_id: uuid.UUID) -> User | None: ...

    async def find_policies(self, api_key_id: uuid.UUID) -> list[RateLimit]: ...

    async def create_policy(
        self,
        api_key_id: uuid.UUID,
        *,
        limit: int,
        window_seconds: int,
        requests: int,
        reset_at: datetime.datetime,
    ) -> RateLimit: ...

    async def update_policy(self, policy_id: int, **fields: Any) -> None: ...

    async def touch_last_used(
        self, api_key_id: uuid.UUID, now: datetime.datetime
    ) -> None: ...


class SqlCredentialStore:
    """SQLAlchemy-backed credential store bound to one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ── API key lookup (auth + rate limiting) ───────────────
    @wrap_db_errors
    async def find_key_by_token(self, token: str) -> APIKey | None:
        stmt = select(APIKey).where(APIKey.key_hash == hash_api_key(token))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @wrap_db_errors
    async def find_policies(self, api_key_id: uuid.UUID) -> list[RateLimit]:
        stmt = (
            select(RateLimit)
            .where(RateLimit.api_key_id == api_key_id)
            .order_by(RateLimit.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @wrap_db_errors
    async def create_policy(
        self,
        api_key_id: uuid.UUID,
        *,
        limit: int,
        window_seconds: int,
        requests: int,
        reset_at: datetime.datetime,
    ) -> RateLimit:
        policy = RateLimit(
            api_key_id=api_key_id,
            limit=limit,
            window_seconds=window_seconds,
            requests=requests,
            reset_at=reset_at,
        )
        self.session.add(policy)
        await self.session.commit()
        await self.session.refresh(policy)
        return policy

    @wrap_db_errors
    async def update_policy(self, policy_id: int, **fields: Any) -> None:
        stmt = update(RateLimit).where(RateLimit.id == policy_id).values(**fields)
        await self.session.execute(stmt)
        await self.session.commit()

    @wrap_db_errors
    async def touch_last_used(
        self, api_key_id: uuid.UUID, now: datetime.datetime
    ) -> None:
        stmt = update(APIKey).where(APIKey.id == api_key_id).values(last_used_at=now)
        await self.session.execute(stmt)
        await self.session.commit()

    # ── Users ───────────────────────────────────────────────
    @wrap_db_errors
    async def find_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @wrap_db_errors
    async def get_user(self, user_id: uuid.UUID) -> User | None:
        return await self.session.get(User, user_id)

    @wrap_db_errors
    async def create_user(self, name: str, email: str, password_hash: str) -> User:
        user = User(name=name, email=email.lower(), password_hash=password_hash)
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user

    @wrap_db_errors
    async def update_user(self, user: User, **fields: Any) -> User:
        for name, value in fields.items():
            setattr(user, name, value)
        await self.session.commit()
        await self.session.refresh(user)
        return user

    # ── API key management ──────────────────────────────────
    @wrap_db_errors
    async def create_key(
        self,
        user_id: uuid.UUID,
        name: str,
        key_hash: str,
        prefix: str,
        *,
        limit: int,
        window_seconds: int,
        now: datetime.datetime,
    ) -> APIKey:
        """Create a key together with its default policy (count 0)."""
        api_key = APIKey(user_id=user_id, name=name, key_hash=key_hash, prefix=prefix)
        self.session.add(api_key)
        await self.session.flush()  # get api_key.id

        self.session.add(
            RateLimit(
                api_key_id=api_key.id,
                limit=limit,
                window_seconds=window_seconds,
                requests=0,
                reset_at=now + datetime.timedelta(seconds=window_seconds),
            )
        )
        await self.session.commit()
        await self.session.refresh(api_key, attribute_names=["rate_limits"])
        return api_key

    @wrap_db_errors
    async def list_keys(self, user_id: uuid.UUID) -> list[APIKey]:
        stmt = (
            select(APIKey)
            .where(APIKey.user_id == user_id)
            .order_by(APIKey.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @wrap_db_errors
    async def get_key(self, key_id: uuid.UUID) -> APIKey | None:
        return await self.session.get(APIKey, key_id)

    @wrap_db_errors
    async def update_key(self, api_key: APIKey, **fields: Any) -> APIKey:
        for name, value in fields.items():
            setattr(api_key, name, value)
        await self.session.commit()
        await self.session.refresh(api_key, attribute_names=["rate_limits"])
        return api_key

    @wrap_db_errors
    async def delete_key(self, api_key: APIKey) -> None:
        await self.session.execute(delete(APIKey).where(APIKey.id == api_key.id))
        await self.session.commit()

    @wrap_db_errors
    async def replace_policy(
        self,
        api_key_id: uuid.UUID,
        *,
        limit: int,
        window_seconds: int,
        now: datetime.datetime,
    ) -> RateLimit:
        """
        Reconfigure a key's policy wholesale: new limit and window, counter
        back to 0, reset_at recomputed from now. Creates one if absent.
        """
        stmt = (
            select(RateLimit)
            .where(RateLimit.api_key_id == api_key_id)
            .order_by(RateLimit.id)
            .limit(1)
        )
        policy = (await self.session.execute(stmt)).scalar_one_or_none()
        if policy is None:
            policy = RateLimit(api_key_id=api_key_id)
            self.session.add(policy)

        policy.limit = limit
        policy.window_seconds = window_seconds
        policy.requests = 0
        policy.reset_at = now + datetime.timedelta(seconds=window_seconds)

        await self.session.commit()
        await self.session.refresh(policy)
        return policy


def get_credential_store(
    session: AsyncSession = Depends(get_db_session),
) -> SqlCredentialStore:
    """FastAPI dependency: a credential store over the request's session."""
    return SqlCredentialStore(session)
