"""
Async engine, session factory and ORM base.

Two kinds of session owner:
  • HTTP requests: get_db_session yields one session per request, and the
    credential/question store dependencies wrap it. Every store method
    commits its own writes (rate limit counters, last_used_at, key edits).
  • The batch job: the pipeline runs several clues at once, and an
    AsyncSession cannot be shared between tasks, so ScopedQuestionStore
    (services/pipeline.py) opens a short-lived session from
    async_session_factory for each store call.

Tables are created by scripts/bootstrap_dev.py via Base.metadata.create_all.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from trivia_api.core.config import settings

# pool_pre_ping: the batch job can sit for minutes on one generation call
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Stores hand ORM rows back after commit (new keys, policies, trivia rows),
# so attributes must stay loaded.
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for users, keys, rate limits, clues and trivia."""


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for the SQL stores; closed when the request ends."""
    async with async_session_factory() as session:
        yield session
