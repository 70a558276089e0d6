"""
Dev bootstrap script: create the tables, a dev user and an API key.

Usage:
    python -m scripts.bootstrap_dev [email] [password]

This will:
  1. Create any missing tables (Base.metadata.create_all)
  2. Create a user (default dev@example.com / devpassword) or reuse it
  3. Generate an API key with the default rate limit
  4. Print the raw key ONCE (it is never stored)

The clue corpus itself is loaded by a separate ingestion job.
"""

import asyncio
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from trivia_api.auth.hashing import generate_api_key, hash_password
from trivia_api.core.config import settings
from trivia_api.core.database import Base, async_session_factory, engine
from trivia_api.core.timestamps import utcnow
from trivia_api.models import api_key, clue, rate_limit, trivia, user  # noqa: F401  register tables
from trivia_api.stores.credentials import SqlCredentialStore


async def main(email: str = "dev@example.com", password: str = "devpassword") -> None:
    # ── Schema ──────────────────────────────────────────────
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        store = SqlCredentialStore(session)

        # ── User ────────────────────────────────────────────
        dev_user = await store.find_user_by_email(email)
        if dev_user is None:
            dev_user = await store.create_user("Dev User", email, hash_password(password))

        # ── Generate API key ────────────────────────────────
        raw_key, key_hash = generate_api_key()
        key = await store.create_key(
            dev_user.id,
            "Dev Key",
            key_hash,
            raw_key[:12],
            limit=settings.DEFAULT_RATE_LIMIT,
            window_seconds=settings.DEFAULT_RATE_WINDOW_SECONDS,
            now=utcnow(),
        )

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  User:       {dev_user.email}")
    print(f"  User ID:    {dev_user.id}")
    print()
    print(f"  API Key:    {raw_key}")
    print(f"  Key ID:     {key.id}")
    print(f"  Rate limit: {settings.DEFAULT_RATE_LIMIT} per {settings.DEFAULT_RATE_WINDOW_SECONDS}s")
    print()
    print("  ⚠  Copy this key now, it will NEVER be shown again.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main(*sys.argv[1:3]))
