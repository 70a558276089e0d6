"""
Per-API-key rate limiter.

Two layers:
  • check_and_consume(): the window counter. A pure function from
    (window state, now) to a Decision that carries the post-request state.
  • RateLimitGuard: loads the key's policies from the credential store,
    runs the window counter on each, and persists the new states.

Window semantics (rolling from the first request of a window):
  1. now > reset_at       → new window: count = 1, reset_at = now + window.
  2. count >= limit       → deny, retry after ceil(reset_at - now) seconds.
  3. otherwise            → allow, count += 1.

Design decisions:
  • Check ALL policies first, then write ALL. A denied request consumes
    from no window, including sibling policies on the same key.
  • One read and at most one write per policy per request.
  • Read-then-write without cross-request locking. Two concurrent requests
    on the same key can both read the same count; accepted at current scale.
  • Keys with no policy get a default one on their first request, and that
    request is counted.
"""

from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass

from trivia_api.core.config import settings
from trivia_api.core.errors import RateLimitExceeded
from trivia_api.core.timestamps import to_iso
from trivia_api.models.api_key import APIKey
from trivia_api.models.rate_limit import RateLimit
from trivia_api.stores.credentials import CredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WindowState:
    """Counter state of one rate limit policy."""

    limit: int
    window_seconds: int
    count: int
    reset_at: datetime.datetime

    @classmethod
    def from_policy(cls, policy: RateLimit) -> WindowState:
        return cls(
            limit=policy.limit,
            window_seconds=policy.window_seconds,
            count=policy.requests,
            reset_at=policy.reset_at,
        )


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of one window check.

    Attributes:
        allowed:             Whether the request may proceed.
        limit:               The policy ceiling.
        remaining:           Requests left in the window after this one.
        reset_at:            When the current window ends.
        retry_after_seconds: ceil(reset_at - now), never negative.
        state:               Counter state after this request. Equal to the
                             input state on a denial.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime.datetime
    retry_after_seconds: int
    state: WindowState

    def headers(self) -> dict[str, str]:
        """Rate limit response headers (exact wire names)."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": to_iso(self.reset_at),
            "Retry-After": str(self.retry_after_seconds),
        }


def _seconds_until(reset_at: datetime.datetime, now: datetime.datetime) -> int:
    return max(0, math.ceil((reset_at - now).total_seconds()))


def check_and_consume(state: WindowState, now: datetime.datetime) -> Decision:
    """Run one request through the window counter. Does not mutate `state`."""

    # ── 1. Window expired: start a new one with this request ─
    if now > state.reset_at:
        reset_at = now + datetime.timedelta(seconds=state.window_seconds)
        new_state = WindowState(
            limit=state.limit,
            window_seconds=state.window_seconds,
            count=1,
            reset_at=reset_at,
        )
        return Decision(
            allowed=True,
            limit=state.limit,
            remaining=state.limit - 1,
            reset_at=reset_at,
            retry_after_seconds=_seconds_until(reset_at, now),
            state=new_state,
        )

    # ── 2. Ceiling reached: deny, state unchanged ───────────
    if state.count >= state.limit:
        return Decision(
            allowed=False,
            limit=state.limit,
            remaining=0,
            reset_at=state.reset_at,
            retry_after_seconds=_seconds_until(state.reset_at, now),
            state=state,
        )

    # ── 3. Room left: count this request ────────────────────
    new_state = WindowState(
        limit=state.limit,
        window_seconds=state.window_seconds,
        count=state.count + 1,
        reset_at=state.reset_at,
    )
    return Decision(
        allowed=True,
        limit=state.limit,
        remaining=state.limit - state.count - 1,
        reset_at=state.reset_at,
        retry_after_seconds=_seconds_until(state.reset_at, now),
        state=new_state,
    )


class RateLimitGuard:
    """Evaluates and records one request against all of a key's policies."""

    def __init__(
        self,
        store: CredentialStore,
        default_limit: int | None = None,
        default_window_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.default_limit = (
            settings.DEFAULT_RATE_LIMIT if default_limit is None else default_limit
        )
        self.default_window_seconds = (
            settings.DEFAULT_RATE_WINDOW_SECONDS
            if default_window_seconds is None
            else default_window_seconds
        )

    async def evaluate(self, api_key: APIKey, now: datetime.datetime) -> Decision:
        """
        Check and consume one request for `api_key`.

        Returns the decision whose headers should be sent on the response
        (the tightest window).

        Raises:
            RateLimitExceeded: if any policy denies. No counter is written.
            PersistenceError:  if the store fails (propagated unchanged).
        """
        policies = await self.store.find_policies(api_key.id)

        if not policies:
            return await self._create_default(api_key, now)

        # ── Check ALL policies (no writes yet) ──────────────
        decisions = [
            (policy, check_and_consume(WindowState.from_policy(policy), now))
            for policy in policies
        ]

        denied = [d for _, d in decisions if not d.allowed]
        if denied:
            decision = denied[0]
            logger.info(
                "Rate limit exceeded for key %s (limit=%d, retry_after=%ds)",
                api_key.prefix,
                decision.limit,
                decision.retry_after_seconds,
            )
            raise RateLimitExceeded(
                retry_after=decision.retry_after_seconds,
                reset_at=decision.reset_at,
                headers=decision.headers(),
            )

        # ── Commit ALL (only after every check passed) ──────
        for policy, decision in decisions:
            await self.store.update_policy(
                policy.id,
                requests=decision.state.count,
                reset_at=decision.state.reset_at,
            )

        return min((d for _, d in decisions), key=lambda d: d.remaining)

    async def _create_default(self, api_key: APIKey, now: datetime.datetime) -> Decision:
        reset_at = now + datetime.timedelta(seconds=self.default_window_seconds)
        await self.store.create_policy(
            api_key.id,
            limit=self.default_limit,
            window_seconds=self.default_window_seconds,
            requests=1,
            reset_at=reset_at,
        )
        logger.info(
            "Created default rate limit %d/%ds for key %s",
            self.default_limit,
            self.default_window_seconds,
            api_key.prefix,
        )
        state = WindowState(
            limit=self.default_limit,
            window_seconds=self.default_window_seconds,
            count=1,
            reset_at=reset_at,
        )
        return Decision(
            allowed=True,
            limit=self.default_limit,
            remaining=self.default_limit - 1,
            reset_at=reset_at,
            retry_after_seconds=_seconds_until(reset_at, now),
            state=state,
        )
