"""
FastAPI dependency for API key rate limit enforcement.

Depends on get_api_key_context (auth runs first), then runs the guard.
Order in request pipeline: AUTH → RATE LIMIT → ROUTER LOGIC.

Every evaluated response carries X-RateLimit-Limit, X-RateLimit-Remaining,
X-RateLimit-Reset and Retry-After:
  • Allowed request, route succeeds: set on the injected Response here.
  • Allowed request, route raises: the headers are also kept on
    request.state and the error handlers in main.py copy them onto the
    error response (see rate_limit_headers()).
  • Denied request: the RateLimitExceeded handler adds them to the 429.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request, Response

from trivia_api.auth.dependencies import ApiKeyContext, Store, get_api_key_context
from trivia_api.core.timestamps import utcnow
from trivia_api.services.rate_limiter import RateLimitGuard

_STATE_KEY = "rate_limit_headers"


def rate_limit_headers(request: Request) -> dict[str, str] | None:
    """Headers recorded by enforce_rate_limit for this request, if it ran."""
    return getattr(request.state, _STATE_KEY, None)


async def enforce_rate_limit(
    request: Request,
    response: Response,
    store: Store,
    auth: Annotated[ApiKeyContext, Depends(get_api_key_context)],
) -> ApiKeyContext:
    """
    Consume one request from the key's rate limit windows.

    Returns the ApiKeyContext so routers can access the key and its owner.
    """
    decision = await RateLimitGuard(store).evaluate(auth.api_key, utcnow())
    headers = decision.headers()
    response.headers.update(headers)
    setattr(request.state, _STATE_KEY, headers)
    return auth
