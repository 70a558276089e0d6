"""
Error taxonomy shared by the API and the batch job.

Every error the service raises on purpose derives from TriviaAPIError and
carries the HTTP status it maps to. The exception handlers in main.py turn
them into the uniform envelope:

    {"success": false, "message": "..."}

The generation / pipeline errors never reach HTTP directly. They are
consumed by the batch pipeline's retry and supervision logic.
"""

from __future__ import annotations

import datetime
from typing import Any

from trivia_api.core.timestamps import to_iso


class TriviaAPIError(Exception):
    """Base class for expected, client-reportable failures."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return {"success": False, "message": self.message}


# ── Request errors ──────────────────────────────────────────
class ValidationError(TriviaAPIError):
    """Malformed or missing request fields."""

    status_code = 400
    default_message = "Invalid request"


class AuthError(TriviaAPIError):
    """Missing or invalid credential.

    The message is generic so callers cannot learn
    whether a key exists.
    """

    status_code = 401
    default_message = "Not authorized"


class ForbiddenError(TriviaAPIError):
    """Credential is valid but not allowed (e.g. a deactivated API key)."""

    status_code = 403
    default_message = "Forbidden"


class NotFound(TriviaAPIError):
    """Referenced entity is absent or not owned by the caller."""

    status_code = 404
    default_message = "Not found"


class ConflictError(TriviaAPIError):
    status_code = 400
    default_message = "Resource already exists"


class RateLimitExceeded(TriviaAPIError):
    """Raised by the rate limit guard when any policy denies the request.

    Carries the retry guidance and the header set so the error boundary
    can reproduce them on the 429 response.
    """

    status_code = 429
    default_message = "Rate limit exceeded"

    def __init__(
        self,
        retry_after: int,
        reset_at: datetime.datetime,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__()
        self.retry_after = retry_after
        self.reset_at = reset_at
        self.headers = headers or {}

    def to_body(self) -> dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "retryAfter": self.retry_after,
            "resetAt": to_iso(self.reset_at),
        }


# ── Upstream (text generation) errors ───────────────────────
class UpstreamUnavailable(TriviaAPIError):
    """The text-generation service could not be reached."""

    status_code = 502
    default_message = "Text generation service is unavailable"


class UpstreamError(TriviaAPIError):
    """The text-generation service answered with a non-success status."""

    status_code = 502
    default_message = "Text generation service returned an error"

    def __init__(self, message: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedOutput(TriviaAPIError):
    """Generated payload could not be parsed into a trivia draft."""

    default_message = "Could not parse generated output"


# ── Persistence / batch errors ──────────────────────────────
class PersistenceError(TriviaAPIError):
    """Store unreachable or write conflict."""

    status_code = 500
    default_message = "Database error"


class FatalPipelineError(TriviaAPIError):
    """Failure outside per-clue processing; ends the batch run."""

    default_message = "Fatal error in batch processing"

