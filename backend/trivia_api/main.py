"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify DB connectivity.
  • On shutdown: dispose the engine cleanly.

Routers:
  • /api/users  - registration, login, profile (JWT)
  • /api/keys   - API key management (JWT)
  • /api/trivia - trivia reads (X-API-Key + rate limit)
  • /api/health - shallow liveness probe

Error boundary: every failure leaves as {"success": false, "message": ...}
with the status carried by the exception.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from trivia_api.auth.rate_limit import rate_limit_headers
from trivia_api.core.config import settings
from trivia_api.core.database import engine
from trivia_api.core.errors import RateLimitExceeded, TriviaAPIError
from trivia_api.core.timestamps import to_iso, utcnow
from trivia_api.routers.api_keys import router as api_keys_router
from trivia_api.routers.trivia import router as trivia_router
from trivia_api.routers.users import router as users_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    yield

    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Multiple-choice trivia questions generated from a clue corpus.",
    lifespan=lifespan,
)

app.include_router(users_router, prefix="/api/users")
app.include_router(api_keys_router, prefix="/api/keys")
app.include_router(trivia_router, prefix="/api/trivia")


# ── Error boundary ──────────────────────────────────────────
@app.exception_handler(TriviaAPIError)
async def handle_trivia_api_error(request: Request, exc: TriviaAPIError) -> JSONResponse:
    if isinstance(exc, RateLimitExceeded):
        headers = exc.headers
    else:
        headers = rate_limit_headers(request)
    if exc.status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request", "errors": errors},
        headers=rate_limit_headers(request),
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
        headers=rate_limit_headers(request),
    )


# ── Health check ────────────────────────────────────────────
@app.get(
    "/api/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, object]:
    """Shallow health check; does not touch the database."""
    return {"success": True, "message": "API is running", "timestamp": to_iso(utcnow())}
