"""
api/main.py -- Reference FastAPI application for Gatehouse.

Shows how a host application wires the auth core: services are built once in
the lifespan, every request gets its own AuthSession through
auth.dependencies.get_auth_session, and Gatehouse errors are turned into JSON
responses by the handlers from auth.dependencies.install_error_handlers.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter
  2. SessionMiddleware -- signed session cookie carrying the recall token

Lifespan builds the AuthServices on startup (failing fast if the configured
hasher is unavailable) and disposes the engine on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.dependencies import install_error_handlers
from auth.factory import AuthServices, build_services
from auth.models import User
from core.config import Settings, get_settings
from core.logging import configure_logging

logger = logging.getLogger("gatehouse.api")

VERSION = "0.1.0"


def _discard_code(user: User, purpose: str, code: str) -> None:
    logger.debug("No code delivery configured; %s code for user %s discarded", purpose, user.id)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[AuthServices] = None,
    deliver_code: Optional[Callable[[User, str, str], None]] = None,
) -> FastAPI:
    """Assemble the app.

    Args:
        settings:     Defaults to get_settings().
        services:     Pre-built services (tests pass in-memory stores). Built
                      from settings in the lifespan when omitted.
        deliver_code: Callback receiving (user, "activation" | "reset", code).
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Gatehouse API starting up")
        owned = services is None
        app.state.auth_services = build_services(settings) if owned else services
        yield
        if owned:
            app.state.auth_services.close()
        logger.info("Gatehouse API shutdown complete")

    app = FastAPI(title="Gatehouse API", version=VERSION, lifespan=lifespan)
    app.state.deliver_code = deliver_code or _discard_code

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, https_only=not settings.debug)
    app.state.limiter = limiter

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s %d %.1fms", request.method, request.url.path, response.status_code, ms)
        return response

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])

    install_error_handlers(app)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        retry_after = int(getattr(exc, "retry_after", 60))
        response = JSONResponse(
            status_code=429,
            content=ErrorResponse(
                error=ErrorDetail(code="rate_limited", message="Too many requests.", detail=str(exc))
            ).model_dump(),
        )
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="validation_error",
                    message="Request validation failed.",
                    detail=str(exc.errors()),
                )
            ).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
        )

    @app.get("/api/v1/health", tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(version=VERSION)

    return app
