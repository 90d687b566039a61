"""
auth/dependencies.py -- FastAPI adapter: per-request AuthSession and guards.

Host apps wire it like this:

    services = build_services(get_settings())
    app.state.auth_services = services
    app.add_middleware(SessionMiddleware, secret_key=settings.secret_key)  # optional
    install_error_handlers(app)

    @app.get("/posts/{id}/edit")
    def edit(user: User = Depends(require_permissions("posts.edit"))): ...

Channels:
  StarletteSessionChannel stores the recall token in request.session (only
  when SessionMiddleware is installed). StarletteCookieChannel reads the
  request cookie and writes Set-Cookie on the dependency's Response, so routes
  that return plain data get the cookie automatically.

Error mapping (install_error_handlers):
  AuthenticationError -> 401, AccessDeniedError -> 403 (+ Retry-After when
  suspended), ValidationError -> 422, StateError -> 409. Infrastructure errors
  are not mapped -- they surface as 500s and in the logs.

Layer rule: the only auth/ module that imports fastapi/starlette.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from auth.channels import FOREVER_MINUTES
from auth.errors import (
    AccessDeniedError,
    AuthenticationError,
    StateError,
    UserSuspendedError,
    ValidationError,
)
from auth.factory import AuthServices
from auth.models import User
from auth.session import AuthSession


class StarletteSessionChannel:
    def __init__(self, request: Request, key: str) -> None:
        self.key = key
        self._request = request

    def get(self) -> str | None:
        return self._request.session.get(self.key)

    def put(self, value: str, minutes: int | None = None) -> None:
        # Lifetime is enforced by the token's exp claim, not the session.
        self._request.session[self.key] = value

    def forget(self) -> None:
        self._request.session.pop(self.key, None)


class StarletteCookieChannel:
    def __init__(self, request: Request, response: Response, key: str, secure: bool = False) -> None:
        self.key = key
        self._request = request
        self._response = response
        self._secure = secure
        # Value written during this request; None means "use the request cookie".
        self._pending: str | None = None
        self._forgotten = False

    def get(self) -> str | None:
        if self._pending is not None:
            return self._pending
        if self._forgotten:
            return None
        return self._request.cookies.get(self.key)

    def put(self, value: str, minutes: int | None = None) -> None:
        self._pending = value
        self._forgotten = False
        self._response.set_cookie(
            self.key,
            value=value,
            max_age=minutes * 60 if minutes else None,
            httponly=True,
            samesite="lax",
            secure=self._secure,
        )

    def forever(self, value: str) -> None:
        self.put(value, FOREVER_MINUTES)

    def forget(self) -> None:
        self._pending = None
        self._forgotten = True
        self._response.delete_cookie(self.key, httponly=True, samesite="lax", secure=self._secure)


def get_auth_session(request: Request, response: Response) -> AuthSession:
    """Build the request-scoped AuthSession from app.state.auth_services."""
    services: AuthServices = request.app.state.auth_services
    key = services.cookie_key
    session = StarletteSessionChannel(request, key) if "session" in request.scope else None
    cookie = StarletteCookieChannel(request, response, key, secure=request.url.scheme == "https")
    return services.session(session=session, cookie=cookie)


def get_current_user(auth: AuthSession = Depends(get_auth_session)) -> User:
    """Require a logged-in user. Raises HTTP 401 otherwise."""
    user = auth.check()
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_permissions(*permissions: str, all: bool = True) -> Callable[..., User]:
    """Dependency factory: require the current user to hold the permission(s).

    all=False accepts any one of them.
    """

    def dependency(
        user: User = Depends(get_current_user),
        auth: AuthSession = Depends(get_auth_session),
    ) -> User:
        if not auth.has_access(user, permissions, all=all):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Insufficient permissions."},
            )
        return user

    return dependency


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


_SUSPENDED_MESSAGE = "This account is temporarily locked. Try again later."
_BANNED_MESSAGE = "This account has been disabled."


def _error(status_code: int, code: str, exc: Exception | str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": str(exc)}},
        headers=headers,
    )


async def _authentication_error(request: Request, exc: AuthenticationError) -> JSONResponse:
    # One message for unknown login and wrong password: no user enumeration.
    return JSONResponse(
        status_code=401,
        content={"error": {"code": "invalid_credentials", "message": "Invalid login or password."}},
    )


async def _access_denied(request: Request, exc: AccessDeniedError) -> JSONResponse:
    headers = None
    if isinstance(exc, UserSuspendedError) and exc.until is not None:
        remaining = (exc.until - datetime.now(timezone.utc)).total_seconds()
        headers = {"Retry-After": str(max(1, math.ceil(remaining)))}
    if isinstance(exc, UserSuspendedError):
        return _error(403, "suspended", _SUSPENDED_MESSAGE, headers)
    return _error(403, "banned", _BANNED_MESSAGE, headers)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(422, "validation_error", exc)


async def _state_error(request: Request, exc: StateError) -> JSONResponse:
    return _error(409, "invalid_state", exc)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthenticationError, _authentication_error)
    app.add_exception_handler(AccessDeniedError, _access_denied)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(StateError, _state_error)
