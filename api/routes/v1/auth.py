"""
api/routes/v1/auth.py -- Reference authentication REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create an inactive user; activation code delivered out of band
  POST /api/v1/auth/activate          -- redeem an activation code
  POST /api/v1/auth/login             -- password login; sets recall session/cookie
  POST /api/v1/auth/logout            -- rotate persist code, clear recall slots
  GET  /api/v1/auth/me                -- current user (requires auth)
  POST /api/v1/auth/access            -- check permissions for the current user
  POST /api/v1/auth/password/forgot   -- issue a reset code (always 202)
  POST /api/v1/auth/password/reset    -- redeem a reset code

Security:
  POST /login is rate-limited to 10 requests/minute per IP on top of the
      per-user ThrottleGuard: the limiter slows credential stuffing across
      many accounts, the throttle protects each account.
  Unknown login and wrong password produce the same 401 body.
  /password/forgot answers 202 whether or not the login exists.
  Cache-Control: no-store on login responses.

Codes are handed to app.state.deliver_code(user, purpose, code); the default
discards them. Real deployments send e-mail there. Codes never appear in
responses or logs.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import limiter
from api.models import (
    AccessRequest,
    AccessResponse,
    ActivateRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
)
from auth.dependencies import get_auth_session, get_current_user
from auth.models import User
from auth.session import AuthSession

router = APIRouter()


def _deliver(request: Request, user: User, purpose: str, code: str) -> None:
    request.app.state.deliver_code(user, purpose, code)


def _bad_code() -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"code": "invalid_code", "message": "The code is invalid or has already been used."},
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=MeResponse, status_code=201)
def register(request: Request, body: RegisterRequest, auth: AuthSession = Depends(get_auth_session)) -> MeResponse:
    """Create an inactive user and deliver its activation code."""
    user = auth.register(body.login, body.password)
    _deliver(request, user, "activation", auth.codes.issue_activation_code(user))
    return MeResponse.from_user(user)


@router.post("/auth/activate", response_model=MeResponse)
def activate(body: ActivateRequest, auth: AuthSession = Depends(get_auth_session)) -> MeResponse:
    """Activate the account if the code matches. UserAlreadyActivatedError maps to 409."""
    user = auth.find_user_by_login(body.login)
    if not auth.codes.attempt_activation(user, body.code):
        raise _bad_code()
    return MeResponse.from_user(user)


@limiter.limit("10/minute")  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=MeResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth: AuthSession = Depends(get_auth_session),
) -> MeResponse:
    """Authenticate with login and password.

    Errors are raised as Gatehouse exceptions and mapped by the handlers in
    auth/dependencies.py (401 bad credentials, 403 suspended/banned, 409 not
    activated).
    """
    user = auth.authenticate(body.login, body.password, remember=body.remember)
    response.headers["Cache-Control"] = "no-store"
    return MeResponse.from_user(user)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(auth: AuthSession = Depends(get_auth_session)) -> MessageResponse:
    """Rotate the persist code (if logged in) and clear the recall slots."""
    auth.check()
    auth.logout()
    return MessageResponse(message="Logged out.")


@router.post("/auth/password/forgot", response_model=MessageResponse, status_code=202)
def forgot_password(
    request: Request, body: ForgotPasswordRequest, auth: AuthSession = Depends(get_auth_session)
) -> MessageResponse:
    user = auth.users.find_by_login(body.login)
    if user is not None:
        _deliver(request, user, "reset", auth.codes.issue_reset_code(user))
    return MessageResponse(message="If the account exists, a reset code has been sent.")


@router.post("/auth/password/reset", response_model=MessageResponse)
def reset_password(body: ResetPasswordRequest, auth: AuthSession = Depends(get_auth_session)) -> MessageResponse:
    user = auth.users.find_by_login(body.login)
    if user is None or not auth.codes.attempt_reset_password(user, body.code, body.password):
        raise _bad_code()
    return MessageResponse(message="Password updated.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse.from_user(current_user)


@router.post("/auth/access", response_model=AccessResponse)
def access(
    body: AccessRequest,
    current_user: User = Depends(get_current_user),
    auth: AuthSession = Depends(get_auth_session),
) -> AccessResponse:
    return AccessResponse(allowed=auth.has_access(current_user, body.permissions, all=not body.any))
