"""
API request and response models for the Gatehouse reference endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Password fields are capped at 72 characters; the bcrypt hasher only reads the
first 72 bytes. Logins are stripped of surrounding whitespace, passwords are
taken exactly as sent so every endpoint agrees on what the password is.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

Login = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    login: Login
    password: str = Field(min_length=1, max_length=72)
    remember: bool = False


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    login: Login
    password: str = Field(min_length=8, max_length=72)


class ActivateRequest(BaseModel):
    login: Login
    code: str = Field(min_length=1, max_length=255)


class ForgotPasswordRequest(BaseModel):
    login: Login


class ResetPasswordRequest(BaseModel):
    login: Login
    code: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=72)


class AccessRequest(BaseModel):
    """Request body for POST /api/v1/auth/access."""

    permissions: list[str] = Field(min_length=1)
    any: bool = False


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MeResponse(BaseModel):
    """Identity of the authenticated user. Never includes hashes or codes."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    email: Optional[str] = None
    username: Optional[str] = None
    is_activated: bool
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(
            user_id=user.id,
            email=user.email,
            username=user.username,
            is_activated=user.is_activated,
            last_login=user.last_login,
        )


class AccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
