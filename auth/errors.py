"""
auth/errors.py -- Exception taxonomy for Gatehouse.

Expected failures (wrong activation code, no permission match) are returned
as booleans by the components. Exceptions are reserved for conditions the
immediate caller must handle (validation, authentication, access control) and
for infrastructure problems that must halt the operation.

Hierarchy:
  GatehouseError
    ValidationError       -- raised while creating/saving a user
    StateError            -- operation invalid for the user's current state
    AuthenticationError   -- credentials could not be verified
    AccessDeniedError     -- throttle refuses the attempt
    InfrastructureError   -- misconfigured runtime; never retried or caught
"""

from __future__ import annotations

from datetime import datetime


class GatehouseError(Exception):
    """Base class for every error raised by the auth core."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(GatehouseError):
    pass


class LoginRequiredError(ValidationError):
    pass


class PasswordRequiredError(ValidationError):
    pass


class UserExistsError(ValidationError):
    pass


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class StateError(GatehouseError):
    pass


class UserAlreadyActivatedError(StateError):
    pass


class UserNotActivatedError(StateError):
    pass


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthenticationError(GatehouseError):
    pass


class UserNotFoundError(AuthenticationError):
    pass


class InvalidCredentialsError(AuthenticationError):
    pass


# ---------------------------------------------------------------------------
# Access control (throttle)
# ---------------------------------------------------------------------------


class AccessDeniedError(GatehouseError):
    pass


class UserSuspendedError(AccessDeniedError):
    """The user is suspended until ``until`` (UTC)."""

    def __init__(self, message: str, until: datetime | None = None) -> None:
        super().__init__(message)
        self.until = until


class UserBannedError(AccessDeniedError):
    pass


# ---------------------------------------------------------------------------
# Infrastructure (fatal)
# ---------------------------------------------------------------------------


class InfrastructureError(GatehouseError):
    pass


class HasherUnavailableError(InfrastructureError):
    pass


class RandomSourceUnavailableError(InfrastructureError):
    pass
