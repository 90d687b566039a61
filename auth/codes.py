"""
auth/codes.py -- Single-use credential codes: persist, activation, reset.

Security design:
  Generation: os.urandom, base64 encoded with "/", "+" and "=" stripped, cut
      to 42 characters (~250 bits). If the platform has no CSPRNG the manager
      raises RandomSourceUnavailableError -- there is no weak fallback.

  Storage: only HMAC-SHA256(secret_key, code) is persisted. The digest is
      deterministic, so UserStore.find_by_persist_code() is a plain indexed
      lookup, and an attacker holding a DB dump cannot replay codes without
      also holding the secret key. The raw code is returned once, at issue
      time, and is unrecoverable afterwards.

  Comparison: a presented code is re-digested and compared with
      hmac.compare_digest. Raw codes are never compared to stored values.

Wrong codes are an expected outcome and return False. Only precondition
violations (activating an activated user) raise.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from auth.errors import PasswordRequiredError, RandomSourceUnavailableError, UserAlreadyActivatedError

if TYPE_CHECKING:
    from auth.hashing import HashingStrategy
    from auth.interfaces import UserStore
    from auth.models import User

logger = logging.getLogger("gatehouse.auth.codes")

DEFAULT_CODE_LENGTH = 42


def generate_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Return an unguessable code of exactly length characters from [A-Za-z0-9].

    Twice as many random bytes as needed are drawn so that stripping the
    base64 punctuation still leaves enough characters.
    """
    if length < 1:
        raise ValueError("code length must be positive")
    try:
        raw = os.urandom(length * 2)
    except NotImplementedError as exc:
        raise RandomSourceUnavailableError("No cryptographically strong random source is available.") from exc
    code = base64.b64encode(raw).decode("ascii").replace("/", "").replace("+", "").replace("=", "")
    if len(code) < length:
        # Only reachable with a pathological byte stream; draw again.
        return code + generate_code(length - len(code))
    return code[:length]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CredentialCodeManager:
    """Issues and redeems the per-user credential codes.

    Usage:
        codes = CredentialCodeManager(user_store, hasher, settings.secret_key)
        code = codes.issue_activation_code(user)   # e-mail this to the user
        codes.attempt_activation(user, code)       # True, user is now active
    """

    def __init__(
        self,
        users: UserStore,
        hasher: HashingStrategy,
        secret_key: str,
        length: int = DEFAULT_CODE_LENGTH,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key is required to digest credential codes")
        self._users = users
        self._hasher = hasher
        self._key = secret_key.encode("utf-8")
        self.length = length

    # ------------------------------------------------------------------
    # Digest helpers
    # ------------------------------------------------------------------

    def digest(self, code: str) -> str:
        """Return the stored form of code: HMAC-SHA256(secret_key, code) hex."""
        return hmac.new(self._key, code.encode("utf-8"), hashlib.sha256).hexdigest()

    def _matches(self, code: str | None, stored: str | None) -> bool:
        if not code or not stored:
            return False
        return hmac.compare_digest(self.digest(code), stored)

    def _issue(self, user: User, attribute: str) -> str:
        code = generate_code(self.length)
        setattr(user, attribute, self.digest(code))
        self._users.save(user)
        return code

    # ------------------------------------------------------------------
    # Persist ("remember me") code
    # ------------------------------------------------------------------

    def issue_persist_code(self, user: User) -> str:
        """Mint a fresh persist code, replacing any previous one."""
        return self._issue(user, "persist_code")

    def check_persist_code(self, user: User, code: str) -> bool:
        return self._matches(code, user.persist_code)

    def clear_persist_code(self, user: User) -> None:
        if user.persist_code:
            user.persist_code = None
            self._users.save(user)

    # ------------------------------------------------------------------
    # Activation code
    # ------------------------------------------------------------------

    def issue_activation_code(self, user: User) -> str:
        if user.is_activated:
            raise UserAlreadyActivatedError("Cannot issue an activation code to an already activated user.")
        return self._issue(user, "activation_code")

    def attempt_activation(self, user: User, code: str) -> bool:
        """Activate user if code matches the stored activation code.

        Returns False for a wrong or missing code and leaves the user untouched.
        """
        if user.is_activated:
            raise UserAlreadyActivatedError("Cannot attempt activation on an already activated user.")
        if not self._matches(code, user.activation_code):
            return False
        user.activation_code = None
        user.is_activated = True
        user.activated_at = _now_iso()
        self._users.save(user)
        logger.info("User %s activated", user.id)
        return True

    # ------------------------------------------------------------------
    # Reset-password code
    # ------------------------------------------------------------------

    def issue_reset_code(self, user: User) -> str:
        return self._issue(user, "reset_password_code")

    def check_reset_code(self, user: User, code: str) -> bool:
        return self._matches(code, user.reset_password_code)

    def attempt_reset_password(self, user: User, code: str, new_password: str) -> bool:
        """Replace the password hash if code matches; the code is consumed on success."""
        if not new_password:
            raise PasswordRequiredError("A new password is required to reset the password.")
        if not self.check_reset_code(user, code):
            return False
        user.password = self._hasher.hash(new_password)
        user.reset_password_code = None
        self._users.save(user)
        logger.info("Password reset for user %s", user.id)
        return True

    def clear_reset_code(self, user: User) -> None:
        if user.reset_password_code:
            user.reset_password_code = None
            self._users.save(user)
