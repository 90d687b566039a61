"""
auth/session.py -- AuthSession: credential checks, login state and access queries.

AuthSession is the one object request handlers talk to. It owns no storage and
no transport; everything arrives through the constructor:

    users / groups / throttle stores  -- auth/interfaces.py protocols
    hasher                            -- the configured HashingStrategy
    codes                             -- CredentialCodeManager (persist codes)
    resolver                          -- PermissionResolver
    config                            -- SessionConfig (login attribute, secret key)
    session / cookie                  -- optional recall channels

Build one per request (auth/factory.py and auth/dependencies.py do this).

Authentication order matters:
  1. load the user by login        -> UserNotFoundError
  2. throttle.check_access()       -> UserBannedError / UserSuspendedError
  3. hasher.verify()               -> record_failure(), then InvalidCredentialsError
  4. activation                    -> UserNotActivatedError
  5. record_success(), stamp last_login, mint persist code, write channels

A failed password check is counted BEFORE the error propagates, so every probe
counts toward suspension even though it fails.

Timing: when the login does not exist, the password is still verified against
a dummy hash so response time does not reveal which logins are registered.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from auth.errors import (
    AccessDeniedError,
    InvalidCredentialsError,
    LoginRequiredError,
    PasswordRequiredError,
    UserExistsError,
    UserNotActivatedError,
    UserNotFoundError,
)
from auth.models import Group, User
from auth.permissions import PermissionResolver, merge_permissions
from auth.tokens import decode_recall_token, encode_recall_token

if TYPE_CHECKING:
    from auth.codes import CredentialCodeManager
    from auth.hashing import HashingStrategy
    from auth.interfaces import CookieChannel, GroupStore, SessionChannel, UserStore
    from auth.throttle import ThrottleGuard

logger = logging.getLogger("gatehouse.auth")


@dataclass(frozen=True)
class SessionConfig:
    """Per-deployment settings AuthSession needs, passed explicitly."""

    secret_key: str
    login_attribute: str = "email"
    # Lifetime of the session-channel token; None = until the session ends.
    session_minutes: int | None = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuthSession:
    """Orchestrates hashing, throttling, codes and permissions for one request."""

    def __init__(
        self,
        users: UserStore,
        groups: GroupStore,
        throttle: ThrottleGuard,
        hasher: HashingStrategy,
        codes: CredentialCodeManager,
        config: SessionConfig,
        resolver: PermissionResolver | None = None,
        session: SessionChannel | None = None,
        cookie: CookieChannel | None = None,
    ) -> None:
        self.users = users
        self.groups = groups
        self.throttle = throttle
        self.hasher = hasher
        self.codes = codes
        self.config = config
        self.resolver = resolver or PermissionResolver()
        self.session = session
        self.cookie = cookie
        self.user: User | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, login: str, password: str, activate: bool = False, **fields) -> User:
        """Create a user with a hashed password.

        Raises LoginRequiredError, PasswordRequiredError or UserExistsError.
        Extra keyword arguments are passed to the User dataclass (e.g. username=).
        """
        if not login:
            raise LoginRequiredError("A login is required for a user, none given.")
        if not password:
            raise PasswordRequiredError(f"A password is required for user [{login}], none given.")
        if self.users.find_by_login(login) is not None:
            raise UserExistsError(f"A user already exists with login [{login}], logins must be unique for users.")
        user = User(**fields)
        setattr(user, self.config.login_attribute, login)
        user.password = self.hasher.hash(password)
        if activate:
            user.is_activated = True
            user.activated_at = _now_iso()
        self.users.save(user)
        logger.info("Registered user %s", user.id)
        return user

    def find_user_by_login(self, login: str) -> User:
        user = self.users.find_by_login(login)
        if user is None:
            raise UserNotFoundError(f"A user could not be found with a login value of [{login}].")
        return user

    def find_user_by_id(self, user_id: int) -> User:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError(f"A user could not be found with ID [{user_id}].")
        return user

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _equalize_timing(self, password: str) -> None:
        self.hasher.verify(password, self.hasher.dummy_hash())

    def authenticate(self, login: str, password: str, remember: bool = False) -> User:
        """Verify login/password and log the user in. Returns the user."""
        if not login:
            raise LoginRequiredError("The login attribute is required.")
        if not password:
            raise PasswordRequiredError("The password attribute is required.")

        user = self.users.find_by_login(login)
        if user is None:
            self._equalize_timing(password)
            raise UserNotFoundError("A user was not found with the given credentials.")

        self.throttle.check_access(user)

        if not user.password or not self.hasher.verify(password, user.password):
            self.throttle.record_failure(user)
            logger.info("Failed login for user %s", user.id)
            raise InvalidCredentialsError("A user was found but the password did not match.")

        if not user.is_activated:
            raise UserNotActivatedError(f"User [{login}] is not activated.")

        self.throttle.record_success(user)
        self._upgrade_hash(user, password)
        self.login(user, remember)
        return user

    def authenticate_and_remember(self, login: str, password: str) -> User:
        return self.authenticate(login, password, remember=True)

    def _upgrade_hash(self, user: User, password: str) -> None:
        needs_rehash = getattr(self.hasher, "needs_rehash", None)
        if needs_rehash is not None and needs_rehash(user.password):
            user.password = self.hasher.hash(password)
            logger.info("Rehashed password for user %s", user.id)

    def login(self, user: User, remember: bool = False) -> None:
        """Mark user as logged in: stamp last_login and write recall tokens.

        A fresh persist code is minted on every login, which invalidates the
        tokens of any previous login for this user.
        """
        if not user.is_activated:
            raise UserNotActivatedError(f"Cannot login user [{user.id}] as they are not activated.")

        user.last_login = _now_iso()
        if self.session is None and self.cookie is None:
            self.users.save(user)
        else:
            code = self.codes.issue_persist_code(user)
            if self.session is not None:
                token = encode_recall_token(user.id, code, self.config.secret_key, self.config.session_minutes)
                self.session.put(token, self.config.session_minutes)
            if remember and self.cookie is not None:
                self.cookie.forever(encode_recall_token(user.id, code, self.config.secret_key))
        self.user = user
        logger.debug("User %s logged in", user.id)

    def recall_by(self, persist_code: str) -> User | None:
        """Return the user holding persist_code, without a password check.

        Lower assurance than authenticate(): callers must only accept codes that
        arrived inside an unguessable opaque token they issued themselves.
        """
        if not persist_code:
            return None
        return self.users.find_by_persist_code(self.codes.digest(persist_code))

    def check(self) -> User | None:
        """Restore the logged-in user from the session or cookie channel.

        The session is tried first. A channel whose token is forged, stale,
        or belongs to a user that is no longer allowed in is cleared and the
        next channel is tried. Returns None when no channel yields a user.
        """
        if self.user is not None:
            return self.user

        for channel in (self.session, self.cookie):
            if channel is None:
                continue
            token = channel.get()
            if not token:
                continue
            user = self._user_from_token(token)
            if user is None:
                channel.forget()
                continue

            try:
                self.throttle.check_access(user)
            except AccessDeniedError:
                logger.info("Logging out throttled user %s", user.id)
                self.logout(user)
                return None

            self.user = user
            return user
        return None

    def _user_from_token(self, token: str) -> User | None:
        decoded = decode_recall_token(token, self.config.secret_key)
        if decoded is None:
            return None
        user_id, code = decoded
        user = self.recall_by(code)
        if user is None or user.id != user_id or not user.is_activated:
            logger.debug("Rejected recall token for user %s", user_id)
            return None
        return user

    def logout(self, user: User | None = None) -> None:
        """Rotate away the persist code and clear both channels."""
        user = user or self.user
        if user is not None:
            self.codes.clear_persist_code(user)
        self._forget_channels()
        self.user = None

    def _forget_channels(self) -> None:
        if self.session is not None:
            self.session.forget()
        if self.cookie is not None:
            self.cookie.forget()

    # ------------------------------------------------------------------
    # Groups and permissions
    # ------------------------------------------------------------------

    def get_groups(self, user: User) -> list[Group]:
        return self.groups.groups_for_user(user.id)

    def add_group(self, user: User, group: Group) -> None:
        self.groups.add_member(user.id, group.id)

    def remove_group(self, user: User, group: Group) -> None:
        self.groups.remove_member(user.id, group.id)

    def in_group(self, user: User, group: Group) -> bool:
        return self.resolver.in_group(self.get_groups(user), group)

    def get_merged_permissions(self, user: User) -> dict[str, int]:
        return merge_permissions(self.get_groups(user))

    def has_access(self, user: User, permissions: str | Iterable[str], all: bool = True) -> bool:
        return self.resolver.has_access(self.get_groups(user), permissions, all=all)

    def has_any_access(self, user: User, permissions: str | Iterable[str]) -> bool:
        return self.resolver.has_any_access(self.get_groups(user), permissions)
