"""
auth/factory.py -- Build an AuthSession from Settings.

The only place that turns configuration into objects. Everything downstream
receives its collaborators as constructor arguments.

    services = build_services(get_settings())        # once, at startup
    auth = services.session(session=..., cookie=...)  # per request
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from auth.codes import CredentialCodeManager
from auth.hashing import HashingStrategy, make_hasher
from auth.interfaces import CookieChannel, SessionChannel
from auth.permissions import PermissionResolver
from auth.session import AuthSession, SessionConfig
from auth.store import DEFAULT_DB_URL, SQLGroupStore, SQLThrottleStore, SQLUserStore, create_auth_engine
from auth.throttle import ThrottleGuard
from core.config import Settings

logger = logging.getLogger("gatehouse.auth.factory")


@dataclass
class AuthServices:
    """Process-wide, read-only wiring shared by every request."""

    engine: Engine
    users: SQLUserStore
    groups: SQLGroupStore
    throttles: SQLThrottleStore
    hasher: HashingStrategy
    throttle: ThrottleGuard
    codes: CredentialCodeManager
    resolver: PermissionResolver
    config: SessionConfig
    cookie_key: str = "gatehouse"

    def session(self, session: SessionChannel | None = None, cookie: CookieChannel | None = None) -> AuthSession:
        return AuthSession(
            users=self.users,
            groups=self.groups,
            throttle=self.throttle,
            hasher=self.hasher,
            codes=self.codes,
            config=self.config,
            resolver=self.resolver,
            session=session,
            cookie=cookie,
        )

    def close(self) -> None:
        self.engine.dispose()


def build_services(settings: Settings, engine: Engine | None = None) -> AuthServices:
    """Wire stores, hasher, throttle and code manager from settings.

    Raises HasherUnavailableError if the configured hasher cannot run here --
    deliberately at startup, not on the first login.
    """
    hasher = make_hasher(settings.hasher)
    if engine is None:
        engine = create_auth_engine(settings.database_url or DEFAULT_DB_URL)
    users = SQLUserStore(engine, login_attribute=settings.users.login_attribute)
    groups = SQLGroupStore(engine)
    throttles = SQLThrottleStore(engine)
    throttle = ThrottleGuard(
        throttles,
        attempt_limit=settings.throttling.attempt_limit,
        suspension_minutes=settings.throttling.suspension_time,
        enabled=settings.throttling.enabled,
    )
    logger.info(
        "Auth services ready (hasher=%s, login=%s, throttling=%s)",
        hasher.name,
        settings.users.login_attribute,
        "on" if settings.throttling.enabled else "off",
    )
    return AuthServices(
        engine=engine,
        users=users,
        groups=groups,
        throttles=throttles,
        hasher=hasher,
        throttle=throttle,
        codes=CredentialCodeManager(users, hasher, settings.secret_key),
        resolver=PermissionResolver(),
        config=SessionConfig(secret_key=settings.secret_key, login_attribute=settings.users.login_attribute),
        cookie_key=settings.cookie.key,
    )
