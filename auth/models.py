"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores do the
persistence, components (hashing, codes, permissions, throttle) do the work.

Timestamps are ISO 8601 UTC strings, except ThrottleRecord.suspended_until
which the throttle compares against its clock and therefore keeps as a
timezone-aware datetime.

Layer rule: no imports from other auth/ modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """An identity that can authenticate.

    Either email or username acts as the login identifier, depending on
    Settings.users.login_attribute. password always holds a hash produced by
    the configured HashingStrategy -- never plaintext.

    The three *_code fields hold HMAC digests of credential codes (see
    auth/codes.py), not the codes themselves. None means "no code issued".

    Users own no permissions directly; they come only through groups.
    """

    email: str | None = None
    username: str | None = None
    password: str | None = None
    id: int | None = None
    is_activated: bool = False
    activated_at: str | None = None
    last_login: str | None = None
    persist_code: str | None = None
    activation_code: str | None = None
    reset_password_code: str | None = None
    created_at: str | None = None


@dataclass
class Group:
    """A named bundle of permission grants.

    permissions maps a permission name to 1 (grant) or 0 (explicit deny).
    A name absent from the mapping is unset. Names ending in "*" are
    wildcards (see auth/permissions.py).
    """

    name: str
    permissions: dict[str, int] = field(default_factory=dict)
    id: int | None = None
    created_at: str | None = None


@dataclass
class ThrottleRecord:
    """Per-user failed-login bookkeeping.

    Created lazily on the first failed attempt. banned is administrative
    only; the throttle never sets or clears it on its own.
    """

    user_id: int
    attempts: int = 0
    suspended_until: datetime | None = None
    banned: bool = False
    last_attempt_at: datetime | None = None
    id: int | None = None
