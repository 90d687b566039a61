"""
auth/interfaces.py -- Narrow collaborator interfaces consumed by the core.

The core never talks to a database, session backend or HTTP response
directly. It depends on these protocols; auth/store.py provides SQLAlchemy
implementations of the stores and auth/channels.py provides in-memory
channels. Host applications may supply their own.

Stores return fresh dataclass instances and save() persists the whole record.
None of the operations are required to be atomic across calls.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Group, ThrottleRecord, User


class UserStore(Protocol):
    login_attribute: str

    def find_by_login(self, login: str) -> User | None: ...

    def find_by_id(self, user_id: int) -> User | None: ...

    def find_by_persist_code(self, digest: str) -> User | None: ...

    def save(self, user: User) -> User:
        """Insert (id is None) or update the user; returns it with id set."""
        ...

    def delete(self, user: User) -> None:
        """Remove the user together with its group memberships and throttle record."""
        ...


class GroupStore(Protocol):
    def find_by_id(self, group_id: int) -> Group | None: ...

    def find_by_name(self, name: str) -> Group | None: ...

    def save(self, group: Group) -> Group: ...

    def groups_for_user(self, user_id: int) -> list[Group]:
        """Return the user's groups in membership order (oldest first)."""
        ...

    def add_member(self, user_id: int, group_id: int) -> None: ...

    def remove_member(self, user_id: int, group_id: int) -> None: ...


class ThrottleStore(Protocol):
    def find_by_user_id(self, user_id: int) -> ThrottleRecord | None: ...

    def save(self, record: ThrottleRecord) -> ThrottleRecord: ...

    def delete_for_user(self, user_id: int) -> None: ...


class SessionChannel(Protocol):
    """Request-scoped keyed slot (server-side session)."""

    key: str

    def get(self) -> str | None: ...

    def put(self, value: str, minutes: int | None = None) -> None: ...

    def forget(self) -> None: ...


class CookieChannel(SessionChannel, Protocol):
    """Client-side keyed slot. forever() sets a long-lived value."""

    def forever(self, value: str) -> None: ...
