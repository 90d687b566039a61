"""
auth/channels.py -- In-memory SessionChannel / CookieChannel implementations.

Used by the CLI, by tests, and by host applications that manage transport
themselves: after a request, read .value (and .expires_at) and write them to
the real session or cookie jar. auth/dependencies.py has Starlette-backed
channels for FastAPI apps.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

# Roughly what "forever" means for browsers: five years.
FOREVER_MINUTES = 60 * 24 * 365 * 5


class MemorySessionChannel:
    def __init__(self, key: str, value: str | None = None) -> None:
        self.key = key
        self.value = value
        self.expires_at: datetime | None = None

    def get(self) -> str | None:
        if self.expires_at is not None and datetime.now(timezone.utc) >= self.expires_at:
            self.forget()
        return self.value

    def put(self, value: str, minutes: int | None = None) -> None:
        self.value = value
        self.expires_at = datetime.now(timezone.utc) + timedelta(minutes=minutes) if minutes else None

    def forget(self) -> None:
        self.value = None
        self.expires_at = None


class MemoryCookieChannel(MemorySessionChannel):
    def forever(self, value: str) -> None:
        self.put(value, FOREVER_MINUTES)
