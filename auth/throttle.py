"""
auth/throttle.py -- Login throttling: attempt counting, suspension, ban.

State machine per user:

    NORMAL --(attempt_limit failures)--> SUSPENDED(until)
    SUSPENDED --(until passes, noticed on next access)--> NORMAL
    any --ban()--> BANNED --unban()--> NORMAL

Expiry is lazy: there is no timer. A passed suspension is cleared (and the
attempt count reset to 0) the next time the record is read by check_access(),
record_failure(), record_success() or state().

BANNED is administrative. The guard never bans or unbans on its own.

Disabling the guard makes check_access() permit everything and turns
record_failure()/record_success() into no-ops. Stored records are left
untouched, so re-enabling resumes from the previous counts.

Concurrency: each operation is a read-modify-write against ThrottleStore.
Two concurrent failures for the same user can under-count unless the store
serializes writes per user.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

from auth.errors import UserBannedError, UserSuspendedError
from auth.models import ThrottleRecord

if TYPE_CHECKING:
    from auth.interfaces import ThrottleStore
    from auth.models import User

logger = logging.getLogger("gatehouse.auth.throttle")


class ThrottleState(Enum):
    NORMAL = "normal"
    SUSPENDED = "suspended"
    BANNED = "banned"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ThrottleGuard:
    """Per-user failed-login throttle backed by a ThrottleStore.

    Usage:
        guard = ThrottleGuard(store, attempt_limit=5, suspension_minutes=15)
        guard.check_access(user)        # raises if suspended or banned
        guard.record_failure(user)      # after a wrong password
        guard.record_success(user)      # after a correct one
    """

    def __init__(
        self,
        store: ThrottleStore,
        attempt_limit: int = 5,
        suspension_minutes: int = 15,
        enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if attempt_limit < 1:
            raise ValueError("attempt_limit must be at least 1")
        if suspension_minutes < 1:
            raise ValueError("suspension_minutes must be at least 1")
        self._store = store
        self.attempt_limit = attempt_limit
        self.suspension = timedelta(minutes=suspension_minutes)
        self.enabled = enabled
        self._clock = clock

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record(self, user: User) -> ThrottleRecord:
        record = self._store.find_by_user_id(user.id)
        return record if record is not None else ThrottleRecord(user_id=user.id)

    def _expire(self, record: ThrottleRecord, now: datetime) -> bool:
        """Clear a suspension whose window has passed. Returns True if it did."""
        if record.suspended_until is not None and record.suspended_until <= now:
            record.suspended_until = None
            record.attempts = 0
            return True
        return False

    @staticmethod
    def _is_suspended(record: ThrottleRecord, now: datetime) -> bool:
        return record.suspended_until is not None and now < record.suspended_until

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, user: User) -> ThrottleState:
        record = self._store.find_by_user_id(user.id)
        if record is None:
            return ThrottleState.NORMAL
        if record.banned:
            return ThrottleState.BANNED
        now = self._clock()
        if self._expire(record, now):
            self._store.save(record)
        if self._is_suspended(record, now):
            return ThrottleState.SUSPENDED
        return ThrottleState.NORMAL

    def attempts(self, user: User) -> int:
        record = self._store.find_by_user_id(user.id)
        return record.attempts if record is not None else 0

    def check_access(self, user: User) -> None:
        """Raise UserBannedError or UserSuspendedError if the user may not attempt a login."""
        if not self.enabled:
            return
        record = self._store.find_by_user_id(user.id)
        if record is None:
            return
        if record.banned:
            raise UserBannedError(f"User [{user.id}] has been banned.")
        now = self._clock()
        if self._is_suspended(record, now):
            raise UserSuspendedError(
                f"User [{user.id}] has been suspended until {record.suspended_until.isoformat()}.",
                until=record.suspended_until,
            )
        if self._expire(record, now):
            self._store.save(record)
            logger.info("Suspension expired for user %s", user.id)

    # ------------------------------------------------------------------
    # Attempt bookkeeping
    # ------------------------------------------------------------------

    def record_failure(self, user: User) -> None:
        """Count a failed login; suspend once attempt_limit is reached."""
        if not self.enabled:
            return
        record = self._record(user)
        if record.banned:
            return
        now = self._clock()
        self._expire(record, now)
        record.last_attempt_at = now
        if self._is_suspended(record, now):
            # Already maximally throttled; the window is not extended.
            self._store.save(record)
            return
        record.attempts += 1
        if record.attempts >= self.attempt_limit:
            record.suspended_until = now + self.suspension
            record.attempts = 0
            logger.warning(
                "User %s suspended until %s after %d failed attempts",
                user.id,
                record.suspended_until.isoformat(),
                self.attempt_limit,
            )
        self._store.save(record)

    def record_success(self, user: User) -> None:
        """Reset the attempt count. Active suspensions and bans are left alone."""
        if not self.enabled:
            return
        record = self._store.find_by_user_id(user.id)
        if record is None:
            return
        self._expire(record, self._clock())
        record.attempts = 0
        self._store.save(record)

    # ------------------------------------------------------------------
    # Administrative transitions
    # ------------------------------------------------------------------

    def ban(self, user: User) -> None:
        record = self._record(user)
        if not record.banned:
            record.banned = True
            self._store.save(record)
            logger.info("User %s banned", user.id)

    def unban(self, user: User) -> None:
        """Lift a ban. Any suspension and pending attempts are cleared too."""
        record = self._store.find_by_user_id(user.id)
        if record is None:
            return
        record.banned = False
        record.suspended_until = None
        record.attempts = 0
        self._store.save(record)
        logger.info("User %s unbanned", user.id)

    def suspend(self, user: User) -> None:
        """Suspend now for the configured window, regardless of attempt count."""
        record = self._record(user)
        record.suspended_until = self._clock() + self.suspension
        record.attempts = 0
        self._store.save(record)
        logger.info("User %s suspended by administrator", user.id)

    def unsuspend(self, user: User) -> None:
        record = self._store.find_by_user_id(user.id)
        if record is None or record.suspended_until is None:
            return
        record.suspended_until = None
        record.attempts = 0
        self._store.save(record)
