"""
tests/test_throttle.py -- Unit tests for the ThrottleGuard state machine.

Uses the FakeClock fixture from conftest.py so suspension windows can be
crossed without sleeping.

Covers:
  - 5 failures suspend for 15 minutes; 6th check_access fails
  - Lazy expiry resets state to NORMAL with 0 attempts
  - Failures during an active suspension do not extend it
  - Ban / unban are administrative and independent of counts
  - record_success resets the count but not a suspension
  - Disabled guard permits everything and preserves stored counts
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from auth.errors import UserBannedError, UserSuspendedError
from auth.throttle import ThrottleGuard, ThrottleState


def _fail(guard: ThrottleGuard, user, times: int) -> None:
    for _ in range(times):
        guard.record_failure(user)


class TestSuspension:
    def test_below_limit_is_normal(self, throttle, make_user) -> None:
        user = make_user()
        _fail(throttle, user, 4)
        throttle.check_access(user)
        assert throttle.state(user) is ThrottleState.NORMAL
        assert throttle.attempts(user) == 4

    def test_limit_reached_suspends(self, throttle, make_user, clock) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        assert throttle.state(user) is ThrottleState.SUSPENDED
        assert throttle.attempts(user) == 0
        with pytest.raises(UserSuspendedError) as info:
            throttle.check_access(user)
        assert info.value.until == clock.now + timedelta(minutes=15)

    def test_still_suspended_just_before_expiry(self, throttle, make_user, clock) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        clock.advance(minutes=14, seconds=59)
        with pytest.raises(UserSuspendedError):
            throttle.check_access(user)

    def test_expiry_restores_normal(self, throttle, make_user, clock, throttles) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        clock.advance(minutes=15)
        throttle.check_access(user)
        record = throttles.find_by_user_id(user.id)
        assert record.suspended_until is None
        assert record.attempts == 0
        assert throttle.state(user) is ThrottleState.NORMAL

    def test_failure_after_expiry_starts_fresh(self, throttle, make_user, clock) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        clock.advance(minutes=20)
        throttle.record_failure(user)
        assert throttle.attempts(user) == 1
        assert throttle.state(user) is ThrottleState.NORMAL

    def test_failure_during_suspension_does_not_extend(self, throttle, make_user, clock, throttles) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        until = throttles.find_by_user_id(user.id).suspended_until
        clock.advance(minutes=5)
        _fail(throttle, user, 5)
        record = throttles.find_by_user_id(user.id)
        assert record.suspended_until == until
        assert record.last_attempt_at == clock.now

    def test_custom_limits(self, throttles, make_user, clock) -> None:
        guard = ThrottleGuard(throttles, attempt_limit=2, suspension_minutes=1, clock=clock)
        user = make_user()
        _fail(guard, user, 2)
        assert guard.state(user) is ThrottleState.SUSPENDED
        clock.advance(minutes=1)
        assert guard.state(user) is ThrottleState.NORMAL

    @pytest.mark.parametrize("kwargs", [{"attempt_limit": 0}, {"suspension_minutes": 0}])
    def test_invalid_configuration(self, throttles, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            ThrottleGuard(throttles, **kwargs)


class TestRecordSuccess:
    def test_resets_attempts(self, throttle, make_user) -> None:
        user = make_user()
        _fail(throttle, user, 3)
        throttle.record_success(user)
        assert throttle.attempts(user) == 0

    def test_no_record_is_noop(self, throttle, make_user, throttles) -> None:
        user = make_user()
        throttle.record_success(user)
        assert throttles.find_by_user_id(user.id) is None

    def test_does_not_clear_active_suspension(self, throttle, make_user) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        throttle.record_success(user)
        assert throttle.state(user) is ThrottleState.SUSPENDED

    def test_clears_expired_suspension(self, throttle, make_user, clock, throttles) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        clock.advance(minutes=16)
        throttle.record_success(user)
        assert throttles.find_by_user_id(user.id).suspended_until is None


class TestBan:
    def test_banned_user_denied(self, throttle, make_user) -> None:
        user = make_user()
        throttle.ban(user)
        assert throttle.state(user) is ThrottleState.BANNED
        with pytest.raises(UserBannedError):
            throttle.check_access(user)

    def test_ban_outranks_suspension(self, throttle, make_user) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        throttle.ban(user)
        with pytest.raises(UserBannedError):
            throttle.check_access(user)

    def test_ban_never_expires(self, throttle, make_user, clock) -> None:
        user = make_user()
        throttle.ban(user)
        clock.advance(days=3650)
        with pytest.raises(UserBannedError):
            throttle.check_access(user)

    def test_failures_while_banned_are_ignored(self, throttle, make_user) -> None:
        user = make_user()
        throttle.ban(user)
        _fail(throttle, user, 10)
        assert throttle.attempts(user) == 0
        assert throttle.state(user) is ThrottleState.BANNED

    def test_unban_restores_normal(self, throttle, make_user) -> None:
        user = make_user()
        _fail(throttle, user, 5)
        throttle.ban(user)
        throttle.unban(user)
        throttle.check_access(user)
        assert throttle.state(user) is ThrottleState.NORMAL

    def test_unban_without_record_is_noop(self, throttle, make_user, throttles) -> None:
        user = make_user()
        throttle.unban(user)
        assert throttles.find_by_user_id(user.id) is None


class TestAdministrativeSuspension:
    def test_suspend_and_unsuspend(self, throttle, make_user) -> None:
        user = make_user()
        throttle.suspend(user)
        with pytest.raises(UserSuspendedError):
            throttle.check_access(user)
        throttle.unsuspend(user)
        throttle.check_access(user)
        assert throttle.state(user) is ThrottleState.NORMAL


class TestDisabled:
    def test_disabled_permits_suspended_and_banned(self, throttle, make_user) -> None:
        suspended, banned = make_user("s@example.com"), make_user("b@example.com")
        _fail(throttle, suspended, 5)
        throttle.ban(banned)
        throttle.disable()
        throttle.check_access(suspended)
        throttle.check_access(banned)

    def test_disabled_does_not_count(self, throttle, make_user) -> None:
        user = make_user()
        throttle.disable()
        _fail(throttle, user, 10)
        assert throttle.attempts(user) == 0

    def test_reenable_resumes_prior_counts(self, throttle, make_user) -> None:
        user = make_user()
        _fail(throttle, user, 3)
        throttle.disable()
        throttle.record_success(user)
        throttle.enable()
        assert throttle.attempts(user) == 3
        _fail(throttle, user, 2)
        assert throttle.state(user) is ThrottleState.SUSPENDED
