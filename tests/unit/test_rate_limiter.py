"""
Tests for the per-user sliding-window rate limiter.
"""

import pytest

from princelab.core.rate_limiter import RateDecision, RateLimiter


class TestMinuteWindow:
    """Per-minute admission."""

    def test_third_message_within_a_second_is_rejected(self):
        limiter = RateLimiter(per_minute=2, per_hour=60)
        assert limiter.check_and_record("u1", now=1000.0).admitted
        assert limiter.check_and_record("u1", now=1000.3).admitted
        decision = limiter.check_and_record("u1", now=1000.6)
        assert decision == RateDecision(admitted=False, scope="minute")

    def test_window_slides(self):
        limiter = RateLimiter(per_minute=2, per_hour=60)
        limiter.check_and_record("u1", now=0.0)
        limiter.check_and_record("u1", now=10.0)
        assert not limiter.check_and_record("u1", now=59.0).admitted
        # The hit at t=0 is exactly 60s old and no longer counts
        assert limiter.check_and_record("u1", now=60.0).admitted

    def test_never_more_than_limit_in_any_minute(self):
        limiter = RateLimiter(per_minute=6, per_hour=1000)
        admitted = [t for t in range(0, 300, 3) if limiter.check_and_record("u1", now=float(t)).admitted]
        for start in admitted:
            in_window = [t for t in admitted if start <= t < start + 60]
            assert len(in_window) <= 6

    def test_users_are_independent(self):
        limiter = RateLimiter(per_minute=1, per_hour=60)
        assert limiter.check_and_record("a", now=0.0).admitted
        assert limiter.check_and_record("b", now=0.0).admitted
        assert not limiter.check_and_record("a", now=1.0).admitted


class TestHourWindow:
    """Per-hour admission."""

    def test_hour_limit_rejects_with_hour_scope(self):
        limiter = RateLimiter(per_minute=10, per_hour=3)
        for t in (0.0, 100.0, 200.0):
            assert limiter.check_and_record("u1", now=t).admitted
        decision = limiter.check_and_record("u1", now=300.0)
        assert decision.scope == "hour"
        assert not decision.admitted

    def test_minute_scope_wins_when_both_are_full(self):
        limiter = RateLimiter(per_minute=2, per_hour=2)
        limiter.check_and_record("u1", now=0.0)
        limiter.check_and_record("u1", now=1.0)
        assert limiter.check_and_record("u1", now=2.0).scope == "minute"

    def test_never_more_than_limit_in_any_hour(self):
        limiter = RateLimiter(per_minute=1000, per_hour=60)
        admitted = [t for t in range(0, 4 * 3600, 20) if limiter.check_and_record("u1", now=float(t)).admitted]
        assert len(admitted) > 60
        for start in admitted:
            in_window = [t for t in admitted if start <= t < start + 3600]
            assert len(in_window) <= 60

    def test_hour_window_expires(self):
        limiter = RateLimiter(per_minute=10, per_hour=1)
        limiter.check_and_record("u1", now=0.0)
        assert not limiter.check_and_record("u1", now=3599.0).admitted
        assert limiter.check_and_record("u1", now=3600.0).admitted


class TestRejections:
    """Rejected requests do not consume quota."""

    def test_rejection_is_idempotent(self):
        limiter = RateLimiter(per_minute=1, per_hour=60)
        limiter.check_and_record("u1", now=0.0)
        first = limiter.check_and_record("u1", now=5.0)
        second = limiter.check_and_record("u1", now=5.0)
        assert first == second
        assert not first.admitted

    def test_rejected_hits_are_not_recorded(self):
        limiter = RateLimiter(per_minute=1, per_hour=60)
        limiter.check_and_record("u1", now=0.0)
        for t in range(1, 50):
            limiter.check_and_record("u1", now=float(t))
        # Only the admitted hit at t=0 ever counted
        assert limiter.check_and_record("u1", now=60.0).admitted

    @pytest.mark.parametrize(
        "scope, expected",
        [("minute", 50.0), ("hour", 0.0)],
    )
    def test_retry_after(self, scope, expected):
        limiter = RateLimiter(per_minute=1, per_hour=60)
        limiter.check_and_record("u1", now=0.0)
        assert limiter.retry_after("u1", scope, now=10.0) == pytest.approx(expected)

    def test_retry_after_unknown_user(self):
        assert RateLimiter().retry_after("nobody", "minute", now=0.0) == 0.0


class TestBookkeeping:
    """Eviction and capacity."""

    def test_evict(self):
        limiter = RateLimiter(per_minute=1, per_hour=60)
        limiter.check_and_record("u1", now=0.0)
        assert limiter.evict("u1")
        assert "u1" not in limiter
        assert limiter.check_and_record("u1", now=1.0).admitted
        assert not limiter.evict("ghost")

    def test_capacity_evicts_oldest_last_seen(self):
        limiter = RateLimiter(per_minute=5, per_hour=60, max_tracked_users=2)
        limiter.check_and_record("old", now=0.0)
        limiter.check_and_record("mid", now=5.0)
        limiter.check_and_record("new", now=10.0)
        assert limiter.keys() == ["mid", "new"]

    def test_capacity_ties_evict_first_inserted(self):
        limiter = RateLimiter(per_minute=5, per_hour=60, max_tracked_users=2)
        limiter.check_and_record("a", now=1.0)
        limiter.check_and_record("b", now=1.0)
        limiter.check_and_record("c", now=1.0)
        assert limiter.keys() == ["b", "c"]

    def test_last_seen_tracks_rejections_too(self):
        limiter = RateLimiter(per_minute=1, per_hour=60)
        limiter.check_and_record("u1", now=0.0)
        limiter.check_and_record("u1", now=30.0)
        assert limiter.last_seen("u1") == 30.0
        assert limiter.last_seen("ghost") is None
