"""Unit tests for login rate limiting over the attempt log."""

from datetime import datetime, timedelta, timezone

from familyhub.models.account import LoginAttempt
from familyhub.services.rate_limiter import RateLimiter, evaluate_attempts

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _attempt(minutes_ago: float, success: bool = False) -> LoginAttempt:
    return LoginAttempt(
        email="parent@example.com",
        ip_address="10.0.0.1",
        success=success,
        created_at=NOW - timedelta(minutes=minutes_ago),
    )


class TestEvaluateAttempts:
    """Tests for the pure rate-limit decision function."""

    def test_allows_below_threshold(self):
        attempts = [_attempt(m) for m in (1, 2, 3, 4)]
        decision = evaluate_attempts(attempts, NOW)
        assert decision.allowed is True
        assert decision.retry_after_minutes == 0

    def test_blocks_at_threshold(self):
        attempts = [_attempt(m) for m in (1, 2, 3, 4, 5)]
        decision = evaluate_attempts(attempts, NOW)
        assert decision.allowed is False
        assert decision.retry_after_minutes > 0

    def test_retry_after_measured_from_oldest_attempt(self):
        # Oldest attempt 10 minutes ago leaves the 15 minute window in 5 minutes.
        attempts = [_attempt(m) for m in (10, 1, 2, 3, 4)]
        decision = evaluate_attempts(attempts, NOW)
        assert decision.retry_after_minutes == 5

    def test_retry_after_rounds_up(self):
        attempts = [_attempt(m) for m in (10.5, 1, 2, 3, 4)]
        decision = evaluate_attempts(attempts, NOW)
        assert decision.retry_after_minutes == 5

    def test_retry_after_is_at_least_one_minute(self):
        attempts = [_attempt(m) for m in (14.99, 1, 2, 3, 4)]
        decision = evaluate_attempts(attempts, NOW)
        assert decision.retry_after_minutes == 1

    def test_attempts_outside_window_are_ignored(self):
        attempts = [_attempt(m) for m in (16, 20, 30, 1, 2)]
        assert evaluate_attempts(attempts, NOW).allowed is True

    def test_successful_attempts_count_by_default(self):
        attempts = [_attempt(m, success=True) for m in (1, 2, 3, 4, 5)]
        assert evaluate_attempts(attempts, NOW).allowed is False

    def test_successful_attempts_can_be_excluded(self):
        attempts = [_attempt(m, success=True) for m in (1, 2, 3)] + [
            _attempt(4),
            _attempt(5),
        ]
        decision = evaluate_attempts(attempts, NOW, count_successful=False)
        assert decision.allowed is True

    def test_custom_threshold_and_window(self):
        attempts = [_attempt(m) for m in (1, 2, 3)]
        decision = evaluate_attempts(attempts, NOW, max_attempts=3, window_minutes=5)
        assert decision.allowed is False
        assert decision.retry_after_minutes == 2


class TestRateLimiter:
    """Tests for RateLimiter against the in-memory store."""

    async def test_record_attempt_normalizes_identifier(self, store):
        limiter = RateLimiter(store)
        await limiter.record_attempt("  Parent@Example.COM ", "1.2.3.4", False)

        assert len(store.login_attempts) == 1
        assert store.login_attempts[0].email == "parent@example.com"
        assert store.login_attempts[0].ip_address == "1.2.3.4"

    async def test_recent_attempts_filters_by_identifier(self, store):
        limiter = RateLimiter(store)
        await limiter.record_attempt("a@example.com", None, False)
        await limiter.record_attempt("b@example.com", None, False)
        await limiter.record_attempt("A@example.com", None, True)

        attempts = await limiter.recent_attempts("a@example.com")
        assert [a.success for a in attempts] == [False, True]

    async def test_check_blocks_after_five_attempts(self, store):
        limiter = RateLimiter(store)
        for _ in range(5):
            await limiter.record_attempt("a@example.com", None, False)

        decision = await limiter.check("a@example.com")
        assert decision.allowed is False
        assert decision.retry_after_minutes == 15

    async def test_check_is_per_identifier(self, store):
        limiter = RateLimiter(store)
        for _ in range(5):
            await limiter.record_attempt("a@example.com", None, False)

        assert (await limiter.check("b@example.com")).allowed is True
