"""Login rate limiting over the persisted attempt log.

No counters live in process memory: the decision is a pure function of the
attempts the store returns, so every service replica sees the same state.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import structlog

from familyhub.models.account import LoginAttempt
from familyhub.services.session_store import SessionStore

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_WINDOW_MINUTES = 15


@dataclass(frozen=True)
class RateLimitDecision:
    """Whether another login attempt is allowed right now."""

    allowed: bool
    retry_after_minutes: int = 0


def normalize_identifier(identifier: str) -> str:
    return identifier.strip().lower()


def evaluate_attempts(
    attempts: Sequence[LoginAttempt],
    now: datetime,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    count_successful: bool = True,
) -> RateLimitDecision:
    """Decide whether an identifier is currently blocked.

    Args:
        attempts: Attempts for one identifier, any order
        now: Current time (timezone-aware)
        max_attempts: Counted attempts inside the window that trigger a block
        window_minutes: Trailing window length
        count_successful: Whether successful logins count toward the limit

    Returns:
        RateLimitDecision; when blocked, retry_after_minutes is the time until
        the oldest counted attempt leaves the window, rounded up and at least 1
    """
    window = timedelta(minutes=window_minutes)
    cutoff = now - window

    counted = [
        a for a in attempts
        if a.created_at > cutoff and (count_successful or not a.success)
    ]

    if len(counted) < max_attempts:
        return RateLimitDecision(allowed=True)

    oldest = min(a.created_at for a in counted)
    remaining = (oldest + window - now).total_seconds()
    retry_after = max(1, math.ceil(remaining / 60))

    return RateLimitDecision(allowed=False, retry_after_minutes=retry_after)


class RateLimiter:
    """Records login attempts and answers rate-limit checks."""

    def __init__(
        self,
        store: SessionStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        count_successful: bool = True,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.window_minutes = window_minutes
        self.count_successful = count_successful

    async def record_attempt(
        self, identifier: str, address: Optional[str], success: bool
    ) -> LoginAttempt:
        """Append a login attempt to the log."""
        return await self.store.record_login_attempt(
            normalize_identifier(identifier), address, success
        )

    async def recent_attempts(
        self, identifier: str, window_minutes: Optional[int] = None
    ) -> List[LoginAttempt]:
        """Attempts for the identifier inside the trailing window."""
        return await self.store.get_recent_login_attempts(
            normalize_identifier(identifier),
            window_minutes or self.window_minutes,
        )

    async def check(
        self, identifier: str, now: Optional[datetime] = None
    ) -> RateLimitDecision:
        """Evaluate the limit for an identifier against its recent attempts."""
        now = now or datetime.now(timezone.utc)
        attempts = await self.recent_attempts(identifier)

        decision = evaluate_attempts(
            attempts,
            now,
            max_attempts=self.max_attempts,
            window_minutes=self.window_minutes,
            count_successful=self.count_successful,
        )

        if not decision.allowed:
            logger.warning(
                "login_rate_limited",
                attempts=len(attempts),
                retry_after_minutes=decision.retry_after_minutes,
            )

        return decision
