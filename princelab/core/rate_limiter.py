"""In-memory rate-limiter (per user).

The helper keeps two deques of timestamps for each *user_key* and rejects
requests that would exceed *PER_MIN_LIMIT* within a rolling 60-second window
or *PER_HOUR_LIMIT* within a rolling hour.  Only admitted requests consume
quota, so retrying a rejected request yields the same decision.  The state
lives in a single process which is all the webhook server needs.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from time import time
from typing import Deque, Dict, List, Literal, Optional

from loguru import logger

from princelab.settings import settings

MINUTE_SECONDS: int = 60
HOUR_SECONDS: int = 3600

Scope = Literal["minute", "hour"]


@dataclass(frozen=True)
class RateDecision:
    admitted: bool
    scope: Optional[Scope] = None


@dataclass
class RateRecord:
    minute_hits: Deque[float] = field(default_factory=deque)
    hour_hits: Deque[float] = field(default_factory=deque)
    last_seen: float = 0.0


def _prune(q: Deque[float], now: float, window: int) -> None:
    # Drop expired timestamps
    expire_before = now - window
    while q and q[0] <= expire_before:
        q.popleft()


class RateLimiter:
    """Sliding-window limiter keyed by user.

    All methods are synchronous and never await, so on a single event loop a
    check-and-record is atomic with respect to every other coroutine.
    """

    def __init__(
        self,
        *,
        per_minute: int | None = None,
        per_hour: int | None = None,
        max_tracked_users: int | None = None,
    ) -> None:
        self.per_minute = per_minute if per_minute is not None else settings.PER_MIN_LIMIT
        self.per_hour = per_hour if per_hour is not None else settings.PER_HOUR_LIMIT
        self.max_tracked_users = (
            max_tracked_users if max_tracked_users is not None else settings.MAX_TRACKED_USERS
        )
        self._records: Dict[str, RateRecord] = {}

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def check_and_record(self, user_key: str, now: float | None = None) -> RateDecision:
        """Return whether *user_key* may trigger a model call at *now*.

        O(1) amortised time: expired timestamps are popped from the left of
        each deque before the length checks.
        """
        if now is None:
            now = time()

        record = self._records.get(user_key)
        if record is None:
            record = self._records[user_key] = RateRecord()
        record.last_seen = now

        _prune(record.minute_hits, now, MINUTE_SECONDS)
        _prune(record.hour_hits, now, HOUR_SECONDS)

        if len(record.minute_hits) >= self.per_minute:
            logger.debug(f"[RATE] user={user_key} rejected scope=minute")
            return RateDecision(admitted=False, scope="minute")
        if len(record.hour_hits) >= self.per_hour:
            logger.debug(f"[RATE] user={user_key} rejected scope=hour")
            return RateDecision(admitted=False, scope="hour")

        record.minute_hits.append(now)
        record.hour_hits.append(now)
        self._evict_over_capacity(keep=user_key)
        return RateDecision(admitted=True)

    def retry_after(self, user_key: str, scope: Scope, now: float | None = None) -> float:
        """Seconds until the *scope* window of *user_key* frees a slot (0 if it has one)."""
        if now is None:
            now = time()
        record = self._records.get(user_key)
        if record is None:
            return 0.0
        if scope == "minute":
            hits, window, limit = record.minute_hits, MINUTE_SECONDS, self.per_minute
        else:
            hits, window, limit = record.hour_hits, HOUR_SECONDS, self.per_hour
        _prune(hits, now, window)
        if len(hits) < limit:
            return 0.0
        # The slot frees when the hit that keeps us at the limit ages out
        return max(0.0, hits[len(hits) - limit] + window - now)

    def evict(self, user_key: str) -> bool:
        return self._records.pop(user_key, None) is not None

    def keys(self) -> List[str]:
        return list(self._records)

    def last_seen(self, user_key: str) -> float | None:
        record = self._records.get(user_key)
        return record.last_seen if record else None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, user_key: object) -> bool:
        return user_key in self._records

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evict_over_capacity(self, keep: str) -> None:
        while len(self._records) > self.max_tracked_users:
            # min() returns the first minimum, i.e. the earliest inserted on ties
            victim = min(
                (k for k in self._records if k != keep),
                key=lambda k: self._records[k].last_seen,
                default=None,
            )
            if victim is None:
                break
            del self._records[victim]
            logger.debug(f"[RATE] capacity eviction user={victim}")
