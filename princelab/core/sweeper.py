"""Periodic eviction of idle users.

Every ``SWEEP_INTERVAL`` seconds the sweeper drops the conversation and rate
state of users idle for longer than ``STALE_THRESHOLD``, bounding memory.
"""

from __future__ import annotations

import asyncio
from time import time

from loguru import logger

from princelab.core.memory import ConversationStore
from princelab.core.rate_limiter import RateLimiter
from princelab.settings import settings


class LifecycleSweeper:
    def __init__(
        self,
        store: ConversationStore,
        limiter: RateLimiter,
        *,
        interval: float | None = None,
        stale_threshold: float | None = None,
    ) -> None:
        self.store = store
        self.limiter = limiter
        self.interval = interval if interval is not None else settings.SWEEP_INTERVAL
        self.stale_threshold = stale_threshold if stale_threshold is not None else settings.STALE_THRESHOLD
        self._task: asyncio.Task | None = None

    def sweep(self, now: float | None = None) -> int:
        """Evict every user idle beyond the threshold; return how many were dropped.

        A user counts as idle only when neither store saw them recently.
        Users with a handler in flight are skipped.
        """
        if now is None:
            now = time()

        evicted = 0
        for user_key in set(self.store.keys()) | set(self.limiter.keys()):
            if self.store.is_busy(user_key):
                continue
            seen = [
                ts
                for ts in (self.store.last_seen(user_key), self.limiter.last_seen(user_key))
                if ts is not None
            ]
            if now - max(seen) > self.stale_threshold:
                self.store.evict(user_key)
                self.limiter.evict(user_key)
                evicted += 1

        if evicted:
            logger.info(f"[SWEEP] evicted {evicted} idle user(s); {len(self.store)} tracked")
        return evicted

    # ------------------------------------------------------------------
    # Background task
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="princelab-sweeper")
        logger.info(f"[SWEEP] started (interval={self.interval}s, stale_after={self.stale_threshold}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[SWEEP] stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("[SWEEP] sweep failed; will retry next interval")
