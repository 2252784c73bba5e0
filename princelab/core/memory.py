"""Per-user conversation memory.

The module keeps, for every user, a bounded log of turns plus a running
summary of the turns that aged out of the verbatim window, so a model request
carries recent messages word for word and older ones as a compact digest.

Key concepts
------------
1. **Turn** – one immutable role-tagged message.
2. **ConversationRecord** – the turns, the summary and the summary boundary
   (``summarized_count``) of a single user.
3. **ConversationStore** – owns all records, their per-user locks and the
   capacity eviction policy.

Usage (simplified)::

    store = ConversationStore(summarizer=Summarizer(completer))
    async with store.lock(user):
        store.append(user, "user", "Hello")
        messages = await store.build_context(user)

Summarisation is incremental: every aged-out chunk is folded in exactly once,
so a conversation that never exceeds ``RECENT_RAW_LIMIT`` turns never pays for
a summary at all.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from time import time
from typing import Any, AsyncIterator, Dict, List, Literal, Optional

from loguru import logger

from princelab.core.summarizer import Summarizer
from princelab.errors import InvariantViolation
from princelab.settings import settings

Role = Literal["user", "assistant"]
ROLES = ("user", "assistant")

DEFAULT_SYSTEM_PROMPT = "You reply for a WhatsApp bot. Short, clear answers. No markdown."
SUMMARY_PREFIX = "Summary of the earlier conversation:\n"


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str

    def as_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationRecord:
    messages: List[Turn] = field(default_factory=list)
    summary: str = ""
    summarized_count: int = 0
    last_seen: float = 0.0


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ConversationStore:
    """Bounded, incrementally summarised conversation history keyed by user.

    Synchronous methods never await and are therefore atomic on the event
    loop.  ``build_context`` awaits the summariser, so callers hold
    :meth:`lock` for the user across append / build / append to keep a
    second handler for the same user from interleaving.  Different users
    never share a lock.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        *,
        history_limit: int | None = None,
        recent_raw_limit: int | None = None,
        max_tracked_users: int | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        strict: bool | None = None,
    ) -> None:
        self.summarizer = summarizer
        self.history_limit = history_limit if history_limit is not None else settings.HISTORY_LIMIT
        self.recent_raw_limit = (
            recent_raw_limit if recent_raw_limit is not None else settings.RECENT_RAW_LIMIT
        )
        self.max_tracked_users = (
            max_tracked_users if max_tracked_users is not None else settings.MAX_TRACKED_USERS
        )
        self.system_prompt = system_prompt
        self.strict = strict if strict is not None else settings.STRICT_INVARIANTS

        if self.recent_raw_limit > self.history_limit:
            raise ValueError("recent_raw_limit cannot exceed history_limit")

        self._records: Dict[str, ConversationRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._inflight: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def lock(self, user_key: str) -> AsyncIterator[None]:
        """Hold the lock serialising work for *user_key* (created lazily).

        The user counts as in flight from the moment the context is entered,
        including while waiting behind another handler, until the lock is
        released.  In-flight users are never evicted and keep their lock.
        """
        self._inflight[user_key] = self._inflight.get(user_key, 0) + 1
        lock = self._locks.get(user_key)
        if lock is None:
            lock = self._locks[user_key] = asyncio.Lock()
        try:
            async with lock:
                yield
        finally:
            remaining = self._inflight[user_key] - 1
            if remaining:
                self._inflight[user_key] = remaining
            else:
                del self._inflight[user_key]
                # Evicted while in flight: nothing will sweep this lock later
                if user_key not in self._records:
                    self._locks.pop(user_key, None)

    def is_busy(self, user_key: str) -> bool:
        return self._inflight.get(user_key, 0) > 0

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def append(self, user_key: str, role: str, content: str, now: float | None = None) -> Turn:
        """Append a turn for *user_key*, enforcing the history cap."""
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {role!r}")
        if now is None:
            now = time()

        record = self._records.get(user_key)
        if record is None:
            record = self._records[user_key] = ConversationRecord()
            logger.debug(f"[MEM] new record user={user_key}")

        turn = Turn(role=role, content=content)  # type: ignore[arg-type]
        record.messages.append(turn)
        record.last_seen = now

        overflow = len(record.messages) - self.history_limit
        if overflow > 0:
            del record.messages[:overflow]
            # Dropped turns covered by the old boundary are already in the summary
            record.summarized_count = max(0, record.summarized_count - overflow)
            logger.debug(
                f"[MEM] user={user_key} dropped_oldest={overflow} summarized_count={record.summarized_count}"
            )

        self._check(user_key, record)
        self._evict_over_capacity(keep=user_key)
        return turn

    async def build_context(
        self,
        user_key: str,
        system_prompt: str | None = None,
        now: float | None = None,
    ) -> List[Dict[str, str]]:
        """Return the model prompt for *user_key*.

        Layout: system instruction, the running summary (as a system entry,
        only when non-empty), then the most recent turns verbatim.  Turns that
        left the verbatim window since the previous call are folded into the
        summary first.  ``messages`` is never modified here.
        """
        if now is None:
            now = time()
        record = self._records.get(user_key)
        if record is None:
            record = self._records[user_key] = ConversationRecord()
            self._evict_over_capacity(keep=user_key)
        record.last_seen = now

        total = len(record.messages)
        recent = min(self.recent_raw_limit, total)
        older_count = max(0, total - self.recent_raw_limit)

        if older_count > 0 and record.summarized_count < older_count:
            aged_out = record.messages[record.summarized_count:older_count]
            record.summary = await self.summarizer.compact(record.summary, aged_out)
            # Advances even when compaction failed: failed chunks are not retried
            record.summarized_count = older_count
            logger.debug(
                f"[MEM] user={user_key} summarised_turns={len(aged_out)} boundary={older_count}"
            )
        elif older_count == 0 and (record.summary or record.summarized_count):
            logger.debug(f"[MEM] user={user_key} back under raw window, summary discarded")
            record.summary = ""
            record.summarized_count = 0

        self._check(user_key, record)

        context = [{"role": "system", "content": system_prompt or self.system_prompt}]
        if record.summary:
            context.append({"role": "system", "content": SUMMARY_PREFIX + record.summary})
        context.extend(t.as_message() for t in record.messages[total - recent:])
        return context

    def get(self, user_key: str) -> Optional[ConversationRecord]:
        return self._records.get(user_key)

    def history(self, user_key: str) -> List[Dict[str, str]]:
        record = self._records.get(user_key)
        return [t.as_message() for t in record.messages] if record else []

    def evict(self, user_key: str) -> bool:
        """Drop all state for *user_key*.

        The lock goes too unless a handler is in flight (holding or waiting);
        the last of those drops it on release.
        """
        removed = self._records.pop(user_key, None) is not None
        if not self.is_busy(user_key):
            self._locks.pop(user_key, None)
        return removed

    def keys(self) -> List[str]:
        return list(self._records)

    def last_seen(self, user_key: str) -> float | None:
        record = self._records.get(user_key)
        return record.last_seen if record else None

    def stats(self) -> Dict[str, Any]:
        return {
            "users": len(self._records),
            "turns": sum(len(r.messages) for r in self._records.values()),
            "summarised_users": sum(1 for r in self._records.values() if r.summary),
        }

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, user_key: object) -> bool:
        return user_key in self._records

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check(self, user_key: str, record: ConversationRecord) -> None:
        upper = min(len(record.messages), self.history_limit)
        problems = []
        if len(record.messages) > self.history_limit:
            problems.append(f"messages={len(record.messages)} > history_limit={self.history_limit}")
        if not 0 <= record.summarized_count <= upper:
            problems.append(f"summarized_count={record.summarized_count} outside [0, {upper}]")
        if not problems:
            return

        detail = "; ".join(problems)
        if self.strict:
            raise InvariantViolation(detail, user_key=user_key)
        logger.error(f"[MEM] invariant violated for user={user_key}: {detail} (clamping)")
        if len(record.messages) > self.history_limit:
            del record.messages[: len(record.messages) - self.history_limit]
        record.summarized_count = min(max(0, record.summarized_count), len(record.messages))

    def _evict_over_capacity(self, keep: str) -> None:
        while len(self._records) > self.max_tracked_users:
            # Oldest last_seen first; min() keeps insertion order on ties.
            # Users with a handler in flight are left alone.
            victim = min(
                (k for k in self._records if k != keep and not self.is_busy(k)),
                key=lambda k: self._records[k].last_seen,
                default=None,
            )
            if victim is None:
                break
            self.evict(victim)
            logger.debug(f"[MEM] capacity eviction user={victim}")
