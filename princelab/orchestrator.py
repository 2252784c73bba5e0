from __future__ import annotations

import asyncio
from dataclasses import dataclass
from time import time
from typing import Awaitable, Optional, Protocol, Set

from loguru import logger

from princelab.core.memory import ConversationStore
from princelab.core.rate_limiter import RateDecision, RateLimiter
from princelab.core.summarizer import Completer
from princelab.errors import CompletionError
from princelab.settings import settings

TRIGGERS = ("pl ", "@princelab")

HELP_TEXT = "Try:\n• pl ask <question>\n• pl plan <what/when/where>"

ASK_PROMPT = "You reply for a WhatsApp bot. Short, clear answers. No markdown."
PLAN_PROMPT = (
    "You help small WhatsApp groups plan simple things (dinners, meetups, movies). "
    "Reply with 3–5 short bullet points. Plain text, no emojis."
)

ASK_FALLBACK = "I couldn't get an answer just now. Try again in a minute."
PLAN_FALLBACK = "I had trouble planning that. Try again shortly."


class Sender(Protocol):
    def send(self, user_key: str, text: str) -> Awaitable[bool]:
        ...


@dataclass(frozen=True)
class Command:
    mode: str  # ask | plan | help
    content: str = ""

    @property
    def system_prompt(self) -> str:
        return PLAN_PROMPT if self.mode == "plan" else ASK_PROMPT

    @property
    def fallback(self) -> str:
        return PLAN_FALLBACK if self.mode == "plan" else ASK_FALLBACK


def parse_command(text: str, *, require_trigger: bool = True) -> Optional[Command]:
    """Map an inbound text to a :class:`Command` (``None`` means ignore it)."""
    text = (text or "").strip()
    lower = text.lower()

    if lower.startswith("pl ask"):
        return Command("ask", text[6:].strip() or "Explain what you can do.")
    if lower.startswith("pl plan"):
        details = text[7:].strip() or "a simple catch-up"
        return Command("plan", f"Plan this for the group: {details}")
    if lower.startswith(TRIGGERS):
        return Command("help")
    if require_trigger or not text:
        return None
    return Command("ask", text)


def rate_limit_notice(decision: RateDecision, retry_after: float) -> str:
    if decision.scope == "minute":
        return f"You're sending messages too fast. Try again in {max(1, round(retry_after))} seconds."
    minutes = max(1, round(retry_after / 60))
    return f"You've hit the hourly limit. Try again in about {minutes} minutes."


class ChatOrchestrator:
    """Compose admission, memory, the model and the sender for one message.

    The class performs no transport I/O itself so it can be unit-tested with
    fakes; the webhook layer calls :meth:`dispatch` and returns immediately.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        store: ConversationStore,
        completer: Completer,
        sender: Sender,
        *,
        require_trigger: bool | None = None,
    ) -> None:
        self.limiter = limiter
        self.store = store
        self.completer = completer
        self.sender = sender
        self.require_trigger = require_trigger if require_trigger is not None else settings.REQUIRE_TRIGGER
        self._tasks: Set[asyncio.Task] = set()

    async def on_message(self, user_key: str, text: str, now: float | None = None) -> Optional[str]:
        """Handle one inbound text; return what was sent back (``None`` if ignored)."""
        if now is None:
            now = time()

        command = parse_command(text, require_trigger=self.require_trigger)
        if command is None:
            logger.debug(f"[BOT] ignoring untriggered message from {user_key}")
            return None

        if command.mode == "help":
            await self.sender.send(user_key, HELP_TEXT)
            return HELP_TEXT

        decision = self.limiter.check_and_record(user_key, now)
        if not decision.admitted:
            notice = rate_limit_notice(decision, self.limiter.retry_after(user_key, decision.scope, now))
            logger.info(f"[BOT] rate limited user={user_key} scope={decision.scope}")
            await self.sender.send(user_key, notice)
            return notice

        async with self.store.lock(user_key):
            self.store.append(user_key, "user", command.content, now)
            context = await self.store.build_context(user_key, command.system_prompt, now)
            try:
                reply = await self.completer.complete(None, context)
            except CompletionError as exc:
                logger.error(f"[BOT] {command.mode} failed for {user_key}: {exc}")
                reply = None
            except Exception:
                logger.exception(f"[BOT] unexpected completion failure for {user_key}")
                reply = None

            if reply is None:
                reply = command.fallback
            else:
                self.store.append(user_key, "assistant", reply, now)

        await self.sender.send(user_key, reply)
        logger.info(f"[BOT] replied to {user_key} mode={command.mode} chars={len(reply)}")
        return reply

    def dispatch(self, user_key: str, text: str, now: float | None = None) -> asyncio.Task:
        """Run :meth:`on_message` as a detached task on the running loop."""
        task = asyncio.create_task(self._safe_on_message(user_key, text, now))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched task (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _safe_on_message(self, user_key: str, text: str, now: float | None) -> None:
        try:
            await self.on_message(user_key, text, now)
        except Exception:
            logger.exception(f"[BOT] handling message from {user_key} failed")
