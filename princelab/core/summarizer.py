"""Incremental conversation summariser.

``Summarizer.compact`` folds turns that aged out of the verbatim window into a
running summary.  The text compaction itself is delegated to the model
completion collaborator; failures never propagate and simply leave the
existing summary in place.
"""

from __future__ import annotations

import re
from typing import Awaitable, Dict, List, Protocol, Sequence

from loguru import logger

from princelab.settings import settings

SUMMARY_SYSTEM_PROMPT = (
    "You maintain the running memory of a WhatsApp conversation between a user and an assistant. "
    "Merge the new messages into the existing summary. Keep names, decisions, preferences and "
    "open questions; drop greetings and small talk. Reply with the updated summary only, as plain "
    "text of at most {max_words} words. No markdown."
)

_THINK_RE = re.compile(r"<think>.*?</think>", flags=re.S)
_WS_RE = re.compile(r"\s+")


class Completer(Protocol):
    def complete(self, system_prompt: str | None, messages: Sequence[Dict[str, str]]) -> Awaitable[str]:
        ...


def strip_thoughts(text: str) -> str:
    """Remove ``<think>`` blocks emitted by reasoning models."""
    return _THINK_RE.sub("", text).strip()


class Summarizer:
    def __init__(
        self,
        completer: Completer,
        *,
        max_words: int | None = None,
        turn_chars: int | None = None,
    ) -> None:
        self.completer = completer
        self.max_words = max_words if max_words is not None else settings.SUMMARY_MAX_WORDS
        self.turn_chars = turn_chars if turn_chars is not None else settings.SUMMARY_TURN_CHARS

    def render(self, turns: Sequence) -> str:
        """Render *turns* as one ``role: content`` line each."""
        lines: List[str] = []
        for turn in turns:
            content = _WS_RE.sub(" ", turn.content).strip()
            if len(content) > self.turn_chars:
                content = content[: self.turn_chars].rstrip() + "…"
            lines.append(f"{turn.role}: {content}")
        return "\n".join(lines)

    async def compact(self, existing_summary: str, new_turns: Sequence) -> str:
        """Return *existing_summary* updated with *new_turns*.

        Returns *existing_summary* untouched when there is nothing to fold in
        or when the collaborator fails.
        """
        if not new_turns:
            return existing_summary

        block = self.render(new_turns)
        prompt = (
            f"Existing summary:\n{existing_summary or '(empty)'}\n\n"
            f"New messages:\n{block}\n\n"
            "Updated summary:"
        )
        try:
            raw = await self.completer.complete(
                SUMMARY_SYSTEM_PROMPT.format(max_words=self.max_words),
                [{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            logger.error(f"Summarizer: completion failed, keeping previous summary: {exc}")
            return existing_summary

        updated = strip_thoughts(raw or "")
        if not updated:
            logger.warning("Summarizer: model returned empty text, keeping previous summary.")
            return existing_summary

        logger.debug(f"[SUM] folded_turns={len(new_turns)} summary_chars={len(updated)}")
        return updated
