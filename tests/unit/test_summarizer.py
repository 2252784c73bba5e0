"""
Tests for the incremental summariser.
"""

from unittest.mock import AsyncMock

import pytest

from princelab.core.memory import Turn
from princelab.core.summarizer import Summarizer, strip_thoughts
from princelab.errors import CompletionError


class TestCompact:
    @pytest.mark.asyncio
    async def test_no_turns_is_a_noop(self):
        completer = AsyncMock()
        summarizer = Summarizer(completer)
        assert await summarizer.compact("old summary", []) == "old summary"
        completer.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_merges_turns_through_the_model(self):
        completer = AsyncMock()
        completer.complete.return_value = "Ana prefers Friday dinners."
        summarizer = Summarizer(completer, max_words=120)

        result = await summarizer.compact(
            "Ana is planning a dinner.",
            [Turn("user", "Friday works best"), Turn("assistant", "Noted, Friday it is.")],
        )

        assert result == "Ana prefers Friday dinners."
        system_prompt, messages = completer.complete.await_args.args
        assert "120 words" in system_prompt
        assert "names, decisions, preferences and open questions" in system_prompt
        prompt = messages[0]["content"]
        assert messages[0]["role"] == "user"
        assert "Ana is planning a dinner." in prompt
        assert "user: Friday works best\nassistant: Noted, Friday it is." in prompt

    @pytest.mark.asyncio
    async def test_empty_existing_summary_is_marked(self):
        completer = AsyncMock()
        completer.complete.return_value = "new"
        await Summarizer(completer).compact("", [Turn("user", "hi")])
        assert "(empty)" in completer.complete.await_args.args[1][0]["content"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [CompletionError("down"), RuntimeError("boom")])
    async def test_failure_keeps_existing_summary(self, error):
        completer = AsyncMock()
        completer.complete.side_effect = error
        summarizer = Summarizer(completer)
        assert await summarizer.compact("keep me", [Turn("user", "hi")]) == "keep me"

    @pytest.mark.asyncio
    async def test_empty_answer_keeps_existing_summary(self):
        completer = AsyncMock()
        completer.complete.return_value = "<think>hmm</think>  "
        assert await Summarizer(completer).compact("keep me", [Turn("user", "hi")]) == "keep me"

    @pytest.mark.asyncio
    async def test_thoughts_are_stripped(self):
        completer = AsyncMock()
        completer.complete.return_value = "<think>\nlet me see\n</think>\nBob likes tea."
        assert await Summarizer(completer).compact("", [Turn("user", "tea please")]) == "Bob likes tea."


class TestRender:
    def test_collapses_whitespace_and_clips(self):
        summarizer = Summarizer(AsyncMock(), turn_chars=50)
        text = summarizer.render([Turn("user", "a  b\n\nc"), Turn("assistant", "x" * 80)])
        first, second = text.split("\n")
        assert first == "user: a b c"
        assert second == "assistant: " + "x" * 50 + "…"


def test_strip_thoughts_without_tags():
    assert strip_thoughts("  plain  ") == "plain"
