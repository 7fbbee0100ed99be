"""Tests for auto-compaction feature."""

import pytest

from chatwindow.agent.compactor import CompactionState, Compactor
from chatwindow.agent.tokens import estimate_turns_tokens
from chatwindow.agent.turns import Role, Turn
from chatwindow.config.schema import BudgetConfig
from chatwindow.prompts.compaction import FALLBACK_TAG, LAST_RESORT_TAG


def _budget(max_tokens=400, reserved=50, recent=4, min_recent=2):
    return BudgetConfig(
        max_prompt_tokens=max_tokens,
        reserved_response_tokens=reserved,
        recent_messages_to_keep=recent,
        min_recent_messages_to_keep=min_recent,
    )


def _exchange(count, size, fill="x"):
    """Alternating user/assistant turns, each *size* chars long."""
    turns = []
    for i in range(count):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        turns.append(Turn(role, fill * size))
    return tuple(turns)


def _assert_single_leading_summary(turns):
    assert turns[0].role is Role.SYSTEM
    assert all(t.role is not Role.SYSTEM for t in turns[1:])


# ── should_compact ──────────────────────────────────────────────


class TestShouldCompact:
    def test_below_budget_returns_false(self, provider):
        c = Compactor(provider, _budget())
        assert c.should_compact((Turn.user("hello"),)) is False

    def test_above_budget_returns_true(self, provider):
        c = Compactor(provider, _budget())
        assert c.should_compact(_exchange(10, 200)) is True

    def test_context_counts_toward_budget(self, provider):
        c = Compactor(provider, _budget())
        turns = (Turn.user("hello"),)
        assert c.should_compact(turns, context="c" * 2000) is True


# ── NORMAL ──────────────────────────────────────────────────────


class TestNormal:
    @pytest.mark.asyncio
    async def test_under_budget_is_noop(self, provider):
        c = Compactor(provider, _budget(max_tokens=8192, reserved=512))
        turns = _exchange(4, 20)
        result = await c.compact(turns)
        assert result.turns == turns
        assert result.trail == [CompactionState.NORMAL]
        assert provider.generate_call_count == 0
        assert result.compacted is False

    @pytest.mark.asyncio
    async def test_insufficient_history_left_over_budget(self, provider):
        c = Compactor(provider, _budget(recent=4))
        turns = _exchange(3, 1000)
        result = await c.compact(turns)
        assert result.turns == turns
        assert result.over_budget is True
        assert provider.generate_call_count == 0

    @pytest.mark.asyncio
    async def test_context_alone_triggers_compaction(self, provider):
        c = Compactor(provider, _budget(recent=4))
        turns = _exchange(6, 20)
        result = await c.compact(turns, context="c" * 4000)
        assert result.compacted
        assert len(result.turns) == 5
        _assert_single_leading_summary(result.turns)


# ── COMPACT ─────────────────────────────────────────────────────


class TestCompact:
    @pytest.mark.asyncio
    async def test_summarizes_older_and_keeps_recent(self, provider):
        c = Compactor(provider, _budget(recent=4))
        turns = _exchange(10, 200)
        result = await c.compact(turns)

        assert result.trail == [
            CompactionState.NORMAL,
            CompactionState.COMPACT,
            CompactionState.CHECK_WINDOW,
        ]
        assert len(result.turns) == 5
        assert result.turns[0].content == "SUMMARIZED: Summary of conversation (call 1)"
        assert result.turns[1:] == turns[-4:]
        assert result.window_sizes == [4]
        assert provider.generate_call_count == 1
        assert estimate_turns_tokens(result.turns) <= 350

    @pytest.mark.asyncio
    async def test_summarization_prompt_covers_older_turns(self, provider):
        c = Compactor(provider, _budget(recent=4))
        turns = tuple(
            Turn(Role.USER if i % 2 == 0 else Role.ASSISTANT, f"turn-{i} " + "x" * 200)
            for i in range(10)
        )
        await c.compact(turns)
        prompt = provider.generate_prompts[0]
        assert prompt.startswith("Summarize the conversation so far for an assistant.")
        assert "Conversation to summarize:\n" in prompt
        assert "User: turn-0 " in prompt
        assert "Assistant: turn-5 " in prompt
        assert "turn-6 " not in prompt
        assert "Previous summary:" not in prompt

    @pytest.mark.asyncio
    async def test_previous_summary_merged(self, provider):
        c = Compactor(provider, _budget(recent=4))
        turns = (Turn.summary("old summary"), *_exchange(9, 200))
        result = await c.compact(turns)
        assert "Previous summary: old summary\n\n" in provider.generate_prompts[0]
        _assert_single_leading_summary(result.turns)
        assert result.turns[0].content != "old summary"

    @pytest.mark.asyncio
    async def test_previous_summary_only_needs_no_call(self, provider):
        c = Compactor(provider, _budget(recent=4))
        turns = (Turn.summary("old summary"), *_exchange(4, 20))
        result = await c.compact(turns, context="c" * 4000)
        assert result.turns == turns
        assert provider.generate_call_count == 0
        assert result.compacted

    @pytest.mark.asyncio
    async def test_failure_uses_fallback(self, failing_provider):
        c = Compactor(failing_provider, _budget(recent=4))
        turns = _exchange(10, 200)
        result = await c.compact(turns)

        summary = result.turns[0].content
        assert summary.startswith(FALLBACK_TAG)
        assert f"User: {'x' * 100}..." in summary
        assert f"Assistant: {'x' * 100}..." in summary
        assert "x" * 101 not in summary
        assert result.summarizer_failures == 1

    @pytest.mark.asyncio
    async def test_fallback_keeps_previous_summary(self, failing_provider):
        c = Compactor(failing_provider, _budget(recent=4))
        turns = (Turn.summary("earlier facts"), *_exchange(9, 200))
        result = await c.compact(turns)
        assert result.turns[0].content.startswith(f"{FALLBACK_TAG} earlier facts User: ")

    @pytest.mark.asyncio
    async def test_blank_summary_treated_as_failure(self, provider):
        async def blank(prompt, model=None, temperature=None):
            return "   "

        provider.generate = blank
        c = Compactor(provider, _budget(recent=4))
        result = await c.compact(_exchange(10, 200))
        assert result.turns[0].content.startswith(FALLBACK_TAG)
        assert result.summarizer_failures == 1

    @pytest.mark.asyncio
    async def test_summary_is_stripped(self, provider):
        async def padded(prompt, model=None, temperature=None):
            return "\n  the gist  \n"

        provider.generate = padded
        c = Compactor(provider, _budget(recent=4))
        result = await c.compact(_exchange(10, 200))
        assert result.turns[0].content == "the gist"


# ── SHRINK ──────────────────────────────────────────────────────


class TestShrink:
    @pytest.mark.asyncio
    async def test_window_shrinks_until_fit(self, provider):
        # 200-char turns cost 55 tokens; summary + 4 turns is the first fit
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=2))
        result = await c.compact(_exchange(10, 200))

        assert result.trail[-1] is CompactionState.SHRINK
        assert result.window_sizes == [6, 5, 4]
        assert len(result.turns) == 5
        assert estimate_turns_tokens(result.turns) <= 250
        assert provider.generate_call_count == 3
        assert provider.generate_prompts[1].startswith(
            "Update this summary with additional context."
        )
        _assert_single_leading_summary(result.turns)

    @pytest.mark.asyncio
    async def test_update_prompt_uses_current_summary(self, provider):
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=2))
        await c.compact(_exchange(10, 200))
        assert (
            "Existing summary: SUMMARIZED: Summary of conversation (call 2)"
            in provider.generate_prompts[2]
        )

    @pytest.mark.asyncio
    async def test_window_never_grows(self, provider):
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=3))
        result = await c.compact(_exchange(12, 600))
        sizes = result.window_sizes
        assert all(a >= b for a, b in zip(sizes, sizes[1:]))
        shrink_sizes = sizes[1:-1]  # Last entry belongs to LAST_RESORT
        assert all(s >= 3 for s in shrink_sizes)

    @pytest.mark.asyncio
    async def test_failure_keeps_summary(self, failing_provider):
        c = Compactor(
            failing_provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=2)
        )
        result = await c.compact(_exchange(10, 200))

        assert result.turns[0].content.startswith(FALLBACK_TAG)
        assert CompactionState.SHRINK in result.trail
        assert result.summarizer_failures == result.summarizer_calls

    @pytest.mark.asyncio
    async def test_empty_shrink_range_goes_to_last_resort(self, provider):
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=2, min_recent=2))
        result = await c.compact(_exchange(6, 1400))
        assert CompactionState.LAST_RESORT in result.trail


# ── LAST_RESORT ─────────────────────────────────────────────────


class TestLastResort:
    @pytest.mark.asyncio
    async def test_keeps_two_turns(self, provider):
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=3))
        turns = _exchange(10, 1400, fill="y")
        result = await c.compact(turns)

        assert result.trail[-1] is CompactionState.LAST_RESORT
        assert len(result.turns) == 3
        assert result.turns[1:] == turns[-2:]
        _assert_single_leading_summary(result.turns)
        # COMPACT + shrink 5, 4, 3 + last resort
        assert provider.generate_call_count == 5

    @pytest.mark.asyncio
    async def test_prompt_truncates_dropped_turns(self, provider):
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=3))
        await c.compact(_exchange(10, 1400, fill="y"))
        prompt = provider.generate_prompts[-1]
        assert prompt.startswith("Create an extremely concise summary (max 2-3 sentences)")
        assert "y" * 200 in prompt
        assert "y" * 201 not in prompt

    @pytest.mark.asyncio
    async def test_still_over_budget_is_reported(self, provider):
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=3))
        result = await c.compact(_exchange(10, 1400))
        assert result.over_budget is True
        assert estimate_turns_tokens(result.turns) > 250

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_truncated_summary(self, failing_provider):
        c = Compactor(
            failing_provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=3)
        )
        result = await c.compact(_exchange(10, 1400))

        summary = result.turns[0].content
        assert summary.startswith(f"{LAST_RESORT_TAG} ")
        assert FALLBACK_TAG in summary
        assert len(summary) <= len(LAST_RESORT_TAG) + 1 + Compactor.LAST_RESORT_SUMMARY_CHARS

    @pytest.mark.asyncio
    async def test_nothing_to_drop_keeps_summary(self, provider):
        c = Compactor(provider, _budget(max_tokens=300, reserved=50, recent=6, min_recent=2))
        result = await c.compact(_exchange(10, 1400))
        # Shrinking already reached two turns, so last resort has nothing to drop
        assert result.trail[-1] is CompactionState.LAST_RESORT
        assert provider.generate_call_count == 5
        assert len(result.turns) == 3


# ── helpers ─────────────────────────────────────────────────────


class TestFormatting:
    def test_compaction_input_with_previous(self, provider):
        c = Compactor(provider, _budget())
        text = c._format_compaction_input(
            "prior", (Turn.user("hello"), Turn.assistant("hi there"))
        )
        assert "Previous summary: prior\n\n" in text
        assert text.endswith("Conversation to summarize:\nUser: hello\nAssistant: hi there\n")

    def test_fallback_quotes_first_two_turns(self, provider):
        c = Compactor(provider, _budget())
        turns = (Turn.user("one"), Turn.assistant("two"), Turn.user("three"))
        assert c._fallback_summary("", turns) == f"{FALLBACK_TAG} User: one... Assistant: two..."

    def test_render_lines_limit(self, provider):
        c = Compactor(provider, _budget())
        text = c._render_lines((Turn.user("abcdef"), Turn.assistant("ghijkl")), limit=3)
        assert text == "User: abc\nAssistant: ghi"
