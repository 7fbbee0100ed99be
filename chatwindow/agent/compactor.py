"""Auto-compaction engine for conversation history."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from chatwindow.agent.tokens import estimate_tokens, estimate_turns_tokens
from chatwindow.agent.turns import Conversation, split_summary, with_summary
from chatwindow.config.schema import BudgetConfig
from chatwindow.prompts.compaction import (
    COMPACTION_PROMPT,
    CONVERSATION_SECTION,
    FALLBACK_TAG,
    LAST_RESORT_PROMPT,
    LAST_RESORT_TAG,
    PREVIOUS_SUMMARY_SECTION,
    UPDATE_SUMMARY_PROMPT,
)
from chatwindow.providers.base import LLMProvider


class CompactionState(str, Enum):
    """States of a single compaction pass."""

    NORMAL = "normal"  # Measure; decide whether anything needs doing
    COMPACT = "compact"  # Fold everything older than the recent window into the summary
    CHECK_WINDOW = "check_window"  # Re-measure summary + recent window
    SHRINK = "shrink"  # Shrink the window one turn at a time
    LAST_RESORT = "last_resort"  # Keep at most two turns and an ultra-short summary
    DONE = "done"


@dataclass
class CompactionResult:
    """Outcome of a compaction pass.

    ``turns`` is replaced wholesale by every state transition, never patched
    in place. ``window_sizes`` records the verbatim window after each
    rewrite, in order.
    """

    turns: Conversation
    context_tokens: int = 0
    trail: list[CompactionState] = field(default_factory=list)
    window_sizes: list[int] = field(default_factory=list)
    summarizer_calls: int = 0
    summarizer_failures: int = 0
    over_budget: bool = False

    @property
    def compacted(self) -> bool:
        return CompactionState.COMPACT in self.trail


class Compactor:
    """Keeps a conversation under the effective token budget.

    Older turns are folded into a single running summary (always turn 0)
    while the most recent turns stay verbatim. When summary plus window is
    still too large the window shrinks, and as a last resort only one or two
    turns survive next to an ultra-concise summary. A failing summarizer
    degrades the summary to deterministic text; it never fails the pass.
    """

    SUMMARY_TEMPERATURE = 0.3
    FALLBACK_TURNS = 2  # Turns quoted in a fallback summary
    FALLBACK_CHARS = 100  # Per quoted turn
    LAST_RESORT_KEEP = 2
    LAST_RESORT_TURN_CHARS = 200
    LAST_RESORT_SUMMARY_CHARS = 150

    def __init__(
        self,
        summarizer: LLMProvider,
        budget: BudgetConfig,
        model: str | None = None,
        temperature: float | None = None,
    ):
        self.summarizer = summarizer
        self.budget = budget
        self.model = model
        self.temperature = temperature if temperature is not None else self.SUMMARY_TEMPERATURE

    def should_compact(self, turns: Conversation, context: str = "") -> bool:
        """Check if turns plus external context exceed the effective budget."""
        total = estimate_turns_tokens(turns) + estimate_tokens(context)
        return total > self.budget.effective_budget

    async def compact(self, turns: Conversation, context: str = "") -> CompactionResult:
        """Run one compaction pass and return the rewritten conversation."""
        result = CompactionResult(turns=tuple(turns), context_tokens=estimate_tokens(context))
        handlers: dict[CompactionState, Callable[[CompactionResult], Awaitable[CompactionState]]] = {
            CompactionState.NORMAL: self._normal,
            CompactionState.COMPACT: self._compact,
            CompactionState.CHECK_WINDOW: self._check_window,
            CompactionState.SHRINK: self._shrink,
            CompactionState.LAST_RESORT: self._last_resort,
        }

        state = CompactionState.NORMAL
        while state is not CompactionState.DONE:
            result.trail.append(state)
            state = await handlers[state](result)

        return result

    # ── transitions ─────────────────────────────────────────────

    async def _normal(self, result: CompactionResult) -> CompactionState:
        """Under budget → DONE; over budget with enough history → COMPACT."""
        budget = self.budget.effective_budget
        total = estimate_turns_tokens(result.turns) + result.context_tokens
        logger.debug(f"Conversation estimate: {total} tokens (budget {budget})")

        if total <= budget:
            return CompactionState.DONE

        keep = self.budget.recent_messages_to_keep
        if len(result.turns) <= keep:
            logger.warning(
                f"Compaction skipped: {len(result.turns)} messages is not more than "
                f"the recent window ({keep}); proceeding at {total}/{budget} tokens"
            )
            result.over_budget = True
            return CompactionState.DONE

        return CompactionState.COMPACT

    async def _compact(self, result: CompactionResult) -> CompactionState:
        """Fold everything older than the recent window into the summary."""
        keep = self.budget.recent_messages_to_keep
        recent = result.turns[-keep:]
        older = result.turns[:-keep]

        previous = next((t.content for t in older if t.is_summary), "")
        to_summarize = tuple(t for t in older if not t.is_summary)

        if not to_summarize and previous:
            summary = previous
        else:
            summary = await self._summarize(
                result, self._format_compaction_input(previous, to_summarize)
            )
            if summary is None:
                summary = self._fallback_summary(previous, to_summarize)

        result.turns = with_summary(summary, recent)
        result.window_sizes.append(len(recent))
        logger.info(
            f"Compaction triggered: compacted {len(to_summarize)} messages into summary "
            f"({len(summary)} chars), keeping {len(recent)} recent"
        )
        return CompactionState.CHECK_WINDOW

    async def _check_window(self, result: CompactionResult) -> CompactionState:
        """Messages-only re-measure after COMPACT."""
        if estimate_turns_tokens(result.turns) > self.budget.effective_budget:
            return CompactionState.SHRINK
        return CompactionState.DONE

    async def _shrink(self, result: CompactionResult) -> CompactionState:
        """Shrink the verbatim window until it fits or the floor is reached."""
        budget = self.budget.effective_budget
        start = self.budget.recent_messages_to_keep - 1
        floor = self.budget.min_recent_messages_to_keep

        for keep_n in range(start, floor - 1, -1):
            summary, rest = split_summary(result.turns)
            kept = rest[-keep_n:]
            dropped = rest[:-keep_n]

            if dropped:
                updated = await self._summarize(
                    result,
                    UPDATE_SUMMARY_PROMPT.format(
                        summary=summary, messages=self._render_lines(dropped)
                    ),
                )
                if updated is not None:
                    summary = updated

            result.turns = with_summary(summary, kept)
            result.window_sizes.append(len(kept))

            if estimate_turns_tokens(result.turns) <= budget:
                logger.info(f"Recent window shrunk to {len(kept)} messages")
                return CompactionState.DONE

        return CompactionState.LAST_RESORT

    async def _last_resort(self, result: CompactionResult) -> CompactionState:
        """Keep at most two turns and ask for a two-to-three sentence summary."""
        summary, rest = split_summary(result.turns)
        cut = len(rest) - min(self.LAST_RESORT_KEEP, len(rest))
        kept = rest[cut:]
        dropped = rest[:cut]

        if dropped:
            final = await self._summarize(
                result,
                LAST_RESORT_PROMPT.format(
                    summary=summary,
                    messages=self._render_lines(dropped, limit=self.LAST_RESORT_TURN_CHARS),
                ),
            )
            if final is None:
                final = f"{LAST_RESORT_TAG} {summary[:self.LAST_RESORT_SUMMARY_CHARS]}"
            summary = final

        result.turns = with_summary(summary, kept)
        result.window_sizes.append(len(kept))

        total = estimate_turns_tokens(result.turns)
        budget = self.budget.effective_budget
        if total > budget:
            result.over_budget = True
            logger.warning(
                f"Conversation still over budget after last-resort compaction "
                f"({total}/{budget} tokens); a single message may exceed the budget"
            )
        else:
            logger.info(f"Last-resort compaction kept {len(kept)} messages")
        return CompactionState.DONE

    # ── helpers ─────────────────────────────────────────────────

    async def _summarize(self, result: CompactionResult, prompt: str) -> str | None:
        """Call the summarizer once. Returns None on error or empty output."""
        result.summarizer_calls += 1
        try:
            summary = await self.summarizer.generate(
                prompt, model=self.model, temperature=self.temperature,
            )
        except Exception as e:
            result.summarizer_failures += 1
            logger.warning(f"Summarization failed (LLM error): {e}")
            return None

        summary = (summary or "").strip()
        if not summary:
            result.summarizer_failures += 1
            logger.warning("Summarization failed: empty summary from LLM")
            return None
        return summary

    def _format_compaction_input(self, previous: str, turns: Conversation) -> str:
        """Build the summarization instruction for COMPACT."""
        parts = [COMPACTION_PROMPT]
        if previous:
            parts.append(PREVIOUS_SUMMARY_SECTION.format(summary=previous))
        if turns:
            parts.append(CONVERSATION_SECTION)
            parts.extend(f"{t.label}: {t.content}\n" for t in turns)
        return "".join(parts)

    def _fallback_summary(self, previous: str, turns: Conversation) -> str:
        """Deterministic summary used when the summarizer fails during COMPACT."""
        quoted = " ".join(
            f"{t.label}: {t.content[:self.FALLBACK_CHARS]}..."
            for t in turns[:self.FALLBACK_TURNS]
        )
        prefix = f"{previous} " if previous else ""
        return f"{FALLBACK_TAG} {prefix}{quoted}"

    @staticmethod
    def _render_lines(turns: Conversation, limit: int | None = None) -> str:
        """Render turns as ``Role: content`` lines, optionally truncated."""
        return "\n".join(
            f"{t.label}: {t.content if limit is None else t.content[:limit]}"
            for t in turns
        )
