"""Prompt assembly under a token budget."""

from loguru import logger

from chatwindow.agent.tokens import CHARS_PER_TOKEN, estimate_tokens
from chatwindow.agent.turns import Conversation, Role, split_summary
from chatwindow.config.schema import BudgetConfig
from chatwindow.prompts.chat import (
    ASSISTANT_CUE,
    HISTORY_FOOTER,
    HISTORY_HEADER,
    HISTORY_LINE,
    SUMMARY_LINE,
    USER_LINE,
    render_document,
)


class PromptAssembler:
    """
    Builds the literal prompt string sent to the LLM.

    Combines, in fixed order, the external document (trimmed to whatever
    budget the conversation leaves), the running summary, the verbatim
    history and the current user message followed by the assistant cue.
    Every fragment is measured exactly as it is rendered.
    """

    SHRINK_FACTOR = 0.9  # Per-iteration shrink while re-measuring trimmed context

    def __init__(self, budget: BudgetConfig):
        self.budget = budget

    @property
    def context_overhead(self) -> int:
        """Tokens taken by the document wrapper with an empty body."""
        return estimate_tokens(render_document(""))

    def assemble(self, turns: Conversation, user_message: str, context: str = "") -> str:
        """
        Build the prompt for one request.

        Args:
            turns: Conversation so far. May already end with the in-flight
                user turn; it is then left out of the history section.
            user_message: The current user message.
            context: External document text (trimmed to fit).

        Returns:
            The complete prompt text.
        """
        summary, history = self._split_history(turns, user_message)

        messages_tokens = self.estimate_messages_tokens(summary, history, user_message)
        remaining = self.budget.effective_budget - messages_tokens
        trimmed = self.trim_context(context, remaining)

        parts = []
        if trimmed:
            parts.append(render_document(trimmed))
        if summary:
            parts.append(SUMMARY_LINE.format(summary=summary))
        if history:
            parts.append(HISTORY_HEADER)
            parts.extend(
                HISTORY_LINE.format(label=t.label, content=t.content) for t in history
            )
            parts.append(HISTORY_FOOTER)
        parts.append(USER_LINE.format(message=user_message))
        parts.append(ASSISTANT_CUE)

        return "".join(parts)

    def estimate_messages_tokens(
        self, summary: str, history: Conversation, user_message: str
    ) -> int:
        """Estimate every non-document fragment of the prompt."""
        total = 0
        if summary:
            total += estimate_tokens(SUMMARY_LINE.format(summary=summary))
        if history:
            total += estimate_tokens(HISTORY_HEADER)
            for turn in history:
                total += estimate_tokens(
                    HISTORY_LINE.format(label=turn.label, content=turn.content)
                )
            total += estimate_tokens(HISTORY_FOOTER)
        total += estimate_tokens(USER_LINE.format(message=user_message))
        total += estimate_tokens(ASSISTANT_CUE)
        return total

    def trim_context(self, context: str, remaining_budget: int) -> str:
        """Cut *context* so that it plus its wrapper fits *remaining_budget*.

        Returns an empty string when there is no room beyond the wrapper.
        """
        if not context or not context.strip():
            return ""

        overhead = self.context_overhead
        if remaining_budget <= overhead:
            logger.debug(
                f"No room for context: {remaining_budget} tokens left, "
                f"wrapper needs {overhead}"
            )
            return ""

        max_chars = (remaining_budget - overhead) * CHARS_PER_TOKEN
        trimmed = context[:max_chars]
        while trimmed and estimate_tokens(trimmed) + overhead > remaining_budget:
            trimmed = trimmed[:int(len(trimmed) * self.SHRINK_FACTOR)]

        if len(trimmed) < len(context):
            logger.debug(f"Context trimmed from {len(context)} to {len(trimmed)} chars")
        return trimmed

    @staticmethod
    def _split_history(turns: Conversation, user_message: str) -> tuple[str, Conversation]:
        """Separate the summary and drop the in-flight user turn from history."""
        summary, history = split_summary(tuple(turns))
        if history and history[-1].role is Role.USER and history[-1].content == user_message:
            history = history[:-1]
        # A stray system turn past position 0 is never rendered as dialogue
        history = tuple(t for t in history if not t.is_summary)
        return summary, history
