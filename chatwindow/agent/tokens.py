"""Approximate token estimation for context management."""

import math
from collections.abc import Iterable

from chatwindow.agent.turns import Turn

CHARS_PER_TOKEN = 4  # Cross-model estimate (EN text/code/JSON)
OVERHEAD_RATIO = 0.05  # Safety margin on top of the character estimate
TURN_OVERHEAD = 2  # Per-turn role label cost


def estimate_tokens(text: str | None) -> int:
    """Estimate token count from character count.

    ``ceil(len / 4)`` plus a 5% overhead, itself rounded up. Every budget
    decision in the package is made against this function, so it must stay
    deterministic.
    """
    if not text:
        return 0
    base = math.ceil(len(text) / CHARS_PER_TOKEN)
    return base + math.ceil(base * OVERHEAD_RATIO)


def estimate_turns_tokens(turns: Iterable[Turn]) -> int:
    """Estimate total tokens for a turn list, summary turn included."""
    total = 0
    for turn in turns:
        total += TURN_OVERHEAD
        total += estimate_tokens(turn.content)
    return total
