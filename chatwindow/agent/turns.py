"""Conversation turn types."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Speaker of a turn. SYSTEM is reserved for the rolling summary."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") as well as Role members
        object.__setattr__(self, "role", Role(self.role))
        object.__setattr__(self, "content", self.content or "")

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "Turn":
        return cls(Role.ASSISTANT, content)

    @classmethod
    def summary(cls, content: str) -> "Turn":
        return cls(Role.SYSTEM, content)

    @property
    def is_summary(self) -> bool:
        return self.role is Role.SYSTEM

    @property
    def label(self) -> str:
        """Role label used when rendering the turn as a transcript line."""
        return "User" if self.role is Role.USER else "Assistant"

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Turn":
        return cls(Role(data["role"]), data.get("content") or "")


Conversation = tuple[Turn, ...]


def split_summary(turns: Conversation) -> tuple[str, Conversation]:
    """Return (summary text, remaining turns).

    The summary is only recognised at position 0; an empty string means the
    conversation has no summary yet.
    """
    if turns and turns[0].is_summary:
        return turns[0].content, turns[1:]
    return "", turns


def with_summary(summary: str, turns: Conversation) -> Conversation:
    """Prefix *turns* with a summary turn (omitted when *summary* is empty)."""
    if not summary:
        return tuple(turns)
    return (Turn.summary(summary), *turns)
