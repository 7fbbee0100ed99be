"""Session management for conversation history."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from chatwindow.agent.turns import Role, Turn

DEFAULT_TITLE_PREFIX = "Chat - "


@dataclass
class Session:
    """
    A conversation session.

    Holds the turn list plus the documents attached to the conversation.
    """

    id: str
    title: str
    created_at: datetime = field(default_factory=datetime.now)
    last_active_at: datetime = field(default_factory=datetime.now)
    messages: list[Turn] = field(default_factory=list)
    context_file: str | None = None  # legacy single attachment
    context_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat(),
            "messages": [t.to_dict() for t in self.messages],
            "context_file": self.context_file,
            "context_files": list(self.context_files),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Rebuild a session from exported data, migrating legacy records."""
        context_files = data.get("context_files")
        if context_files is None:
            # Legacy record: carry the single context_file into the list
            context_files = [data["context_file"]] if data.get("context_file") else []

        return cls(
            id=data["id"],
            title=data.get("title") or _default_title(datetime.now()),
            created_at=_parse_ts(data.get("created_at")),
            last_active_at=_parse_ts(data.get("last_active_at")),
            messages=[Turn.from_dict(m) for m in data.get("messages", [])],
            context_file=data.get("context_file"),
            context_files=list(context_files),
        )


def _parse_ts(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if raw:
        try:
            return datetime.fromisoformat(raw)
        except (ValueError, TypeError):
            pass
    return datetime.now()


def _default_title(ts: datetime) -> str:
    """Timestamp title, e.g. ``Chat - Oct 19, 3:04 PM``."""
    hour = ts.hour % 12 or 12
    return f"{DEFAULT_TITLE_PREFIX}{ts:%b} {ts.day}, {hour}:{ts:%M %p}"


def _title_from_message(content: str) -> str:
    """First 40 characters of a message, with an ellipsis when cut."""
    truncated = content[:40].strip()
    return f"{truncated}..." if len(truncated) < len(content) else truncated


class SessionManager:
    """
    Manages conversation sessions and the active-session pointer.

    Sessions live in memory; ``export()`` returns a plain snapshot for
    whatever storage the host application uses, and that snapshot can be
    passed back to the constructor.
    """

    def __init__(self, persisted: dict[str, Any] | None = None):
        self.sessions: dict[str, Session] = {}
        self.active_session_id: str | None = None

        if persisted:
            for session_id, raw in persisted.get("sessions", {}).items():
                self.sessions[session_id] = Session.from_dict({"id": session_id, **raw})
            self.active_session_id = persisted.get("active_session_id")

    # ── public API ──────────────────────────────────────────────

    def create_session(self, context_file: str | None = None) -> Session:
        """
        Create a brand-new session and set it as active.

        Args:
            context_file: Optional document the session starts from.

        Returns:
            The newly created session.
        """
        now = datetime.now()
        session = Session(
            id=self._generate_session_id(now),
            title=_default_title(now),
            created_at=now,
            last_active_at=now,
            context_file=context_file,
            context_files=[context_file] if context_file else [],
        )
        self.sessions[session.id] = session
        self.active_session_id = session.id
        logger.info(f"Created new session {session.id}")
        return session

    def get_active_session(self) -> Session:
        """Get the active session, or create one if none exists."""
        if self.active_session_id and self.active_session_id in self.sessions:
            return self.sessions[self.active_session_id]
        return self.create_session()

    def get_active_session_id(self) -> str | None:
        return self.active_session_id

    def switch_session(self, session_id: str) -> Session | None:
        """Make *session_id* active. Returns None if it does not exist."""
        session = self.sessions.get(session_id)
        if session is None:
            return None
        self.active_session_id = session_id
        session.last_active_at = datetime.now()
        return session

    def get_recent_sessions(self, limit: int = 15) -> list[Session]:
        """Sessions sorted by last activity, most recent first."""
        ordered = sorted(self.sessions.values(), key=lambda s: s.last_active_at, reverse=True)
        return ordered[:limit]

    def update_session(self, session_id: str, messages: list[Turn]) -> None:
        """
        Replace a session's messages.

        Unknown ids are ignored. A session still carrying its timestamp title
        is renamed after its first user message.
        """
        session = self.sessions.get(session_id)
        if session is None:
            return

        session.messages = list(messages)
        session.last_active_at = datetime.now()

        if session.title.startswith(DEFAULT_TITLE_PREFIX) and messages:
            first_user = next((m for m in messages if m.role is Role.USER), None)
            if first_user:
                session.title = _title_from_message(first_user.content)

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if deleted, False if not found.
        """
        removed = self.sessions.pop(session_id, None)
        if self.active_session_id == session_id:
            self.active_session_id = None
        return removed is not None

    def add_context_files(self, session_id: str, paths: list[str]) -> None:
        """Attach documents to a session, skipping ones already attached."""
        session = self.sessions.get(session_id)
        if session is None:
            return
        for path in paths:
            if path not in session.context_files:
                session.context_files.append(path)
        session.last_active_at = datetime.now()

    def remove_context_file(self, session_id: str, path: str) -> None:
        session = self.sessions.get(session_id)
        if session is None:
            return
        session.context_files = [p for p in session.context_files if p != path]
        session.last_active_at = datetime.now()

    def rename_context_file(self, old_path: str, new_path: str) -> None:
        """Follow a document rename in every session that attached it."""
        for session in self.sessions.values():
            session.context_files = [
                new_path if p == old_path else p for p in session.context_files
            ]

    def export(self) -> dict[str, Any]:
        """Snapshot of all sessions and the active pointer."""
        return {
            "sessions": {sid: s.to_dict() for sid, s in self.sessions.items()},
            "active_session_id": self.active_session_id,
        }

    # ── internal helpers ────────────────────────────────────────

    @staticmethod
    def _generate_session_id(now: datetime) -> str:
        return f"session_{now:%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:6]}"
