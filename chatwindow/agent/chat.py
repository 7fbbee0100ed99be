"""Chat service: one request/response cycle under a token budget."""

import asyncio

from loguru import logger

from chatwindow.agent.compactor import CompactionResult, Compactor
from chatwindow.agent.prompt import PromptAssembler
from chatwindow.agent.turns import Conversation, Turn
from chatwindow.config.schema import BudgetConfig
from chatwindow.providers.base import ChunkCallback, LLMProvider
from chatwindow.session.manager import SessionManager


class ChatService:
    """
    Manages conversation history and interaction with the LLM.

    For every message it:
    1. Appends the user turn
    2. Compacts the history if it no longer fits the budget
    3. Assembles the prompt (document context trimmed to fit)
    4. Streams the reply, forwarding chunks as they arrive
    5. Appends the assistant turn and notifies the session manager

    Calls must be serialized per instance; there is no internal locking.
    """

    def __init__(
        self,
        provider: LLMProvider,
        budget: BudgetConfig | None = None,
        summarizer: LLMProvider | None = None,
        session_manager: SessionManager | None = None,
        model: str | None = None,
        temperature: float | None = None,
        summary_temperature: float | None = None,
    ):
        self.provider = provider
        self.budget = budget or BudgetConfig()
        self.model = model
        self.temperature = temperature
        self.compactor = Compactor(
            summarizer=summarizer or provider,
            budget=self.budget,
            model=model,
            temperature=summary_temperature,
        )
        self.assembler = PromptAssembler(self.budget)
        self.session_manager = session_manager
        self.current_session_id: str | None = None
        self.messages: Conversation = ()
        self.last_compaction: CompactionResult | None = None

    async def send_message(
        self,
        user_message: str,
        context: str = "",
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        """
        Send a message and stream the response.

        Args:
            user_message: The user's message.
            context: Optional external document context.
            on_chunk: Callback for each chunk of the response.

        Returns:
            The full response text.

        Raises:
            Exception: Whatever the provider raised while streaming. The
                user turn stays in history; no assistant turn is added.
        """
        self.messages = (*self.messages, Turn.user(user_message))

        result = await self.compactor.compact(self.messages, context)
        self.messages = result.turns
        self.last_compaction = result

        prompt = self.assembler.assemble(self.messages, user_message, context)

        chunks: list[str] = []

        def collect(chunk: str) -> None:
            chunks.append(chunk)
            if on_chunk:
                on_chunk(chunk)

        try:
            await self.provider.stream(
                prompt, collect, model=self.model, temperature=self.temperature,
            )
        except asyncio.CancelledError:
            # Keep whatever arrived before the cancel as the reply
            partial = "".join(chunks)
            if partial:
                logger.info(f"Response cancelled; keeping {len(partial)} chars of partial reply")
                self.messages = (*self.messages, Turn.assistant(partial))
                self._save_to_session()
            raise

        response = "".join(chunks)
        self.messages = (*self.messages, Turn.assistant(response))
        self._save_to_session()
        return response

    def get_history(self) -> list[Turn]:
        """Get a copy of the conversation history."""
        return list(self.messages)

    def clear_history(self) -> None:
        """Clear conversation history."""
        self.messages = ()

    def load_session(self, session_id: str) -> None:
        """Load a session's messages."""
        if not self.session_manager:
            return

        session = self.session_manager.switch_session(session_id)
        if session:
            self.current_session_id = session_id
            self.messages = tuple(session.messages)

    def start_new_session(self, context_file: str | None = None) -> None:
        """Start a new session and clear messages."""
        self.messages = ()
        if not self.session_manager:
            return

        session = self.session_manager.create_session(context_file)
        self.current_session_id = session.id

    def load_active_session(self) -> None:
        """Load the active session or create one if none exists."""
        if not self.session_manager:
            return

        session = self.session_manager.get_active_session()
        self.current_session_id = session.id
        self.messages = tuple(session.messages)

    def _save_to_session(self) -> None:
        """Push the current messages to the active session."""
        if not self.session_manager or not self.current_session_id:
            return

        try:
            self.session_manager.update_session(self.current_session_id, list(self.messages))
        except Exception as e:
            logger.warning(f"Failed to update session {self.current_session_id}: {e}")
