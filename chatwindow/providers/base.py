"""Base LLM provider interface."""

from abc import ABC, abstractmethod
from collections.abc import Callable

ChunkCallback = Callable[[str], None]


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    The conversation core consumes two capabilities: ``generate`` (one-shot
    completion, used for compaction summaries) and ``stream`` (incremental
    completion, used for the primary reply). Implementations raise on
    transport errors; callers decide whether a fallback exists.
    """

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key
        self.default_temperature: float = 0.7
        self.default_max_tokens: int | None = None

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """
        Generate a complete response without streaming.

        Args:
            prompt: The full prompt text.
            model: Model identifier (provider-specific).
            temperature: Sampling temperature (uses provider default if None).

        Returns:
            The generated text.
        """
        pass

    @abstractmethod
    async def stream(
        self,
        prompt: str,
        on_chunk: ChunkCallback,
        model: str | None = None,
        temperature: float | None = None,
    ) -> None:
        """
        Stream a response chunk by chunk.

        ``on_chunk`` is invoked for every text fragment in arrival order.
        Cancelling the awaiting task aborts the stream.
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
        pass

    def set_temperature(self, value: float) -> None:
        """Update the default sampling temperature."""
        self.default_temperature = value

    def set_max_tokens(self, value: int | None) -> None:
        """Update the default max tokens."""
        self.default_max_tokens = value
