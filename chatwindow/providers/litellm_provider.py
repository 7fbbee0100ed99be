"""LiteLLM provider implementation for multi-provider support."""

import os
from typing import Any

import litellm
from litellm import acompletion

from chatwindow.config.schema import LLMConfig
from chatwindow.providers.base import ChunkCallback, LLMProvider


class LiteLLMProvider(LLMProvider):
    """
    LLM provider using LiteLLM for multi-provider support.

    Works with local Ollama / LM Studio servers as well as hosted
    Anthropic, OpenAI and Gemini models. The prompt is sent as a single
    user message; errors from LiteLLM propagate to the caller.
    """

    def __init__(
        self,
        api_key: str | None = None,
        default_model: str = "ollama/gemma3n:e2b",
        api_base: str | None = None,
    ):
        super().__init__(api_key)
        self.default_model = default_model
        self.api_base = api_base

        # Configure LiteLLM env vars based on provider
        if api_key:
            if "anthropic" in default_model:
                os.environ.setdefault("ANTHROPIC_API_KEY", api_key)
            elif "openai" in default_model or "gpt" in default_model:
                os.environ.setdefault("OPENAI_API_KEY", api_key)
            elif "gemini" in default_model.lower():
                os.environ.setdefault("GEMINI_API_KEY", api_key)

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LiteLLMProvider":
        """Build a provider from the ``llm`` config section."""
        provider = cls(
            api_key=config.api_key or None,
            default_model=config.model,
            api_base=config.api_base,
        )
        provider.set_temperature(config.temperature)
        provider.set_max_tokens(config.max_tokens)
        return provider

    def _build_kwargs(
        self, prompt: str, model: str | None, temperature: float | None
    ) -> dict[str, Any]:
        model = model or self.default_model

        # For Gemini, ensure gemini/ prefix if not already present
        if "gemini" in model.lower() and not model.startswith("gemini/"):
            model = f"gemini/{model}"

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature if temperature is not None else self.default_temperature,
        }
        if self.default_max_tokens is not None:
            kwargs["max_tokens"] = self.default_max_tokens
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    async def generate(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a non-streamed completion request via LiteLLM."""
        response = await acompletion(**self._build_kwargs(prompt, model, temperature))
        return response.choices[0].message.content or ""

    async def stream(
        self,
        prompt: str,
        on_chunk: ChunkCallback,
        model: str | None = None,
        temperature: float | None = None,
    ) -> None:
        """Stream a completion via LiteLLM, forwarding each text delta."""
        response = await acompletion(
            **self._build_kwargs(prompt, model, temperature), stream=True,
        )
        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            text = getattr(delta, "content", None)
            if text:
                on_chunk(text)

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.default_model
