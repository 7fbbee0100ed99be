"""Shared test doubles."""

import pytest

from chatwindow.providers.base import LLMProvider


class StubProvider(LLMProvider):
    """Deterministic provider: canned summaries and a chunked canned reply."""

    def __init__(self, response: str = "Test response from stub adapter."):
        super().__init__()
        self.response = response
        self.should_fail = False
        self.generate_prompts: list[str] = []
        self.stream_prompts: list[str] = []

    @property
    def generate_call_count(self) -> int:
        return len(self.generate_prompts)

    async def generate(self, prompt, model=None, temperature=None):
        self.generate_prompts.append(prompt)
        if self.should_fail:
            raise RuntimeError("Simulated LLM failure")
        return f"SUMMARIZED: Summary of conversation (call {self.generate_call_count})"

    async def stream(self, prompt, on_chunk, model=None, temperature=None):
        self.stream_prompts.append(prompt)
        for i in range(0, len(self.response), 5):
            on_chunk(self.response[i:i + 5])

    def get_default_model(self):
        return "stub/model"


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def failing_provider():
    p = StubProvider()
    p.should_fail = True
    return p
