"""Configuration schema using Pydantic."""

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BudgetConfig(BaseModel):
    """Token budget for the rendered prompt."""
    max_prompt_tokens: int = Field(default=8192, ge=1)
    reserved_response_tokens: int = Field(default=512, ge=1)  # Held back for the model's reply
    recent_messages_to_keep: int = Field(default=6, ge=1)  # Verbatim window before compaction
    min_recent_messages_to_keep: int = Field(default=2, ge=1)  # Floor for the shrink loop

    @model_validator(mode="after")
    def _check_limits(self) -> "BudgetConfig":
        if self.reserved_response_tokens >= self.max_prompt_tokens:
            raise ValueError("reserved_response_tokens must be less than max_prompt_tokens")
        if self.min_recent_messages_to_keep > self.recent_messages_to_keep:
            raise ValueError(
                "min_recent_messages_to_keep must not exceed recent_messages_to_keep"
            )
        return self

    @property
    def effective_budget(self) -> int:
        """Token ceiling for the prompt, excluding the model's own response."""
        return self.max_prompt_tokens - self.reserved_response_tokens


class LLMConfig(BaseModel):
    """LLM provider configuration."""
    model: str = "ollama/gemma3n:e2b"
    api_base: str | None = "http://localhost:11434"
    api_key: str = ""
    temperature: float = 0.7
    summary_temperature: float = 0.3  # Used for compaction summaries
    max_tokens: int | None = None


class Config(BaseSettings):
    """Root configuration for chatwindow."""
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)

    model_config = SettingsConfigDict(
        env_prefix="CHATWINDOW_",
        env_nested_delimiter="__",
    )
