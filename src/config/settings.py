"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # LLM connectivity
    llm_provider: Literal["openai", "self_hosted_vllm"] = Field(default="openai")
    llm_endpoint: str | None = Field(
        default=None,
        description="Base URL for the provider (OpenAI-compatible server for vLLM).",
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(default="gpt-3.5-turbo")
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=150, gt=0)
    generation_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Upper bound for one generation call; a timeout yields the fallback reply.",
    )
    cancel_superseded_generations: bool = Field(
        default=False,
        description=(
            "If true, an interrupt or a newer prompt cancels the outstanding generation "
            "instead of only discarding its result."
        ),
    )
    system_prompt_file: str = Field(default="system_prompt.txt")

    # Tracing
    weave_project: str | None = Field(
        default=None,
        description="Weave project (e.g. \"team/voice-assistant\") to trace calls into; unset disables tracing.",
    )

    # Twilio ConversationRelay
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    relay_language: str = Field(default="en-US")
    relay_tts_provider: str = Field(default="google")
    relay_voice: str = Field(default="en-US-Standard-C")
    relay_debug: str | None = Field(
        default="debugging speaker-events tokens-played",
        description="Value of the ConversationRelay debug attribute; empty disables it.",
    )

    # Fixed utterances
    greeting_text: str = Field(
        default="Hello! Welcome to the voice assistant. How can I help you today?"
    )
    fallback_text: str = Field(
        default="I'm having trouble processing that request. Please try again."
    )
    empty_reply_text: str = Field(default="I'm sorry, I didn't understand that.")

    @field_validator("relay_debug")
    @classmethod
    def blank_debug_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
