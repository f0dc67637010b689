"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Protocol

from relay.errors import GenerationFailedError


class TextGenerator(Protocol):
    """What a relay session needs from a text-generation backend."""

    async def generate(self, system_prompt: str, user_utterance: str) -> str:  # pragma: no cover - protocol stub
        ...


class BaseLLMClient(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return a chat-style completion.

        Unset sampling arguments fall back to the client's configured defaults.
        """

    async def generate(self, system_prompt: str, user_utterance: str) -> str:
        """Answer one user utterance under the given system instructions.

        Provider failures are raised as GenerationFailedError.
        """

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_utterance},
        ]
        try:
            response = await self.chat(messages)
        except GenerationFailedError:
            raise
        except Exception as exc:
            raise GenerationFailedError(f"{type(self).__name__}: {exc}") from exc
        return (response or "").strip()
