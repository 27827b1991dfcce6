"""Model backends that LLM node handlers can call."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class LLMResponse:
    """One completion and its token usage."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMProvider(ABC):
    """
    A chat-completion backend.

    Providers are not called by nodes directly. ``provider_handler`` wraps one
    into an ``LLMRuntimeRegistry`` handler, and ``LLMNode`` looks that handler
    up by provider name.
    """

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Run one blocking completion.

        Args:
            messages: Chat turns, ``[{"role": ..., "content": ...}]``
            system: System prompt, omitted when empty
            max_tokens: Completion token cap
            json_mode: Ask the backend for a JSON object reply

        Returns:
            The reply text with usage counts
        """
        pass

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Run ``complete`` in a worker thread. Backends with an async client override this."""
        return await asyncio.to_thread(
            self.complete,
            messages,
            system,
            max_tokens,
            json_mode,
        )
