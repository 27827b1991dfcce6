"""Registry of language-model handlers, looked up by provider name.

The engine never embeds vendor call logic. An ``LLMNode`` renders its prompt
and hands it to whichever handler is registered for its provider::

    registry = LLMRuntimeRegistry()
    registry.register("claude", provider_handler(LiteLLMProvider("anthropic/claude-sonnet-4-20250514")))

``DEFAULT_LLM_RUNTIME`` is a conventional shared instance with an ``echo``
handler so graphs can be built and exercised without any model access.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from plangraph.errors import ProviderNotFoundError
from plangraph.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

# (rendered_prompt, metadata, inputs) -> result
PromptHandler = Callable[[str, dict[str, Any], dict[str, Any]], Any | Awaitable[Any]]


class LLMRuntimeRegistry:
    """Maps provider names to prompt handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, PromptHandler] = {}

    def register(self, provider: str, handler: PromptHandler) -> None:
        if provider in self._handlers:
            logger.debug(f"Replacing LLM handler for provider '{provider}'")
        self._handlers[provider] = handler

    def unregister(self, provider: str) -> bool:
        return self._handlers.pop(provider, None) is not None

    def get(self, provider: str) -> PromptHandler:
        handler = self._handlers.get(provider)
        if handler is None:
            raise ProviderNotFoundError(provider)
        return handler

    def has_provider(self, provider: str) -> bool:
        return provider in self._handlers

    def providers(self) -> list[str]:
        return list(self._handlers)

    async def call(
        self,
        provider: str,
        prompt: str,
        metadata: dict[str, Any] | None = None,
        inputs: dict[str, Any] | None = None,
    ) -> Any:
        """Invoke the handler for ``provider``, awaiting it if it is async."""
        handler = self.get(provider)
        result = handler(prompt, dict(metadata or {}), dict(inputs or {}))
        if inspect.isawaitable(result):
            result = await result
        return result


async def echo_handler(
    prompt: str, metadata: dict[str, Any], inputs: dict[str, Any]
) -> dict[str, Any]:
    """Return the call arguments unchanged. Used for dry runs and tests."""
    return {"prompt": prompt, "metadata": dict(metadata), "inputs": dict(inputs)}


def provider_handler(
    provider: LLMProvider,
    system: str = "",
    max_tokens: int = 1024,
) -> PromptHandler:
    """Adapt an ``LLMProvider`` to the prompt-handler signature.

    ``metadata`` may override ``system``, ``max_tokens`` and ``json_mode``
    per node.
    """

    async def _handler(
        prompt: str, metadata: dict[str, Any], inputs: dict[str, Any]
    ) -> dict[str, Any]:
        response = await provider.acomplete(
            messages=[{"role": "user", "content": prompt}],
            system=metadata.get("system", system),
            max_tokens=metadata.get("max_tokens", max_tokens),
            json_mode=bool(metadata.get("json_mode", False)),
        )
        return {
            "response": response.content,
            "model": response.model,
            "input_tokens": response.input_tokens,
            "output_tokens": response.output_tokens,
        }

    return _handler


DEFAULT_LLM_RUNTIME = LLMRuntimeRegistry()
DEFAULT_LLM_RUNTIME.register("echo", echo_handler)
