"""LiteLLM-backed provider: one interface for every hosted model vendor."""

import logging
from typing import Any

import litellm

from plangraph.config import get_llm_settings
from plangraph.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider that delegates to ``litellm``.

    Model strings use LiteLLM's ``vendor/model`` convention, e.g.
    ``anthropic/claude-sonnet-4-20250514`` or ``openai/gpt-4o-mini``.
    Defaults come from the ``llm`` section of the configuration file.
    """

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
        default_max_tokens: int | None = None,
        **extra_kwargs: Any,
    ):
        settings = get_llm_settings()
        self.model = model or settings.model
        self.api_key = api_key or settings.api_key
        self.api_base = api_base or settings.api_base
        self.default_max_tokens = default_max_tokens or settings.max_tokens
        self.extra_kwargs = extra_kwargs

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        system: str,
        max_tokens: int,
        json_mode: bool,
    ) -> dict[str, Any]:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": full_messages,
            "max_tokens": max_tokens or self.default_max_tokens,
            **self.extra_kwargs,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    def _to_response(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(response, "model", None) or self.model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        kwargs = self._build_kwargs(messages, system, max_tokens, json_mode)
        logger.debug("LiteLLM completion", extra={"model": self.model})
        return self._to_response(litellm.completion(**kwargs))

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        kwargs = self._build_kwargs(messages, system, max_tokens, json_mode)
        logger.debug("LiteLLM async completion", extra={"model": self.model})
        return self._to_response(await litellm.acompletion(**kwargs))
