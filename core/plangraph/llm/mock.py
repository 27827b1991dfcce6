"""Deterministic provider for tests and offline runs."""

from typing import Any

from plangraph.llm.provider import LLMProvider, LLMResponse


class MockLLMProvider(LLMProvider):
    """
    Returns canned responses in order, or echoes the last user message.

    Every call is recorded in ``calls`` so tests can assert on the prompts
    that reached the provider.
    """

    def __init__(self, responses: list[str] | None = None, model: str = "mock-model"):
        self.responses = list(responses or [])
        self.model = model
        self.calls: list[dict[str, Any]] = []

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "system": system, "max_tokens": max_tokens})
        if self.responses:
            content = self.responses.pop(0)
        else:
            content = messages[-1]["content"] if messages else ""
        return LLMResponse(
            content=content,
            model=self.model,
            input_tokens=sum(len(str(m.get("content", "")).split()) for m in messages),
            output_tokens=len(content.split()),
            stop_reason="end_turn",
        )
