"""LLM provider abstraction and handler registry."""

from plangraph.llm.mock import MockLLMProvider
from plangraph.llm.provider import LLMProvider, LLMResponse
from plangraph.llm.registry import (
    DEFAULT_LLM_RUNTIME,
    LLMRuntimeRegistry,
    PromptHandler,
    echo_handler,
    provider_handler,
)

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "MockLLMProvider",
    "LLMRuntimeRegistry",
    "PromptHandler",
    "DEFAULT_LLM_RUNTIME",
    "echo_handler",
    "provider_handler",
]

try:
    from plangraph.llm.litellm import LiteLLMProvider  # noqa: F401

    __all__.append("LiteLLMProvider")
except ImportError:
    pass
