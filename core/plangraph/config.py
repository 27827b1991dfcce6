"""Shared plangraph configuration utilities.

Centralises reading of ~/.plangraph/configuration.json so the scheduler,
the LLM providers and the CLI share one implementation. The file is optional;
every helper falls back to a built-in default. Example::

    {
      "scheduler": {"max_parallel_nodes": 8, "requests_per_minute": 120},
      "llm": {"provider": "anthropic", "model": "claude-sonnet-4-20250514",
              "api_key_env_var": "ANTHROPIC_API_KEY"},
      "logging": {"level": "INFO", "format": "human"}
    }
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_MAX_TOKENS = 1024
DEFAULT_MODEL = "anthropic/claude-sonnet-4-20250514"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

PLANGRAPH_CONFIG_FILE = Path.home() / ".plangraph" / "configuration.json"


def get_config_path() -> Path:
    """Return the configuration path, honouring the PLANGRAPH_CONFIG override."""
    override = os.environ.get("PLANGRAPH_CONFIG")
    return Path(override) if override else PLANGRAPH_CONFIG_FILE


def get_plangraph_config() -> dict[str, Any]:
    """Load plangraph configuration. Missing or unreadable files yield {}."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _section(name: str) -> dict[str, Any]:
    section = get_plangraph_config().get(name, {})
    return dict(section) if isinstance(section, dict) else {}


def get_scheduler_settings() -> dict[str, Any]:
    """Return the ``scheduler`` section (SchedulerConfig field overrides)."""
    return _section("scheduler")


def get_logging_settings() -> dict[str, Any]:
    return _section("logging")


@dataclass
class LLMSettings:
    """Defaults for LiteLLMProvider, resolved from the ``llm`` section."""

    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    api_key: str | None = None
    api_base: str | None = None


def get_llm_settings() -> LLMSettings:
    """
    Resolve the ``llm`` section.

    ``model`` may already carry its vendor (``openai/gpt-4o-mini``); otherwise
    ``provider`` is prefixed. The key itself never lives in the file, only the
    name of the environment variable holding it (``api_key_env_var``).
    """
    llm = _section("llm")
    settings = LLMSettings(api_base=llm.get("api_base"))

    model = llm.get("model")
    if model:
        provider = llm.get("provider")
        settings.model = f"{provider}/{model}" if provider and "/" not in model else model
    if llm.get("max_tokens"):
        settings.max_tokens = int(llm["max_tokens"])
    if llm.get("api_key_env_var"):
        settings.api_key = os.environ.get(llm["api_key_env_var"])
    return settings
