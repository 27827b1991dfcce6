"""
Run-aware logging.

Every log record emitted while a graph runs is tagged with the run it belongs
to, without threading ids through call signatures:

    Scheduler.execute*()        trace_scope(run_id=..., graph=...)
        node task               trace_scope(node=...)
            node action code    logger.info(...)  -> run_id, graph, node

The context lives in a ContextVar, so concurrently running node tasks each see
their own ``node`` while sharing the run's ``run_id`` and ``graph``.

Two renderings are available: one JSON object per line for log shippers, and
a coloured single-line form for terminals.
"""

import json
import logging
import os
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import IO, Any

_run_context: ContextVar[dict[str, Any] | None] = ContextVar("plangraph_run_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Optional `extra=` fields copied into JSON output
EXTRA_FIELDS = ("event", "latency_ms", "tokens_used", "node", "model")

# Client libraries whose loggers get their own handlers
_LIBRARY_LOGGERS = ("LiteLLM", "httpcore", "httpx")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

    Keys: ``timestamp``, ``level``, ``logger``, ``message``, then the run
    context, then any of ``EXTRA_FIELDS`` passed via ``extra=``, then
    ``exception`` when the record carries one. Colour codes are stripped.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **get_trace_context(),
        }
        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value
        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``[LEVEL   ] [run:abcd1234 | dag:name | node:name] message [event]``"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def context_prefix(context: dict[str, Any]) -> str:
        parts = []
        if context.get("run_id"):
            parts.append(f"run:{str(context['run_id'])[:8]}")
        for key, label in (("graph", "dag"), ("node", "node")):
            if context.get(key):
                parts.append(f"{label}:{context[key]}")
        return f"[{' | '.join(parts)}] " if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = (
            f"{color}[{record.levelname:<8}]{self.RESET} "
            f"{self.context_prefix(get_trace_context())}{record.getMessage()}"
        )
        event = getattr(record, "event", None)
        if event is not None:
            line += f" [{event}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(
    level: str = "INFO",
    format: str = "auto",
    stream: IO[str] | None = None,
) -> None:
    """
    Install a single root handler. Call once at startup (the CLI does).

    Args:
        level: Root log level name
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production, human otherwise)
        stream: Where to write, stderr by default
    """
    resolved = _resolve_format(format)
    json_output = resolved == "json"

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter() if json_output else HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    if json_output:
        # keep colour codes out of library output
        os.environ["NO_COLOR"] = "1"
        os.environ["FORCE_COLOR"] = "0"
        for name in _LIBRARY_LOGGERS:
            library_logger = logging.getLogger(name)
            library_logger.handlers.clear()
            library_logger.propagate = True


def set_trace_context(**kwargs: Any) -> None:
    """Merge fields into the current context. Prefer ``trace_scope`` for anything scoped."""
    _run_context.set({**(_run_context.get() or {}), **kwargs})


def get_trace_context() -> dict[str, Any]:
    return dict(_run_context.get() or {})


def clear_trace_context() -> None:
    _run_context.set(None)


@contextmanager
def trace_scope(**kwargs: Any) -> Iterator[None]:
    """Add fields to the run context for the duration of a block, then restore it."""
    token = _run_context.set({**(_run_context.get() or {}), **kwargs})
    try:
        yield
    finally:
        _run_context.reset(token)
