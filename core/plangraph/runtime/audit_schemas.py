"""Pydantic models for the execution audit trail."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class AuditRecord(BaseModel):
    """One completed node: what went in, what came out, and when."""

    node: str
    node_type: str = ""
    inputs: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    timestamp: str = Field(default_factory=_utc_now)
    # Run correlation (empty when not running under a scheduler):
    run_id: str = ""
    graph: str = ""
    tokens_used: float = 0
    latency_ms: float = 0
