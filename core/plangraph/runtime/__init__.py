"""Runtime support: rate limiting, audit trail, multi-agent coordination."""

from plangraph.runtime.audit_schemas import AuditRecord
from plangraph.runtime.audit_store import AuditStore
from plangraph.runtime.multi_agent import CommunicationBus, Message, MultiAgentManager
from plangraph.runtime.rate_limiter import SlidingWindowRateLimiter

__all__ = [
    "AuditRecord",
    "AuditStore",
    "CommunicationBus",
    "Message",
    "MultiAgentManager",
    "SlidingWindowRateLimiter",
]
