"""Typed errors raised by graph construction and execution.

Structural errors (``GraphError`` and subclasses) are raised while a graph is
being built or ordered, before any node runs. Execution errors carry the
outputs collected before the failure in ``partial_results`` so callers can
decide whether a partial run is usable.
"""

from typing import Any


class PlanGraphError(Exception):
    """Base class for every error raised by plangraph."""

    pass


# ---------------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------------


class GraphError(PlanGraphError):
    """Raised when the graph structure itself is invalid."""

    pass


class DuplicateNodeError(GraphError):
    def __init__(self, node: str):
        self.node = node
        super().__init__(f"Node '{node}' already exists in DAG")


class UnknownNodeError(GraphError):
    def __init__(self, node: str, role: str = "Node"):
        self.node = node
        self.role = role
        super().__init__(f"{role} node '{node}' not found in DAG")


class CycleError(GraphError):
    def __init__(self, node: str):
        self.node = node
        super().__init__(f"Cycle detected in DAG at node '{node}'")


# ---------------------------------------------------------------------------
# Execution errors
# ---------------------------------------------------------------------------


class ExecutionError(PlanGraphError):
    """A run failed. Outputs gathered before the failure are kept."""

    def __init__(
        self,
        message: str,
        node: str | None = None,
        partial_results: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.node = node
        self.partial_results: dict[str, Any] = dict(partial_results or {})


class BudgetExceededError(ExecutionError):
    def __init__(
        self,
        node: str,
        cost: float,
        tokens_used: float,
        token_budget: float,
        partial_results: dict[str, Any] | None = None,
    ):
        self.cost = cost
        self.tokens_used = tokens_used
        self.token_budget = token_budget
        super().__init__(
            f"Token budget exceeded: node '{node}' needs {cost} tokens, "
            f"{tokens_used}/{token_budget} already used",
            node=node,
            partial_results=partial_results,
        )


class NodeTimeoutError(ExecutionError):
    def __init__(
        self,
        node: str,
        timeout_ms: float,
        partial_results: dict[str, Any] | None = None,
    ):
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Node '{node}' timed out after {timeout_ms}ms",
            node=node,
            partial_results=partial_results,
        )


class NodeExecutionError(ExecutionError):
    """A node's own action raised. The original exception is the ``__cause__``."""

    def __init__(
        self,
        node: str,
        error: BaseException,
        partial_results: dict[str, Any] | None = None,
    ):
        self.error = error
        super().__init__(
            f"Node '{node}' failed: {error}",
            node=node,
            partial_results=partial_results,
        )


class StopExecution(Exception):  # noqa: N818
    """Controlled, error-free early termination requested by a hook."""

    def __init__(self, reason: str = "", node: str | None = None):
        self.reason = reason
        self.node = node
        super().__init__(reason or "Execution stopped")


# ---------------------------------------------------------------------------
# Plans and collaborators
# ---------------------------------------------------------------------------


class PlanValidationError(PlanGraphError, ValueError):
    """Raised when a plan or service payload cannot be compiled."""

    pass


class ProviderNotFoundError(PlanGraphError, LookupError):
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"No runtime registered for provider '{provider}'")
