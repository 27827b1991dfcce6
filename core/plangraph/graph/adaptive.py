"""
Adaptive execution - rewrite the DAG mid-run based on what it produced.

Each round runs the current graph, merges its outputs into an accumulated
state and evaluates rewrite rules against that state. The first rule whose
trigger fires transforms the graph and the next round runs the new shape:

    fallback = create_fallback_rule(
        lambda state: "unavailable" in state.get("error", ""),
        add_cached_weather_node,
    )
    executor = AdaptiveExecutor(dag, [fallback], max_modifications=3)
    result = await executor.execute({"city": "Lisbon"})
    result["total_modifications"]  # 1

Node failures and timeouts are not raised immediately: they become
``state["error"]`` / ``state["failed_node"]`` so a rule can react to them.
If no rule resolves the failure the error is raised when the run stops.
Structural and budget errors always propagate.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from plangraph.errors import ExecutionError, NodeExecutionError, NodeTimeoutError
from plangraph.graph.dag import DAG
from plangraph.graph.scheduler import Scheduler

logger = logging.getLogger(__name__)

RewriteTrigger = Callable[[dict[str, Any]], bool]
RewriteAction = Callable[[DAG, dict[str, Any]], DAG]

# State keys owned by the executor for the latest round's failure
ERROR_KEY = "error"
FAILED_NODE_KEY = "failed_node"


@dataclass
class RewriteRule:
    """A (trigger, transform) pair. The transform returns the graph for the next round."""

    trigger: RewriteTrigger
    action: RewriteAction
    name: str = "unnamed_rule"


@dataclass
class ModificationRecord:
    """One applied rewrite."""

    rule_name: str
    modification_count: int
    trigger_state: dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_name": self.rule_name,
            "modification_count": self.modification_count,
            "trigger_state": self.trigger_state,
            "timestamp": self.timestamp,
        }


class AdaptiveExecutor:
    """
    Runs a DAG, rewriting it between rounds when a rule's trigger fires.

    Rules are tried in the order they were added; only the first fired rule
    is applied per round. ``max_modifications`` bounds the number of
    rewrites (0 makes this a plain scheduler run).
    """

    def __init__(
        self,
        base_graph: DAG,
        rules: list[RewriteRule] | None = None,
        max_modifications: int = 5,
        scheduler: Scheduler | None = None,
        parallel: bool = False,
    ):
        if max_modifications < 0:
            raise ValueError(f"max_modifications must be >= 0, got {max_modifications}")
        self.base_graph = base_graph
        self.rules: list[RewriteRule] = list(rules or [])
        self.max_modifications = max_modifications
        self.scheduler = scheduler or Scheduler(base_graph.copy())
        self.parallel = parallel

    def add_rule(self, rule: RewriteRule) -> None:
        self.rules.append(rule)

    async def execute(self, inputs: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Run rounds until no rule fires, the modification budget is spent,
        or a transform fails.

        Returns:
            The accumulated state plus ``modification_history``,
            ``final_dag`` and ``total_modifications``.
        """
        current = self.base_graph.copy()
        state: dict[str, Any] = {"inputs": dict(inputs or {})}
        history: list[ModificationRecord] = []
        modifications = 0

        while True:
            failure = await self._run_round(current, state)

            if modifications >= self.max_modifications:
                if self.rules and self.max_modifications:
                    logger.info(
                        f"Modification budget reached ({modifications}/{self.max_modifications})"
                    )
                break

            rule = self._first_triggered(state)
            if rule is None:
                break

            try:
                rewritten = rule.action(current, state)
            except Exception:
                logger.exception(f"✗ Rewrite rule '{rule.name}' failed, stopping adaptive run")
                break
            if not isinstance(rewritten, DAG):
                logger.error(
                    f"✗ Rewrite rule '{rule.name}' returned {type(rewritten).__name__}, "
                    "expected DAG; stopping adaptive run"
                )
                break

            modifications += 1
            history.append(
                ModificationRecord(
                    rule_name=rule.name,
                    modification_count=modifications,
                    trigger_state=dict(state),
                )
            )
            logger.info(
                f"↻ Applied rewrite '{rule.name}' ({modifications}/{self.max_modifications})"
                + (f" after failure of '{failure.node}'" if failure else "")
            )
            current = rewritten

        if failure is not None:
            failure.partial_results = dict(state)
            raise failure

        return {
            **state,
            "modification_history": history,
            "final_dag": current,
            "total_modifications": modifications,
        }

    async def _run_round(self, graph: DAG, state: dict[str, Any]) -> ExecutionError | None:
        """Execute ``graph`` and merge its outputs into ``state``.

        Returns the node failure or timeout of this round, if any.
        """
        state.pop(ERROR_KEY, None)
        state.pop(FAILED_NODE_KEY, None)
        run = self.scheduler.execute_parallel if self.parallel else self.scheduler.execute
        try:
            results = await run(state["inputs"], graph=graph)
        except (NodeExecutionError, NodeTimeoutError) as e:
            logger.warning(f"⚠ Round failed at node '{e.node}': {e}")
            state.update(e.partial_results)
            state[ERROR_KEY] = str(e)
            state[FAILED_NODE_KEY] = e.node
            return e
        state.update(results)
        return None

    def _first_triggered(self, state: dict[str, Any]) -> RewriteRule | None:
        triggered = []
        for rule in self.rules:
            try:
                if rule.trigger(state):
                    triggered.append(rule)
            except Exception as e:
                logger.warning(f"⚠ Trigger of rule '{rule.name}' raised {e!r}; treating as not fired")
        return triggered[0] if triggered else None


# ---------------------------------------------------------------------------
# Rule factories
# ---------------------------------------------------------------------------


def create_fallback_rule(
    error_condition: RewriteTrigger,
    fallback_node_creator: RewriteAction,
    rule_name: str = "fallback_rule",
) -> RewriteRule:
    """Rule that splices in a replacement path when a failure condition holds."""
    return RewriteRule(error_condition, fallback_node_creator, rule_name)


def create_conditional_branch_rule(
    condition: RewriteTrigger,
    branch_action: RewriteAction,
    rule_name: str = "conditional_branch_rule",
) -> RewriteRule:
    """Rule that adds a branch when an output condition holds."""
    return RewriteRule(condition, branch_action, rule_name)


def create_resource_adaptation_rule(
    resource_test: RewriteTrigger,
    adaptation_action: RewriteAction,
    rule_name: str = "resource_adaptation_rule",
) -> RewriteRule:
    """Rule that reshapes the graph when a resource condition holds."""
    return RewriteRule(resource_test, adaptation_action, rule_name)
