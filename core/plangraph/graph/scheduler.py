"""
Scheduler - runs a DAG.

The scheduler:
1. Orders the graph (sequential) or tracks node readiness (parallel)
2. Resolves each node's inputs from completed dependencies and global inputs
3. Runs before-hooks, the rate limiter and token-budget admission
4. Executes the node under a timeout, then applies its modeled latency
5. Runs after-hooks, writes the audit record and stores the output

The result is a flat dict: the caller's inputs plus one entry per executed
node, keyed by node name.
"""

import asyncio
import dataclasses
import inspect
import logging
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from plangraph.config import get_scheduler_settings
from plangraph.errors import (
    BudgetExceededError,
    ExecutionError,
    NodeExecutionError,
    NodeTimeoutError,
    StopExecution,
    UnknownNodeError,
)
from plangraph.graph.dag import DAG
from plangraph.graph.node import Node
from plangraph.observability import trace_scope
from plangraph.runtime.audit_schemas import AuditRecord
from plangraph.runtime.audit_store import AuditStore
from plangraph.runtime.rate_limiter import WINDOW_MS, SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

# before: (node, inputs, results) / after: (node, inputs, output).
# Returning False (or raising StopExecution) stops the run cleanly.
Hook = Callable[[Node, dict[str, Any], Any], bool | None | Awaitable[bool | None]]


@dataclass
class SchedulerConfig:
    """Configuration for one Scheduler."""

    max_parallel_nodes: int = 4
    # Per-node timeout in milliseconds; 0 disables it
    max_execution_time_ms: float = 30_000
    priority_nodes: list[str] = field(default_factory=list)
    # None disables budget enforcement / rate limiting
    token_budget: float | None = None
    requests_per_minute: int | None = None
    # Length of the rate-limit window; requests_per_minute starts are allowed per window
    rate_limit_window_ms: int = WINDOW_MS
    # node name -> modeled latency (ms), overrides the node's own latency
    latency_model: dict[str, float] = field(default_factory=dict)
    audit_dir: str | Path | None = None
    audit_file: str | Path | None = None
    before_hooks: list[Hook] = field(default_factory=list)
    after_hooks: list[Hook] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_parallel_nodes <= 0:
            raise ValueError(f"max_parallel_nodes must be > 0, got {self.max_parallel_nodes}")
        if self.max_execution_time_ms < 0:
            raise ValueError(
                f"max_execution_time_ms must be >= 0, got {self.max_execution_time_ms}"
            )
        if self.token_budget is not None and self.token_budget < 0:
            raise ValueError(f"token_budget must be >= 0, got {self.token_budget}")
        if self.requests_per_minute is not None and self.requests_per_minute <= 0:
            raise ValueError(f"requests_per_minute must be > 0, got {self.requests_per_minute}")
        if self.rate_limit_window_ms <= 0:
            raise ValueError(f"rate_limit_window_ms must be > 0, got {self.rate_limit_window_ms}")

    @classmethod
    def from_settings(cls, **overrides: Any) -> "SchedulerConfig":
        """Build from the configuration file's ``scheduler`` section plus overrides."""
        known = {f.name for f in dataclasses.fields(cls)}
        settings = {}
        for key, value in get_scheduler_settings().items():
            if key in known:
                settings[key] = value
            else:
                logger.warning(f"⚠ Ignoring unknown scheduler setting '{key}'")
        settings.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**settings)


@dataclass
class RunStats:
    """Bookkeeping for a single execute()/execute_parallel() call."""

    run_id: str
    graph: str
    mode: str
    tokens_used: float = 0
    executed: list[str] = field(default_factory=list)
    stopped_at: str | None = None
    rate_limit_wait_ms: float = 0
    duration_ms: float = 0
    error: str | None = None

    @property
    def stopped(self) -> bool:
        return self.stopped_at is not None


@dataclass
class _Run:
    """Run-scoped state, created fresh for every call."""

    graph: DAG
    inputs: dict[str, Any]
    results: dict[str, Any]
    stats: RunStats
    limiter: SlidingWindowRateLimiter | None
    audit: AuditStore
    started: float = field(default_factory=time.perf_counter)


class Scheduler:
    """
    Executes DAGs under concurrency, rate, timeout and token-budget limits.

    Example:
        scheduler = Scheduler(dag, max_parallel_nodes=8, token_budget=2_000)

        results = await scheduler.execute_parallel({"question": "Why is the sky blue?"})
        results["answer"]
    """

    def __init__(
        self,
        graph: DAG | None = None,
        config: SchedulerConfig | None = None,
        **overrides: Any,
    ):
        if config is None:
            config = SchedulerConfig(**overrides)
        elif overrides:
            config = dataclasses.replace(config, **overrides)
        self.graph = graph
        self.config = config
        self.last_run: RunStats | None = None
        self.logger = logger

    def add_before_hook(self, hook: Hook) -> None:
        self.config.before_hooks.append(hook)

    def add_after_hook(self, hook: Hook) -> None:
        self.config.after_hooks.append(hook)

    # === Public entry points ===

    async def execute(
        self,
        inputs: dict[str, Any] | None = None,
        graph: DAG | None = None,
    ) -> dict[str, Any]:
        """
        Run every node one at a time in dependency order.

        Args:
            inputs: Global inputs, offered to every node that does not
                already receive the same key from a dependency
            graph: Graph to run instead of the scheduler's bound graph

        Returns:
            {**inputs, node_name: output, ...}
        """
        run = self._start_run(graph, inputs, mode="sequential")
        order = self._prioritized_order(run.graph)

        with trace_scope(run_id=run.stats.run_id, graph=run.graph.name):
            self.logger.info(f"▶ Running DAG '{run.graph.name}' ({len(order)} nodes, sequential)")
            try:
                for name in order:
                    output = await self._run_node(run, name)
                    self._record(run, name, output)
            except StopExecution as stop:
                self._stop(run, stop)
            except ExecutionError as e:
                self._fail(run, e)
                raise
            finally:
                self._finish_run(run)

        return run.results

    async def execute_parallel(
        self,
        inputs: dict[str, Any] | None = None,
        graph: DAG | None = None,
    ) -> dict[str, Any]:
        """
        Run nodes concurrently as soon as their dependencies complete.

        At most ``max_parallel_nodes`` nodes are in flight. Ready nodes listed
        in ``priority_nodes`` launch before other ready nodes. On failure the
        remaining in-flight nodes are cancelled and the error propagates.

        Returns:
            {**inputs, node_name: output, ...}
        """
        run = self._start_run(graph, inputs, mode="parallel")
        dag = run.graph
        dag.get_topological_order()  # raises CycleError before anything runs

        successors = dag.successor_map()
        pending = {name: len(dag.get_dependencies(name)) for name in dag.nodes}
        ready: deque[str] = deque(name for name in dag.nodes if pending[name] == 0)
        in_flight: dict[asyncio.Task, str] = {}
        stopped = False

        with trace_scope(run_id=run.stats.run_id, graph=dag.name):
            self.logger.info(
                f"▶ Running DAG '{dag.name}' ({len(dag)} nodes, "
                f"parallel x{self.config.max_parallel_nodes})"
            )
            try:
                while ready or in_flight:
                    while ready and not stopped and len(in_flight) < self.config.max_parallel_nodes:
                        name = self._next_ready(ready)
                        task = asyncio.create_task(self._run_node(run, name), name=f"node:{name}")
                        in_flight[task] = name

                    if not in_flight:
                        break
                    if len(in_flight) > 1:
                        self.logger.debug(f"   ⑂ {len(in_flight)} nodes in flight")

                    done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)

                    failure: BaseException | None = None
                    # Completion continuation: the only place results and counters change
                    for task in [t for t in in_flight if t in done]:
                        name = in_flight.pop(task)
                        try:
                            output = task.result()
                        except StopExecution as stop:
                            if not stopped:
                                stopped = True
                                self._stop(run, stop)
                            continue
                        except BaseException as e:
                            failure = failure or e
                            continue
                        self._record(run, name, output)
                        for successor in successors[name]:
                            pending[successor] -= 1
                            if pending[successor] == 0:
                                ready.append(successor)

                    if failure is not None:
                        raise failure

            except BaseException as e:
                await self._cancel(in_flight)
                if isinstance(e, ExecutionError):
                    self._fail(run, e)
                raise
            finally:
                self._finish_run(run)

        return run.results

    # === Node execution ===

    async def _run_node(self, run: _Run, name: str) -> Any:
        """Run one node through hooks, limits, timeout and audit. Returns its output."""
        node = run.graph.nodes[name]
        inputs = run.graph.get_node_inputs(name, run.results)
        for key, value in run.inputs.items():
            inputs.setdefault(key, value)

        with trace_scope(node=name):
            await self._run_hooks(self.config.before_hooks, "before", node, inputs, run.results)

            if run.limiter is not None:
                run.stats.rate_limit_wait_ms += await run.limiter.acquire(name)

            self._reserve_tokens(run, node)

            self.logger.info(f"   ▶ {name} ({node.node_type})", extra={"node": name})
            started = time.perf_counter()
            output = await self._invoke(run, node, inputs)

            latency = self.config.latency_model.get(name, node.get_latency())
            if latency and latency > 0:
                await asyncio.sleep(latency / 1000)
            elapsed_ms = (time.perf_counter() - started) * 1000

            await self._run_hooks(self.config.after_hooks, "after", node, inputs, output)

            self._audit(run, node, inputs, output, elapsed_ms)
            self.logger.info(
                f"   ✓ {name} ({elapsed_ms:.0f}ms)",
                extra={"node": name, "latency_ms": round(elapsed_ms), "tokens_used": node.token_cost},
            )
            return output

    async def _invoke(self, run: _Run, node: Node, inputs: dict[str, Any]) -> Any:
        timeout_ms = self.config.max_execution_time_ms
        # None disables the deadline
        deadline = asyncio.timeout(timeout_ms / 1000 if timeout_ms and timeout_ms > 0 else None)
        try:
            async with deadline:
                return await node.execute(inputs)
        except TimeoutError as e:
            if deadline.expired():
                self.logger.error(f"   ✗ {node.name}: timed out after {timeout_ms}ms")
                raise NodeTimeoutError(node.name, timeout_ms, run.results) from None
            # raised by the action itself
            self.logger.error(f"   ✗ {node.name}: {e}")
            raise NodeExecutionError(node.name, e, run.results) from e
        except StopExecution as stop:
            stop.node = stop.node or node.name
            raise
        except ExecutionError:
            raise
        except Exception as e:
            self.logger.error(f"   ✗ {node.name}: {e}")
            raise NodeExecutionError(node.name, e, run.results) from e

    async def _run_hooks(
        self,
        hooks: list[Hook],
        stage: str,
        node: Node,
        inputs: dict[str, Any],
        payload: Any,
    ) -> None:
        for hook in hooks:
            try:
                verdict = hook(node, inputs, payload)
                if inspect.isawaitable(verdict):
                    verdict = await verdict
            except StopExecution as stop:
                stop.node = stop.node or node.name
                raise
            except Exception as e:
                raise ExecutionError(
                    f"{stage} hook failed for node '{node.name}': {e}", node=node.name
                ) from e
            if verdict is False:
                raise StopExecution(
                    f"{stage} hook stopped execution at node '{node.name}'", node=node.name
                )

    def _reserve_tokens(self, run: _Run, node: Node) -> None:
        """Check-and-reserve, with no await in between."""
        cost = node.token_cost or 0
        budget = self.config.token_budget
        if budget is not None and run.stats.tokens_used + cost > budget:
            self.logger.error(
                f"   ✗ {node.name}: token budget exceeded "
                f"({run.stats.tokens_used} + {cost} > {budget})"
            )
            raise BudgetExceededError(node.name, cost, run.stats.tokens_used, budget, run.results)
        run.stats.tokens_used += cost

    def _audit(
        self,
        run: _Run,
        node: Node,
        inputs: dict[str, Any],
        output: Any,
        elapsed_ms: float,
    ) -> None:
        if not run.audit.enabled:
            return
        try:
            run.audit.write(
                AuditRecord(
                    node=node.name,
                    node_type=str(node.node_type),
                    inputs=inputs,
                    output=output,
                    run_id=run.stats.run_id,
                    graph=run.graph.name,
                    tokens_used=node.token_cost,
                    latency_ms=round(elapsed_ms, 3),
                )
            )
        except Exception:
            # audit write failures never fail the run
            self.logger.exception(f"⚠ Failed to write audit record for node '{node.name}'")

    # === Ordering ===

    def _prioritized_order(self, graph: DAG) -> list[str]:
        """Topological order with ready priority nodes pulled forward.

        Simulates readiness over the topological order; at each step the
        first ready priority node is taken, otherwise the next node in order.
        """
        order = graph.get_topological_order()
        priority = set(self.config.priority_nodes)
        if not priority:
            return order

        remaining = list(order)
        done: set[str] = set()
        result = []
        while remaining:
            chosen = remaining[0]
            for name in remaining:
                if name in priority and all(d in done for d in graph.get_dependencies(name)):
                    chosen = name
                    break
            remaining.remove(chosen)
            done.add(chosen)
            result.append(chosen)
        return result

    def _next_ready(self, ready: deque[str]) -> str:
        priority = self.config.priority_nodes
        if priority:
            for index, name in enumerate(ready):
                if name in priority:
                    del ready[index]
                    return name
        return ready.popleft()

    # === Run lifecycle ===

    def _start_run(self, graph: DAG | None, inputs: dict[str, Any] | None, mode: str) -> _Run:
        dag = graph or self.graph
        if dag is None:
            raise ValueError("Scheduler has no graph: pass one to the constructor or to execute()")

        for node in dag.nodes.values():
            for dep in node.dependencies:
                if dep not in dag.nodes:
                    raise UnknownNodeError(dep, role="Dependency")

        inputs = dict(inputs or {})
        limiter = None
        if self.config.requests_per_minute:
            limiter = SlidingWindowRateLimiter(
                self.config.requests_per_minute, window_ms=self.config.rate_limit_window_ms
            )

        return _Run(
            graph=dag,
            inputs=inputs,
            results=dict(inputs),
            stats=RunStats(run_id=uuid.uuid4().hex, graph=dag.name, mode=mode),
            limiter=limiter,
            audit=AuditStore(self.config.audit_dir, self.config.audit_file),
        )

    def _record(self, run: _Run, name: str, output: Any) -> None:
        run.results[name] = output
        run.stats.executed.append(name)

    def _stop(self, run: _Run, stop: StopExecution) -> None:
        run.stats.stopped_at = stop.node
        self.logger.info(f"⏸ Controlled stop: {stop}")

    def _fail(self, run: _Run, error: ExecutionError) -> None:
        error.partial_results = dict(run.results)
        run.stats.error = str(error)
        self.logger.error(f"✗ DAG '{run.graph.name}' failed: {error}")

    def _finish_run(self, run: _Run) -> None:
        run.stats.duration_ms = (time.perf_counter() - run.started) * 1000
        self.last_run = run.stats
        if run.stats.error is None:
            self.logger.info(
                f"✓ DAG '{run.graph.name}' finished: {len(run.stats.executed)} nodes, "
                f"{run.stats.tokens_used} tokens, {run.stats.duration_ms:.0f}ms",
                extra={"tokens_used": run.stats.tokens_used, "latency_ms": round(run.stats.duration_ms)},
            )

    @staticmethod
    async def _cancel(in_flight: dict[asyncio.Task, str]) -> None:
        for task in in_flight:
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        in_flight.clear()
