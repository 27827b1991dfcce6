"""
Plan compiler - turn high-level plans into DAGs.

Two plan shapes are accepted:

Text plans, one step per line. ``tool: name`` lines become tool nodes, any
other line becomes an LLM prompt (a leading ``1.`` enumeration is dropped).
Steps are chained in order::

    1. Research the market
    tool: search
    3. Summarize the findings

Object plans, a list of steps with explicit dependencies::

    {"name": "research", "steps": [
        {"id": "search", "type": "tool", "action": "search"},
        {"id": "summarize", "type": "llm", "action": "Summarize {result}",
         "dependencies": ["search"], "tokenCost": 300},
    ]}
"""

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field

from plangraph.errors import PlanValidationError
from plangraph.graph.dag import DAG
from plangraph.graph.node import LLMNode, Node, ToolNode
from plangraph.llm.registry import LLMRuntimeRegistry
from plangraph.runner.tool_registry import ToolFunction, ToolRegistry

logger = logging.getLogger(__name__)

NEWLINE_PATTERN = re.compile(r"\r?\n+")
TOOL_LINE_PATTERN = re.compile(r"tool\s*:\s*(\w+)", re.IGNORECASE)
ENUMERATION_PATTERN = re.compile(r"^\d+\.\s*")

ToolMap = Mapping[str, ToolFunction] | ToolRegistry


class PlanStep(BaseModel):
    """One step of an object plan."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    id: str = Field(description="Unique step id, becomes the node name")
    type: Literal["tool", "llm"] = "llm"
    action: Any = Field(
        default=None,
        description="Tool name or callable for tool steps, prompt template for llm steps",
    )
    dependencies: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    token_cost: float | None = Field(
        default=None, validation_alias=AliasChoices("token_cost", "tokenCost")
    )
    latency_estimate: float | None = Field(
        default=None, validation_alias=AliasChoices("latency_estimate", "latencyEstimate")
    )
    critical: bool = False

    def resolved_token_cost(self) -> float:
        return _first_number(
            self.token_cost,
            self.metadata.get("token_cost"),
            self.metadata.get("tokenEstimate"),
        )

    def resolved_latency(self) -> float:
        return _first_number(
            self.latency_estimate,
            self.metadata.get("latency_estimate"),
            self.metadata.get("simulated_duration"),
        )


class Plan(BaseModel):
    """An object plan: an ordered list of steps."""

    name: str = "parsed_plan"
    steps: list[PlanStep] = Field(default_factory=list)


PlanInput = str | Mapping[str, Any] | Plan


def _first_number(*candidates: Any) -> float:
    for value in candidates:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return value
    return 0


def _tool_lookup(tool_map: ToolMap | None, name: str) -> ToolFunction | None:
    if tool_map is None:
        return None
    return tool_map.get(name)


def _coerce_plan(plan: Any) -> Plan:
    if isinstance(plan, Plan):
        return plan
    if isinstance(plan, Mapping):
        if not isinstance(plan.get("steps"), list):
            raise PlanValidationError("Plan object missing 'steps' array")
        try:
            return Plan.model_validate(dict(plan))
        except ValueError as e:
            raise PlanValidationError(f"Invalid plan: {e}") from e
    raise PlanValidationError(f"Unsupported plan type: {type(plan).__name__}")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_plan(
    plan: PlanInput,
    tool_map: ToolMap | None = None,
    registry: LLMRuntimeRegistry | None = None,
) -> DAG:
    """
    Compile a text or object plan into a DAG.

    Args:
        plan: Plan text, plan dict or Plan model
        tool_map: Tool functions by name (a dict or a ToolRegistry)
        registry: LLM handler registry for the LLM nodes (default shared registry)

    Returns:
        The compiled DAG
    """
    if isinstance(plan, str):
        return _parse_text_plan(plan, tool_map, registry)
    return _parse_object_plan(_coerce_plan(plan), tool_map, registry)


def _parse_text_plan(
    text: str, tool_map: ToolMap | None, registry: LLMRuntimeRegistry | None
) -> DAG:
    dag = DAG("parsed_plan")
    lines = [line.strip() for line in NEWLINE_PATTERN.split(text)]
    previous: str | None = None

    for index, line in enumerate(filter(None, lines), start=1):
        step_id = f"step_{index}"
        match = TOOL_LINE_PATTERN.search(line)
        if match:
            tool_name = match.group(1)
            func = _tool_lookup(tool_map, tool_name) or _stub_tool(f"{tool_name} output")
            node: Node = ToolNode(step_id, func, metadata={"tool": tool_name})
        else:
            node = LLMNode(step_id, ENUMERATION_PATTERN.sub("", line), registry=registry)
        dag.add_node(node)
        if previous:
            dag.add_edge(previous, step_id)
        previous = step_id

    logger.debug(f"Parsed text plan into {len(dag)} steps")
    return dag


def _parse_object_plan(
    plan: Plan, tool_map: ToolMap | None, registry: LLMRuntimeRegistry | None
) -> DAG:
    dag = DAG(plan.name)

    for step in plan.steps:
        metadata = dict(step.metadata)
        if step.critical:
            metadata["critical"] = True
        token_cost = step.resolved_token_cost()
        latency = step.resolved_latency()

        if step.type == "tool":
            func = step.action
            if isinstance(func, str):
                func = _tool_lookup(tool_map, func)
            if not callable(func):
                if step.action is not None:
                    logger.warning(
                        f"⚠ Tool '{step.action}' for step '{step.id}' is not registered, "
                        "using a placeholder"
                    )
                func = _stub_tool(step.id)
            node: Node = ToolNode(
                step.id,
                func,
                dependencies=step.dependencies,
                token_cost=token_cost,
                latency=latency,
                metadata=metadata,
            )
        else:
            prompt = step.action if isinstance(step.action, str) else ""
            node = LLMNode(
                step.id,
                prompt,
                registry=registry,
                dependencies=step.dependencies,
                token_cost=token_cost,
                latency=latency,
                metadata=metadata,
            )
        dag.add_node(node)
        dag.set_node_inputs(step.id, metadata.get("inputs") or {})

    for step in plan.steps:
        for dep in step.dependencies:
            dag.add_edge(dep, step.id, step.metadata)

    logger.debug(f"Parsed plan '{plan.name}' into {len(dag)} steps")
    return dag


def _stub_tool(result: str) -> ToolFunction:
    def stub(inputs: dict[str, Any]) -> dict[str, Any]:
        return {"result": result}

    return stub


def parse_plans(
    plans: Sequence[PlanInput],
    tool_map: ToolMap | None = None,
    registry: LLMRuntimeRegistry | None = None,
) -> DAG:
    """
    Compile several plans into one DAG, run one after the other.

    Node names get a ``p{i}_`` prefix (1-based) so plans cannot collide, and
    the leaves of each plan are linked to the roots of the next.
    """
    merged = DAG("merged_plans")
    previous_leaves: list[str] = []

    for index, plan in enumerate(plans, start=1):
        partial = parse_plan(plan, tool_map, registry)
        prefix = f"p{index}_"
        renamed = {name: f"{prefix}{name}" for name in partial.nodes}

        for node in partial.get_all_nodes():
            clone = node.renamed(renamed[node.name])
            clone.set_dependencies(renamed.get(dep, dep) for dep in node.dependencies)
            merged.add_node(clone)
            if node.name in partial.node_inputs:
                merged.set_node_inputs(clone.name, partial.node_inputs[node.name])

        for (source, target), spec in partial.edge_specs.items():
            merged.add_edge(
                renamed[source],
                renamed[target],
                spec.metadata,
                input_mapping=spec.input_mapping or None,
            )

        roots, leaves = partial.get_roots_and_leaves()
        for leaf in previous_leaves:
            for root in roots:
                merged.add_edge(leaf, renamed[root])
        previous_leaves = [renamed[leaf] for leaf in leaves]

    return merged
