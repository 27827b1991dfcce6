"""Plain-text dependency reports for DAGs and plans."""

from collections.abc import Sequence

from plangraph.graph.dag import DAG
from plangraph.graph.plan import PlanInput, parse_plan, parse_plans


def audit_dag(graph: DAG) -> str:
    """
    One line per node, in insertion order:

        DAG: research
        - search: depends on none
        - summarize: depends on search
    """
    lines = [f"DAG: {graph.name}"]
    for node in graph.get_all_nodes():
        deps = ", ".join(node.dependencies) if node.dependencies else "none"
        lines.append(f"- {node.name}: depends on {deps}")
    return "\n".join(lines)


def audit_plan(plan: PlanInput) -> str:
    return audit_dag(parse_plan(plan))


def audit_plans(plans: Sequence[PlanInput]) -> str:
    return audit_dag(parse_plans(plans))
