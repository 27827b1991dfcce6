"""Graph structures: Nodes, Edges, DAGs, and their execution."""

from plangraph.graph.adaptive import (
    AdaptiveExecutor,
    ModificationRecord,
    RewriteRule,
    create_conditional_branch_rule,
    create_fallback_rule,
    create_resource_adaptation_rule,
)
from plangraph.graph.dag import DAG
from plangraph.graph.edge import EdgeSpec
from plangraph.graph.node import LLMNode, MemoryNode, Node, NodeType, ToolNode
from plangraph.graph.plan import Plan, PlanStep, parse_plan, parse_plans
from plangraph.graph.report import audit_dag, audit_plan, audit_plans
from plangraph.graph.scheduler import RunStats, Scheduler, SchedulerConfig

__all__ = [
    # Node
    "Node",
    "NodeType",
    "ToolNode",
    "LLMNode",
    "MemoryNode",
    # Edge / graph
    "EdgeSpec",
    "DAG",
    # Scheduler
    "Scheduler",
    "SchedulerConfig",
    "RunStats",
    # Adaptive execution
    "AdaptiveExecutor",
    "RewriteRule",
    "ModificationRecord",
    "create_fallback_rule",
    "create_conditional_branch_rule",
    "create_resource_adaptation_rule",
    # Plans
    "Plan",
    "PlanStep",
    "parse_plan",
    "parse_plans",
    # Reports
    "audit_dag",
    "audit_plan",
    "audit_plans",
]
