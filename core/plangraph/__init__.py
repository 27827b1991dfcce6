"""
plangraph - compile plans into dependency graphs and run them concurrently.

Build a DAG of nodes, hand it to a Scheduler and await the results:

    from plangraph import DAG, Scheduler, ToolNode, LLMNode

    dag = DAG("research")
    dag.add_node(ToolNode("search", search))
    dag.add_node(LLMNode("summarize", "Summarize {result}"))
    dag.add_edge("search", "summarize")

    results = await Scheduler(dag).execute_parallel({"query": "solid-state batteries"})

Plans (text or object form) compile into DAGs with ``parse_plan``; the
AdaptiveExecutor rewrites a graph between rounds when a rule's trigger fires.
"""

from plangraph.errors import (
    BudgetExceededError,
    CycleError,
    DuplicateNodeError,
    ExecutionError,
    GraphError,
    NodeExecutionError,
    NodeTimeoutError,
    PlanGraphError,
    PlanValidationError,
    ProviderNotFoundError,
    StopExecution,
    UnknownNodeError,
)
from plangraph.graph import (
    DAG,
    AdaptiveExecutor,
    EdgeSpec,
    LLMNode,
    MemoryNode,
    ModificationRecord,
    Node,
    NodeType,
    Plan,
    PlanStep,
    RewriteRule,
    RunStats,
    Scheduler,
    SchedulerConfig,
    ToolNode,
    audit_dag,
    audit_plan,
    audit_plans,
    create_conditional_branch_rule,
    create_fallback_rule,
    create_resource_adaptation_rule,
    parse_plan,
    parse_plans,
)
from plangraph.llm import DEFAULT_LLM_RUNTIME, LLMRuntimeRegistry
from plangraph.runner import ToolRegistry
from plangraph.runtime import CommunicationBus, Message, MultiAgentManager
from plangraph.service import ServicePlan, ServicePlanBuilder, prefetch_many

__version__ = "0.3.0"

__all__ = [
    # Graph
    "Node",
    "NodeType",
    "ToolNode",
    "LLMNode",
    "MemoryNode",
    "EdgeSpec",
    "DAG",
    # Execution
    "Scheduler",
    "SchedulerConfig",
    "RunStats",
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
    "audit_dag",
    "audit_plan",
    "audit_plans",
    "ToolRegistry",
    # LLM
    "LLMRuntimeRegistry",
    "DEFAULT_LLM_RUNTIME",
    # Service plans
    "ServicePlan",
    "ServicePlanBuilder",
    "prefetch_many",
    # Multi-agent
    "CommunicationBus",
    "Message",
    "MultiAgentManager",
    # Errors
    "PlanGraphError",
    "GraphError",
    "DuplicateNodeError",
    "UnknownNodeError",
    "CycleError",
    "ExecutionError",
    "BudgetExceededError",
    "NodeTimeoutError",
    "NodeExecutionError",
    "StopExecution",
    "PlanValidationError",
    "ProviderNotFoundError",
]
