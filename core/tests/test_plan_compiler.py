"""Tests for compiling text and object plans into DAGs, plus the reports."""

import pytest

from plangraph.errors import PlanValidationError, UnknownNodeError
from plangraph.graph.node import LLMNode, ToolNode
from plangraph.graph.plan import Plan, PlanStep, parse_plan, parse_plans
from plangraph.graph.report import audit_dag, audit_plan, audit_plans
from plangraph.graph.scheduler import Scheduler
from plangraph.runner.tool_registry import ToolRegistry

TEXT_PLAN = """
1. Research the market for {topic}

   Tool: search
3. Summarize the findings
"""


# ---------------------------------------------------------------------------
# Text plans
# ---------------------------------------------------------------------------


class TestTextPlans:
    def test_lines_become_chained_steps(self):
        dag = parse_plan(TEXT_PLAN)

        assert list(dag.nodes) == ["step_1", "step_2", "step_3"]
        assert isinstance(dag.nodes["step_1"], LLMNode)
        assert isinstance(dag.nodes["step_2"], ToolNode)
        assert isinstance(dag.nodes["step_3"], LLMNode)
        assert dag.nodes["step_2"].dependencies == ["step_1"]
        assert dag.nodes["step_3"].dependencies == ["step_2"]

    def test_enumeration_is_stripped(self):
        dag = parse_plan(TEXT_PLAN)
        assert dag.nodes["step_1"].prompt_template == "Research the market for {topic}"
        assert dag.nodes["step_3"].prompt_template == "Summarize the findings"

    @pytest.mark.asyncio
    async def test_unknown_tool_gets_a_stub(self):
        results = await Scheduler(parse_plan("tool: lookup")).execute()
        assert results["step_1"] == {"result": "lookup output"}

    @pytest.mark.asyncio
    async def test_tool_map_resolves_tools(self):
        dag = parse_plan(TEXT_PLAN, tool_map={"search": lambda inputs: {"hits": 4}})

        results = await Scheduler(dag).execute({"topic": "e-bikes"})

        assert results["step_1"]["prompt"] == "Research the market for e-bikes"
        assert results["step_2"] == {"hits": 4}
        assert results["step_3"]["inputs"]["hits"] == 4

    def test_blank_plan(self):
        assert len(parse_plan("\n\n   \n")) == 0


# ---------------------------------------------------------------------------
# Object plans
# ---------------------------------------------------------------------------


class TestObjectPlans:
    def test_steps_costs_and_edges(self):
        plan = {
            "name": "research",
            "steps": [
                {"id": "search", "type": "tool", "action": "search", "tokenCost": 10},
                {
                    "id": "summarize",
                    "type": "llm",
                    "action": "Summarize {hits}",
                    "dependencies": ["search"],
                    "metadata": {"tokenEstimate": 300, "simulated_duration": 40},
                    "critical": True,
                },
            ],
        }

        dag = parse_plan(plan)

        assert dag.name == "research"
        assert dag.nodes["search"].token_cost == 10
        assert dag.nodes["summarize"].token_cost == 300
        assert dag.nodes["summarize"].get_latency() == 40
        assert dag.nodes["summarize"].metadata["critical"] is True
        assert dag.get_edge_metadata("search", "summarize")["tokenEstimate"] == 300

    def test_cost_fallback_order(self):
        step = PlanStep(id="s", metadata={"token_cost": 7, "tokenEstimate": 9})
        assert step.resolved_token_cost() == 7
        assert PlanStep(id="s").resolved_token_cost() == 0
        assert PlanStep(id="s", latencyEstimate=12).resolved_latency() == 12

    def test_metadata_inputs_become_static_inputs(self):
        plan = {"steps": [{"id": "greet", "action": "Hi {name}", "metadata": {"inputs": {"name": "Ada"}}}]}
        dag = parse_plan(plan)
        assert dag.node_inputs["greet"] == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_unresolved_tool_returns_step_id(self):
        dag = parse_plan({"steps": [{"id": "lookup", "type": "tool", "action": "nowhere"}]})
        results = await Scheduler(dag).execute()
        assert results["lookup"] == {"result": "lookup"}

    @pytest.mark.asyncio
    async def test_callable_action_and_tool_registry(self):
        registry = ToolRegistry()

        @registry.register_function
        def add(a: int, b: int) -> int:
            return a + b

        plan = Plan(
            steps=[
                PlanStep(id="numbers", type="tool", action=lambda inputs: {"a": 2, "b": 3}),
                PlanStep(id="sum", type="tool", action="add", dependencies=["numbers"]),
            ]
        )

        results = await Scheduler(parse_plan(plan, registry)).execute()

        assert results["sum"] == {"result": 5}

    def test_non_string_llm_action_gives_empty_prompt(self):
        dag = parse_plan({"steps": [{"id": "ask", "type": "llm", "action": {"not": "text"}}]})
        assert dag.nodes["ask"].prompt_template == ""

    def test_unknown_dependency(self):
        with pytest.raises(UnknownNodeError):
            parse_plan({"steps": [{"id": "b", "dependencies": ["a"]}]})

    def test_invalid_plans(self):
        with pytest.raises(PlanValidationError, match="missing 'steps'"):
            parse_plan({"name": "empty"})
        with pytest.raises(PlanValidationError):
            parse_plan({"steps": [{"type": "tool"}]})
        with pytest.raises(PlanValidationError):
            parse_plan(42)


# ---------------------------------------------------------------------------
# Multiple plans
# ---------------------------------------------------------------------------


class TestMultiplePlans:
    def test_plans_are_prefixed_and_linked(self):
        dag = parse_plans(["first\nsecond", "third"])

        assert list(dag.nodes) == ["p1_step_1", "p1_step_2", "p2_step_1"]
        assert dag.nodes["p1_step_2"].dependencies == ["p1_step_1"]
        assert dag.nodes["p2_step_1"].dependencies == ["p1_step_2"]
        assert dag.get_topological_order() == ["p1_step_1", "p1_step_2", "p2_step_1"]

    def test_leaves_link_to_every_root(self):
        fork = {"steps": [{"id": "a"}, {"id": "b"}]}
        join = {"steps": [{"id": "c"}, {"id": "d"}]}

        dag = parse_plans([fork, join])

        assert dag.nodes["p2_c"].dependencies == ["p1_a", "p1_b"]
        assert dag.nodes["p2_d"].dependencies == ["p1_a", "p1_b"]

    def test_static_inputs_survive_prefixing(self):
        plan = {"steps": [{"id": "x", "metadata": {"inputs": {"k": 1}}}]}
        dag = parse_plans([plan, plan])
        assert dag.node_inputs["p1_x"] == {"k": 1}
        assert dag.node_inputs["p2_x"] == {"k": 1}


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class TestReports:
    def test_audit_dag(self):
        dag = parse_plan({"name": "demo", "steps": [{"id": "a"}, {"id": "b", "dependencies": ["a"]}]})
        assert audit_dag(dag) == "DAG: demo\n- a: depends on none\n- b: depends on a"

    def test_audit_plan_and_plans(self):
        plan = {"steps": [{"id": "a"}, {"id": "b", "dependencies": ["a"]}]}
        assert audit_plan(plan).splitlines()[0] == "DAG: parsed_plan"
        report = audit_plans([plan, "follow up"])
        assert report.splitlines() == [
            "DAG: merged_plans",
            "- p1_a: depends on none",
            "- p1_b: depends on p1_a",
            "- p2_step_1: depends on p1_b",
        ]
