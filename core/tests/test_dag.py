"""Tests for DAG construction, ordering, input resolution and copying."""

import pytest

from plangraph.errors import CycleError, DuplicateNodeError, UnknownNodeError
from plangraph.graph.dag import DAG
from plangraph.graph.node import MemoryNode, Node, ToolNode


def _chain(*names: str) -> DAG:
    dag = DAG("chain")
    for name in names:
        dag.add_node(Node(name))
    for source, target in zip(names, names[1:], strict=False):
        dag.add_edge(source, target)
    return dag


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_add_node_rejects_duplicates(self):
        dag = DAG()
        dag.add_node(Node("a"))
        with pytest.raises(DuplicateNodeError, match="Node 'a' already exists in DAG"):
            dag.add_node(Node("a"))

    def test_add_edge_requires_both_endpoints(self):
        dag = DAG()
        dag.add_node(Node("a"))
        with pytest.raises(UnknownNodeError, match="Target node 'missing' not found"):
            dag.add_edge("a", "missing")
        with pytest.raises(UnknownNodeError, match="Source node 'ghost' not found"):
            dag.add_edge("ghost", "a")

    def test_add_edge_records_dependency_once(self):
        dag = _chain("a", "b")
        dag.add_edge("a", "b", metadata={"label": "again"})

        assert dag.edges["a"] == ["b"]
        assert dag.nodes["b"].dependencies == ["a"]
        assert dag.get_edge_metadata("a", "b") == {"label": "again"}

    def test_input_mapping_inside_metadata_is_used(self):
        dag = _chain("a", "b")
        spec = dag.add_edge("a", "b", metadata={"input_mapping": {"query": "text"}})
        assert spec.input_mapping == {"query": "text"}

    def test_remove_node_drops_edges_and_dependencies(self):
        dag = _chain("a", "b", "c")
        dag.remove_node("b")

        assert "b" not in dag
        assert dag.edges["a"] == []
        assert dag.nodes["c"].dependencies == []
        assert dag.get_edge("a", "b") is None
        assert dag.get_edge("b", "c") is None


# ---------------------------------------------------------------------------
# Ordering and analysis
# ---------------------------------------------------------------------------


class TestOrdering:
    def test_topological_order_puts_dependencies_first(self):
        dag = DAG()
        dag.add_node(Node("report", dependencies=["merge"]))
        dag.add_node(Node("merge", dependencies=["left", "right"]))
        dag.add_node(Node("left"))
        dag.add_node(Node("right"))

        order = dag.get_topological_order()

        assert order.index("left") < order.index("merge")
        assert order.index("right") < order.index("merge")
        assert order.index("merge") < order.index("report")
        assert order == ["left", "right", "merge", "report"]

    def test_independent_nodes_keep_insertion_order(self):
        dag = DAG()
        for name in ["c", "a", "b"]:
            dag.add_node(Node(name))
        assert dag.get_topological_order() == ["c", "a", "b"]

    def test_cycle_raises(self):
        dag = _chain("a", "b", "c")
        dag.add_edge("c", "a")
        with pytest.raises(CycleError, match="Cycle detected in DAG"):
            dag.get_topological_order()

    def test_self_loop_is_a_cycle(self):
        dag = DAG()
        dag.add_node(Node("loop"))
        dag.add_edge("loop", "loop")
        with pytest.raises(CycleError) as exc_info:
            dag.get_topological_order()
        assert exc_info.value.node == "loop"

    def test_dangling_dependencies_are_ignored_for_ordering(self):
        dag = DAG()
        dag.add_node(Node("a", dependencies=["not_here"]))
        assert dag.get_topological_order() == ["a"]
        assert dag.validate() == ["Node 'a' depends on unknown node 'not_here'"]

    def test_roots_and_leaves(self):
        dag = DAG()
        dag.add_node(Node("a"))
        dag.add_node(Node("b"))
        dag.add_node(Node("c", dependencies=["a", "b"]))
        dag.add_node(Node("d", dependencies=["c"]))
        dag.add_node(Node("e", dependencies=["c"]))

        roots, leaves = dag.get_roots_and_leaves()

        assert roots == ["a", "b"]
        assert leaves == ["d", "e"]

    def test_critical_path(self):
        dag = DAG()
        dag.add_node(Node("fetch", latency=100))
        dag.add_node(Node("fast", dependencies=["fetch"], latency=10))
        dag.add_node(Node("slow", dependencies=["fetch"], latency=50))
        dag.add_node(Node("merge", dependencies=["fast", "slow"], latency=5))

        critical = dag.compute_critical_path()

        assert critical["merge"] == 5
        assert critical["slow"] == 55
        assert critical["fast"] == 15
        assert critical["fetch"] == 155

    def test_critical_path_uses_latency_model(self):
        dag = _chain("a", "b")
        critical = dag.compute_critical_path({"a": 20, "b": 30})
        assert critical == {"b": 30, "a": 50}


# ---------------------------------------------------------------------------
# Input resolution
# ---------------------------------------------------------------------------


class TestNodeInputs:
    def test_unmapped_edge_merges_and_names_output(self):
        dag = _chain("search", "summarize")
        results = {"search": {"hits": 3, "query": "llm"}}

        inputs = dag.get_node_inputs("summarize", results)

        assert inputs == {"hits": 3, "query": "llm", "search": {"hits": 3, "query": "llm"}}

    def test_mapped_edge_copies_only_mapped_fields(self):
        dag = DAG()
        dag.add_node(Node("search"))
        dag.add_node(Node("summarize"))
        dag.add_edge("search", "summarize", input_mapping={"documents": "hits"})

        inputs = dag.get_node_inputs("summarize", {"search": {"hits": [1, 2], "noise": True}})

        assert inputs == {"documents": [1, 2]}

    def test_static_inputs_come_first(self):
        dag = _chain("a", "b")
        dag.set_node_inputs("b", {"style": "brief", "hits": 0})

        inputs = dag.get_node_inputs("b", {"a": {"hits": 5}})

        assert inputs["style"] == "brief"
        assert inputs["hits"] == 5

    def test_missing_dependency_results_are_skipped(self):
        dag = _chain("a", "b")
        assert dag.get_node_inputs("b", {}) == {}

    def test_non_mapping_output_is_exposed_by_name(self):
        dag = _chain("count", "report")
        assert dag.get_node_inputs("report", {"count": 7}) == {"count": 7}


# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------


class TestCopy:
    def test_copy_is_independent(self):
        dag = _chain("a", "b")
        dag.set_node_inputs("a", {"x": [1]})
        dag.nodes["a"].metadata["tags"] = ["original"]

        clone = dag.copy()
        clone.add_node(Node("c", dependencies=["b"]))
        clone.add_edge("b", "c", metadata={"new": True})
        clone.node_inputs["a"]["x"].append(2)
        clone.nodes["a"].metadata["tags"].append("changed")
        clone.nodes["b"].add_dependency("c")

        assert "c" not in dag
        assert dag.edges["b"] == []
        assert dag.node_inputs["a"] == {"x": [1]}
        assert dag.nodes["a"].metadata["tags"] == ["original"]
        assert dag.nodes["b"].dependencies == ["a"]

    def test_copy_shares_actions_but_not_memory(self):
        def action(inputs):
            return {"ok": True}

        dag = DAG()
        dag.add_node(ToolNode("tool", action))
        dag.add_node(MemoryNode("memory", initial={"k": "v"}))

        clone = dag.copy(name="clone")
        clone.nodes["memory"].memory["k"] = "changed"

        assert clone.name == "clone"
        assert clone.nodes["tool"].func is action
        assert dag.nodes["memory"].memory == {"k": "v"}

    def test_to_dict(self):
        dag = _chain("a", "b")
        data = dag.to_dict()
        assert data["name"] == "chain"
        assert [n["name"] for n in data["nodes"]] == ["a", "b"]
        assert data["edges"][0]["source"] == "a"
        assert data["edges"][0]["target"] == "b"
