"""
DAG - the dependency graph a plan compiles into.

The DAG owns uniquely named nodes and the directed edges between them. An
edge ``a -> b`` is stored twice: in the adjacency map (``edges[a]``) and in
``b.dependencies``; ``add_edge`` keeps the two in step. Ordering, readiness
and critical-path computations read node dependencies, so a node added with
pre-declared dependencies behaves the same as one wired with ``add_edge``.

Structural problems (duplicate names, unknown endpoints, cycles) raise
immediately, never at execution time.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping
from typing import Any

from plangraph.errors import CycleError, DuplicateNodeError, UnknownNodeError
from plangraph.graph.edge import EdgeSpec
from plangraph.graph.node import Node

logger = logging.getLogger(__name__)

_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


class DAG:
    """
    Directed acyclic graph of nodes.

    Example:
        dag = DAG("research")
        dag.add_node(ToolNode("search", search))
        dag.add_node(LLMNode("summarize", "Summarize {results}"))
        dag.add_edge("search", "summarize")
        dag.get_topological_order()  # ["search", "summarize"]
    """

    def __init__(self, name: str = "dag"):
        self.name = name
        self.nodes: dict[str, Node] = {}
        self.edges: dict[str, list[str]] = {}
        self.edge_specs: dict[tuple[str, str], EdgeSpec] = {}
        self.node_inputs: dict[str, dict[str, Any]] = {}

    def __repr__(self) -> str:
        return f"DAG(name={self.name!r}, nodes={len(self.nodes)})"

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes.values())

    # === Construction ===

    def add_node(self, node: Node) -> None:
        if node.name in self.nodes:
            raise DuplicateNodeError(node.name)
        self.nodes[node.name] = node
        self.edges.setdefault(node.name, [])

    def remove_node(self, name: str) -> Node:
        """Remove a node, every edge touching it and every dependency on it."""
        node = self._require(name)
        del self.nodes[name]
        self.edges.pop(name, None)
        self.node_inputs.pop(name, None)
        for targets in self.edges.values():
            if name in targets:
                targets.remove(name)
        for other in self.nodes.values():
            other.remove_dependency(name)
        self.edge_specs = {
            key: spec for key, spec in self.edge_specs.items() if name not in key
        }
        return node

    def add_edge(
        self,
        source: str,
        target: str,
        metadata: Mapping[str, Any] | None = None,
        input_mapping: Mapping[str, str] | None = None,
    ) -> EdgeSpec:
        """
        Add ``source -> target``. Target gains ``source`` as a dependency.

        Args:
            source: Upstream node name
            target: Downstream node name
            metadata: Free-form annotations. An ``input_mapping`` key inside it
                is used as the mapping when ``input_mapping`` is not given.
            input_mapping: {target_key: source_key} field selection/renaming

        Returns:
            The stored EdgeSpec (existing edges are updated in place)
        """
        if source not in self.nodes:
            raise UnknownNodeError(source, role="Source")
        if target not in self.nodes:
            raise UnknownNodeError(target, role="Target")

        metadata = dict(metadata or {})
        if input_mapping is None and isinstance(metadata.get("input_mapping"), Mapping):
            input_mapping = metadata["input_mapping"]

        targets = self.edges.setdefault(source, [])
        if target not in targets:
            targets.append(target)
        self.nodes[target].add_dependency(source)

        spec = self.edge_specs.get((source, target))
        if spec is None:
            spec = EdgeSpec(source=source, target=target)
            self.edge_specs[(source, target)] = spec
        if metadata:
            spec.metadata.update(metadata)
        if input_mapping:
            spec.input_mapping = dict(input_mapping)
        return spec

    def set_node_inputs(self, name: str, inputs: Mapping[str, Any]) -> None:
        """Attach static inputs merged into the node's resolved inputs at run time."""
        self._require(name)
        self.node_inputs[name] = dict(inputs)

    # === Lookup ===

    def get_node(self, name: str) -> Node | None:
        return self.nodes.get(name)

    def has_node(self, name: str) -> bool:
        return name in self.nodes

    def get_all_nodes(self) -> list[Node]:
        return list(self.nodes.values())

    def get_edge(self, source: str, target: str) -> EdgeSpec | None:
        return self.edge_specs.get((source, target))

    def get_edge_metadata(self, source: str, target: str) -> dict[str, Any]:
        spec = self.edge_specs.get((source, target))
        return dict(spec.metadata) if spec else {}

    def get_dependencies(self, name: str) -> list[str]:
        """Dependencies of ``name`` that are present in this graph."""
        return [dep for dep in self._require(name).dependencies if dep in self.nodes]

    def get_successors(self, name: str) -> list[str]:
        self._require(name)
        return self.successor_map()[name]

    def successor_map(self) -> dict[str, list[str]]:
        """name -> nodes that depend on it, in node insertion order."""
        successors: dict[str, list[str]] = {name: [] for name in self.nodes}
        for node in self.nodes.values():
            for dep in node.dependencies:
                if dep in successors and node.name not in successors[dep]:
                    successors[dep].append(node.name)
        return successors

    def _require(self, name: str) -> Node:
        node = self.nodes.get(name)
        if node is None:
            raise UnknownNodeError(name)
        return node

    # === Analysis ===

    def get_topological_order(self) -> list[str]:
        """
        Order node names so every node follows all of its dependencies.

        Depth-first with three-colour marking; independent subgraphs come out
        in node insertion order. Raises CycleError naming the node reached
        while it was still in progress.
        """
        state = {name: _UNVISITED for name in self.nodes}
        order: list[str] = []

        for root in self.nodes:
            if state[root] != _UNVISITED:
                continue
            state[root] = _IN_PROGRESS
            stack: list[tuple[str, Iterator[str]]] = [(root, iter(self.get_dependencies(root)))]
            while stack:
                name, deps = stack[-1]
                for dep in deps:
                    if state[dep] == _IN_PROGRESS:
                        raise CycleError(dep)
                    if state[dep] == _UNVISITED:
                        state[dep] = _IN_PROGRESS
                        stack.append((dep, iter(self.get_dependencies(dep))))
                        break
                else:
                    stack.pop()
                    state[name] = _DONE
                    order.append(name)

        return order

    def get_roots_and_leaves(self) -> tuple[list[str], list[str]]:
        """Roots have no dependencies in the graph; leaves have no successors."""
        successors = self.successor_map()
        roots = [name for name in self.nodes if not self.get_dependencies(name)]
        leaves = [name for name in self.nodes if not successors[name]]
        return roots, leaves

    def get_node_inputs(self, name: str, results: Mapping[str, Any]) -> dict[str, Any]:
        """
        Resolve the inputs for ``name`` from static inputs and completed dependencies.

        For each dependency present in ``results``: with an input mapping on
        the edge only the mapped fields are copied; otherwise the output is
        shallow-merged and also exposed under the dependency's name.
        """
        node = self._require(name)
        inputs = dict(self.node_inputs.get(name, {}))
        for dep in node.dependencies:
            if dep not in results:
                continue
            spec = self.edge_specs.get((dep, name)) or EdgeSpec(source=dep, target=name)
            inputs.update(spec.map_inputs(results[dep]))
        return inputs

    def compute_critical_path(
        self, latency_model: Mapping[str, float] | None = None
    ) -> dict[str, float]:
        """
        Longest modeled latency from each node to completion.

        ``critical[n] = latency(n) + max(critical[s] for s in successors(n))``,
        computed in reverse topological order.
        """
        latency_model = latency_model or {}
        successors = self.successor_map()
        critical: dict[str, float] = {}
        for name in reversed(self.get_topological_order()):
            own = latency_model.get(name, self.nodes[name].get_latency())
            downstream = [critical[s] for s in successors[name]]
            critical[name] = own + (max(downstream) if downstream else 0.0)
        return critical

    def validate(self) -> list[str]:
        """Report dependencies that do not resolve to nodes in this graph."""
        errors = []
        for node in self.nodes.values():
            for dep in node.dependencies:
                if dep not in self.nodes:
                    errors.append(f"Node '{node.name}' depends on unknown node '{dep}'")
        return errors

    # === Copy / representation ===

    def copy(self, name: str | None = None) -> DAG:
        """Fully independent copy: cloned nodes, edges, edge metadata and static inputs."""
        clone = DAG(name or self.name)
        for node in self.nodes.values():
            clone.nodes[node.name] = node.copy()
        clone.edges = {source: list(targets) for source, targets in self.edges.items()}
        clone.edge_specs = {
            key: spec.model_copy(deep=True) for key, spec in self.edge_specs.items()
        }
        clone.node_inputs = copy.deepcopy(self.node_inputs)
        return clone

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "edges": [spec.model_dump() for spec in self.edge_specs.values()],
        }
