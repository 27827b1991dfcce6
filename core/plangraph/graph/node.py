"""
Node types - the units of work a DAG is built from.

Every node shares one attribute record (name, dependencies, token cost,
latency, metadata) and one capability: ``await node.execute(inputs)``
returning a dict. The concrete behaviour is picked by the node type:

- Node:       passes its resolved inputs through (join / identity step)
- ToolNode:   calls an arbitrary function with the resolved inputs
- LLMNode:    renders a prompt template and calls a registered LLM handler
- MemoryNode: key/value store driven by an ``operation`` input

Latency is a *modeled* duration in milliseconds. The scheduler sleeps for it
after the action completes so scheduling behaviour can be simulated; it is
not a measurement of real work.
"""

from __future__ import annotations

import copy
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from enum import StrEnum
from typing import Any, ClassVar

from plangraph.graph.prompt import render_prompt
from plangraph.llm.registry import DEFAULT_LLM_RUNTIME, LLMRuntimeRegistry

logger = logging.getLogger(__name__)

LatencyModel = Callable[["Node"], float]


class NodeType(StrEnum):
    """Tag identifying a node variant."""

    NODE = "node"
    TOOL = "tool"
    LLM = "llm"
    MEMORY = "memory"


class Node:
    """
    Base node: a named unit of work with declared dependencies.

    Example:
        join = Node("join", dependencies=["search", "lookup"])
        scaled = Node("expensive", token_cost=400, latency=lambda n: n.token_cost * 0.5)
    """

    node_type: ClassVar[NodeType] = NodeType.NODE

    def __init__(
        self,
        name: str,
        dependencies: Iterable[str] | None = None,
        token_cost: float = 0,
        latency: float | LatencyModel = 0.0,
        metadata: dict[str, Any] | None = None,
        input_schema: dict[str, type | tuple[type, ...]] | None = None,
    ):
        if not name:
            raise ValueError("Node name must be a non-empty string")
        if token_cost < 0:
            raise ValueError(f"Node '{name}' token_cost must be non-negative, got {token_cost}")
        self.name = name
        self.dependencies: list[str] = []
        self.token_cost = token_cost
        self.latency = latency
        self.metadata: dict[str, Any] = dict(metadata or {})
        self.input_schema = dict(input_schema or {})
        self.set_dependencies(dependencies or [])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, dependencies={self.dependencies!r})"

    # === Attributes ===

    def add_dependency(self, name: str) -> None:
        if name not in self.dependencies:
            self.dependencies.append(name)

    def set_dependencies(self, names: Iterable[str]) -> None:
        self.dependencies = []
        for name in names:
            self.add_dependency(name)

    def remove_dependency(self, name: str) -> None:
        if name in self.dependencies:
            self.dependencies.remove(name)

    def get_latency(self) -> float:
        """Modeled latency in milliseconds; calls the latency model when one is set."""
        if callable(self.latency):
            return float(self.latency(self))
        return float(self.latency or 0.0)

    def validate_inputs(self, inputs: Mapping[str, Any]) -> list[str]:
        """Check ``inputs`` against ``input_schema``. Returns a list of problems."""
        errors = []
        for key, expected in self.input_schema.items():
            if key not in inputs:
                errors.append(f"Required input '{key}' not provided")
            elif not isinstance(inputs[key], expected):
                errors.append(
                    f"Input '{key}' has type {type(inputs[key]).__name__}, "
                    f"expected {getattr(expected, '__name__', expected)}"
                )
        return errors

    # === Execution ===

    async def execute(self, inputs: dict[str, Any]) -> dict[str, Any]:
        self._check_inputs(inputs)
        return await self.run(inputs)

    async def run(self, inputs: dict[str, Any]) -> dict[str, Any]:
        """Variant behaviour. The base node passes its inputs through."""
        return dict(inputs)

    def _check_inputs(self, inputs: Mapping[str, Any]) -> None:
        errors = self.validate_inputs(inputs)
        if errors:
            raise ValueError(f"Invalid inputs for node '{self.name}': {'; '.join(errors)}")

    # === Copy / representation ===

    def copy(self) -> Node:
        """Independent clone. Actions and registries are shared, state is not."""
        clone = copy.copy(self)
        clone.dependencies = list(self.dependencies)
        clone.metadata = copy.deepcopy(self.metadata)
        clone.input_schema = dict(self.input_schema)
        return clone

    def renamed(self, name: str) -> Node:
        """Clone under a new name."""
        clone = self.copy()
        clone.name = name
        return clone

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": str(self.node_type),
            "dependencies": list(self.dependencies),
            "token_cost": self.token_cost,
            "latency": self.get_latency(),
            "metadata": dict(self.metadata),
        }


class ToolNode(Node):
    """
    Node that runs a function of its resolved inputs.

    The function may be sync or async. A result that is not a mapping is
    wrapped as ``{"result": value}``.
    """

    node_type: ClassVar[NodeType] = NodeType.TOOL

    def __init__(
        self,
        name: str,
        func: Callable[[dict[str, Any]], Any],
        dependencies: Iterable[str] | None = None,
        token_cost: float = 0,
        latency: float | LatencyModel = 0.0,
        metadata: dict[str, Any] | None = None,
        input_schema: dict[str, type | tuple[type, ...]] | None = None,
    ):
        super().__init__(name, dependencies, token_cost, latency, metadata, input_schema)
        if not callable(func):
            raise TypeError(f"ToolNode '{name}' requires a callable, got {type(func).__name__}")
        self.func = func

    async def run(self, inputs: dict[str, Any]) -> dict[str, Any]:
        result = self.func(inputs)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Mapping):
            return dict(result)
        return {"result": result}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["function"] = getattr(self.func, "__name__", repr(self.func))
        return data


class LLMNode(Node):
    """
    Node that renders a prompt template and sends it to an LLM handler.

    The handler is looked up by provider name (``metadata["provider"]`` wins
    over the constructor argument) in an ``LLMRuntimeRegistry``. A result that
    is not a mapping is wrapped as ``{"response": value}``.
    """

    node_type: ClassVar[NodeType] = NodeType.LLM

    def __init__(
        self,
        name: str,
        prompt_template: str = "",
        provider: str = "echo",
        registry: LLMRuntimeRegistry | None = None,
        dependencies: Iterable[str] | None = None,
        token_cost: float = 0,
        latency: float | LatencyModel = 0.0,
        metadata: dict[str, Any] | None = None,
        input_schema: dict[str, type | tuple[type, ...]] | None = None,
    ):
        super().__init__(name, dependencies, token_cost, latency, metadata, input_schema)
        self.prompt_template = prompt_template
        self.provider = provider
        self.registry = registry or DEFAULT_LLM_RUNTIME

    @property
    def provider_name(self) -> str:
        return self.metadata.get("provider") or self.provider

    def render(self, inputs: Mapping[str, Any]) -> str:
        return render_prompt(self.prompt_template, inputs)

    async def run(self, inputs: dict[str, Any]) -> dict[str, Any]:
        prompt = self.render(inputs)
        logger.debug(
            f"LLM node '{self.name}' -> provider '{self.provider_name}'",
            extra={"node": self.name},
        )
        result = await self.registry.call(self.provider_name, prompt, self.metadata, inputs)
        if isinstance(result, Mapping):
            return dict(result)
        return {"response": result}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["prompt_template"] = self.prompt_template
        data["provider"] = self.provider_name
        return data


class MemoryNode(Node):
    """
    Stateful key/value node.

    ``inputs["operation"]`` selects the behaviour:
    - "store" (default): keep every other input key
    - "retrieve": return ``inputs["keys"]`` (or everything)
    - "clear": delete ``inputs["keys"]`` (or everything)

    store and clear return a snapshot of the whole memory.
    """

    node_type: ClassVar[NodeType] = NodeType.MEMORY

    OPERATIONS = ("store", "retrieve", "clear")

    def __init__(
        self,
        name: str,
        dependencies: Iterable[str] | None = None,
        token_cost: float = 0,
        latency: float | LatencyModel = 0.0,
        metadata: dict[str, Any] | None = None,
        input_schema: dict[str, type | tuple[type, ...]] | None = None,
        initial: dict[str, Any] | None = None,
    ):
        super().__init__(name, dependencies, token_cost, latency, metadata, input_schema)
        self.memory: dict[str, Any] = dict(initial or {})

    async def run(self, inputs: dict[str, Any]) -> dict[str, Any]:
        operation = inputs.get("operation", "store")
        if operation not in self.OPERATIONS:
            raise ValueError(
                f"Unknown memory operation '{operation}' for node '{self.name}' "
                f"(expected one of {', '.join(self.OPERATIONS)})"
            )

        if operation == "store":
            for key, value in inputs.items():
                if key != "operation":
                    self.memory[key] = value
        elif operation == "retrieve":
            keys = inputs.get("keys") or list(self.memory)
            return {key: self.memory[key] for key in keys if key in self.memory}
        else:
            keys = inputs.get("keys") or list(self.memory)
            for key in keys:
                self.memory.pop(key, None)

        return dict(self.memory)

    def copy(self) -> Node:
        clone = super().copy()
        clone.memory = copy.deepcopy(self.memory)
        return clone

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["memory_keys"] = list(self.memory)
        return data
