"""Tool discovery and registration for plan compilation."""

import importlib.util
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# (resolved node inputs) -> result
ToolFunction = Callable[[dict[str, Any]], Any]


def tool(name: str | None = None, description: str | None = None) -> Callable:
    """
    Mark a function in a tools module for discovery.

    Example:
        @tool(description="Look up the weather for a city")
        def weather(city: str) -> dict:
            ...
    """

    def decorator(func: Callable) -> Callable:
        func._tool_metadata = {"name": name or func.__name__, "description": description}
        return func

    return decorator


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    name: str
    description: str
    executor: ToolFunction
    parameters: dict[str, str] = field(default_factory=dict)


class ToolRegistry:
    """
    Named tool functions that plan steps resolve their ``action`` against.

    Tool Discovery Order:
    1. tools module (see discover_from_module)
    2. Manually registered tools
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        executor: ToolFunction,
        description: str | None = None,
    ) -> None:
        """
        Register a single tool taking the node's resolved inputs dict.

        Args:
            name: Tool name referenced by plan steps
            executor: Function that takes the inputs dict and returns a result
            description: Human-readable summary
        """
        if name in self._tools:
            logger.debug(f"Replacing tool '{name}'")
        self._tools[name] = RegisteredTool(
            name=name,
            description=description or executor.__doc__ or f"Execute {name}",
            executor=executor,
        )

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> Callable:
        """
        Register a function with keyword parameters as a tool.

        Only the inputs named by the function's parameters are passed (all of
        them when it accepts ``**kwargs``), so a tool can sit downstream of
        nodes producing unrelated keys. Returns ``func`` so it can be used as
        a decorator.

        Args:
            func: Function to register (sync or async)
            name: Tool name (defaults to function name)
            description: Tool description (defaults to docstring)
        """
        tool_name = name or func.__name__
        sig = inspect.signature(func)

        parameters = {}
        accepts_kwargs = False
        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue
            if param.kind is inspect.Parameter.VAR_KEYWORD:
                accepts_kwargs = True
                continue
            param_type = "any"
            if param.annotation is not inspect.Parameter.empty:
                param_type = getattr(param.annotation, "__name__", str(param.annotation))
            parameters[param_name] = param_type

        def executor(inputs: dict[str, Any]) -> Any:
            if accepts_kwargs:
                return func(**inputs)
            return func(**{key: inputs[key] for key in parameters if key in inputs})

        executor.__name__ = tool_name
        self._tools[tool_name] = RegisteredTool(
            name=tool_name,
            description=description or func.__doc__ or f"Execute {tool_name}",
            executor=executor,
            parameters=parameters,
        )
        return func

    def discover_from_module(self, module_path: Path) -> int:
        """
        Load tools from a Python module file.

        Looks for:
        - TOOLS: dict[str, callable] - functions taking the inputs dict
        - Functions decorated with @tool

        Args:
            module_path: Path to a tools.py file

        Returns:
            Number of tools discovered
        """
        module_path = Path(module_path)
        if not module_path.exists():
            return 0

        spec = importlib.util.spec_from_file_location("plan_tools", module_path)
        if spec is None or spec.loader is None:
            return 0

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        count = 0
        for name, func in getattr(module, "TOOLS", {}).items():
            self.register(name, func)
            count += 1

        for attr in dir(module):
            obj = getattr(module, attr)
            if callable(obj) and hasattr(obj, "_tool_metadata"):
                metadata = obj._tool_metadata
                self.register_function(
                    obj,
                    name=metadata.get("name", attr),
                    description=metadata.get("description"),
                )
                count += 1

        logger.info(f"Discovered {count} tools from {module_path}")
        return count

    def get(self, name: str) -> ToolFunction | None:
        registered = self._tools.get(name)
        return registered.executor if registered else None

    def get_registered_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def describe(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"description": rt.description, "parameters": dict(rt.parameters)}
            for name, rt in self._tools.items()
        }

    def as_tool_map(self) -> dict[str, ToolFunction]:
        """Snapshot of ``{name: executor}`` for ``parse_plan``."""
        return {name: rt.executor for name, rt in self._tools.items()}
