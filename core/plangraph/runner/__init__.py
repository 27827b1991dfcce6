"""Tool registration for plan compilation."""

from plangraph.runner.tool_registry import RegisteredTool, ToolRegistry, tool

__all__ = ["RegisteredTool", "ToolRegistry", "tool"]
