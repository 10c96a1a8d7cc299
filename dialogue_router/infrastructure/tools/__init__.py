from .tool_registry import ToolExecutor, ToolRegistry, tool_spec

__all__ = ["ToolExecutor", "ToolRegistry", "tool_spec"]
