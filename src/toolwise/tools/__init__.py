"""Tool framework: base classes, the tool catalog and built-in tools."""

from toolwise.tools.base import BaseTool, RiskLevel, ToolErrorKind, ToolResult
from toolwise.tools.registry import ToolRegistry, register_builtin_tools

__all__ = [
    "BaseTool",
    "RiskLevel",
    "ToolErrorKind",
    "ToolResult",
    "ToolRegistry",
    "register_builtin_tools",
]
