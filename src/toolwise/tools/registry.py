"""Tool registry: the catalog the selector explores and falls back to.

This module provides the ToolRegistry class which manages all available
tools and answers lookup-by-name and enumerate-all queries. Registration
may happen from any thread while agent sessions read the catalog, so the
underlying dict is guarded by a lock and readers get copies.
"""

import threading
from typing import Callable

from toolwise.logging import get_logger
from toolwise.tools.base import BaseTool

logger = get_logger("toolwise.tools.registry")


class ToolRegistry:
    """Registry for managing tools.

    Tools are enumerated in registration order, which makes "first catalog
    entry" a stable notion for the selector's fallback path.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register(EchoTool())
        >>> registry.get("echo")
        <EchoTool name='echo' risk=low>
    """

    def __init__(self):
        """Initialize an empty tool registry."""
        self._tools: dict[str, BaseTool] = {}
        self._lock = threading.Lock()

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        with self._lock:
            if tool.name in self._tools:
                raise ValueError(f"Tool '{tool.name}' is already registered")
            self._tools[tool.name] = tool

        logger.info(f"Registered tool: {tool.name} (risk: {tool.risk_level.value})")

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name.

        Returns:
            BaseTool | None: The tool instance, or None if not found
        """
        with self._lock:
            return self._tools.get(name)

    def list_all(self) -> list[BaseTool]:
        """Get a snapshot of all registered tools, in registration order."""
        with self._lock:
            return list(self._tools.values())

    def get_tool_names(self) -> list[str]:
        with self._lock:
            return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def count(self) -> int:
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return self.has_tool(name)

    def __repr__(self) -> str:
        names = ", ".join(self.get_tool_names())
        return f"<ToolRegistry: {self.count()} tools ({names})>"


def register_builtin_tools(
    registry: ToolRegistry,
    factories: list[Callable[[], BaseTool]] | None = None,
) -> ToolRegistry:
    """Register the built-in tools on a registry, skipping ones already present.

    Args:
        registry: Registry to populate
        factories: Tool constructors (defaults to the built-in tools)

    Returns:
        ToolRegistry: The same registry
    """
    if factories is None:
        from toolwise.tools.builtin import EchoTool, MathCalculateTool

        factories = [MathCalculateTool, EchoTool]

    for factory in factories:
        tool = factory()
        if not registry.has_tool(tool.name):
            registry.register(tool)

    return registry
