from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog

from mnemos.tools.base import BaseTool

if TYPE_CHECKING:
    from mnemos.tools.context import ToolContextSession

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for agent tools. Provides lookup and schema export."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool. Raises ValueError if name already registered."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def unregister(self, name: str) -> bool:
        removed = self._tools.pop(name, None) is not None
        if removed:
            logger.info("tool_unregistered", tool_name=name)
        return removed

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name. Returns None if not found."""
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def list_tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get_tools_schema(self) -> list[dict]:
        """Return tools in OpenAI function calling format.

        Output format:
        [{"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}]
        """
        return [tool.to_openai_schema() for tool in self._tools.values()]


class SessionToolSet:
    """Per-session view of the registry: enabled names plus active-context tools.

    Lookup order: tools of the active sticky context, then session-bound
    tools, then enabled registry tools.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        context_session: ToolContextSession,
        enabled: Iterable[str] | None = None,
    ) -> None:
        self._registry = registry
        self._context_session = context_session
        self._enabled: set[str] | None = set(enabled) if enabled is not None else None
        self._session_tools: dict[str, BaseTool] = {}

    def add_session_tool(self, tool: BaseTool) -> None:
        """Attach a tool bound to this session only (e.g. its history reader)."""
        self._session_tools[tool.name] = tool

    def enable(self, name: str) -> None:
        if self._enabled is not None:
            self._enabled.add(name)

    def disable(self, name: str) -> None:
        if self._enabled is None:
            self._enabled = {t.name for t in self._registry.list_tools()}
        self._enabled.discard(name)

    def is_enabled(self, name: str) -> bool:
        return self._enabled is None or name in self._enabled

    def get(self, name: str) -> BaseTool | None:
        for tool in self._context_session.context_tools():
            if tool.name == name:
                return tool
        if name in self._session_tools:
            return self._session_tools[name]
        if not self.is_enabled(name):
            return None
        return self._registry.get(name)

    def list_tools(self) -> list[BaseTool]:
        tools = [
            t
            for t in self._registry.list_tools()
            if self.is_enabled(t.name) and t.name not in self._session_tools
        ]
        tools.extend(self._session_tools.values())
        names = {t.name for t in tools}
        tools.extend(t for t in self._context_session.context_tools() if t.name not in names)
        return tools

    def get_tools_schema(self) -> list[dict]:
        return [tool.to_openai_schema() for tool in self.list_tools()]
