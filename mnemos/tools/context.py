"""Sticky tool contexts.

A ToolContext is a scoped sub-session (for example a document viewer) that
a gateway tool activates. While active, its context tools are available and
their output carries the rendered context state. Calling any tool outside the
context deactivates a non-persistent context.

State machine: inactive -> active(context_id) -> inactive.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any

import structlog

from mnemos.agent.messages import ToolResult
from mnemos.tools.base import BaseTool

logger = structlog.get_logger()


class ContextState(StrEnum):
    inactive = "inactive"
    active = "active"


class ToolContext(ABC):
    """A scoped tool environment with its own tools and state."""

    @property
    @abstractmethod
    def context_id(self) -> str:
        """Identifier; equals the name of the gateway tool that opens it."""
        ...

    @property
    def display_name(self) -> str:
        return self.context_id

    @property
    def is_persistent(self) -> bool:
        """Persistent contexts survive calls to unrelated tools."""
        return False

    @property
    @abstractmethod
    def context_tools(self) -> list[BaseTool]: ...

    async def activate(self) -> None:
        return None

    async def deactivate(self) -> None:
        return None

    @abstractmethod
    def format_state(self) -> str:
        """Current state, appended to context-tool output."""
        ...

    def welcome_message(self) -> str:
        tool_list = "\n".join(f"- `{t.name}`: {t.description}" for t in self.context_tools)
        exit_note = (
            "This context persists across other tool calls."
            if self.is_persistent
            else "Calling any non-context tool will exit this context."
        )
        return (
            f"{self.display_name} activated.\n\n"
            f"Available commands:\n{tool_list}\n\n"
            f"Note: {exit_note}\n\n"
            f"{self.format_state()}"
        )


class ToolContextSession:
    """Holds at most one active ToolContext for a session."""

    def __init__(self) -> None:
        self._state = ContextState.inactive
        self._active: ToolContext | None = None
        self._tool_names: frozenset[str] = frozenset()

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def active_context(self) -> ToolContext | None:
        return self._active

    @property
    def has_active_context(self) -> bool:
        return self._state is ContextState.active

    @property
    def active_context_id(self) -> str | None:
        return self._active.context_id if self._active else None

    async def activate(self, context: ToolContext) -> None:
        """Make context the active one, closing a previous non-persistent context."""
        if self._active is not None and not self._active.is_persistent:
            logger.info("tool_context_deactivated", context_id=self._active.context_id)
            await self._active.deactivate()

        self._active = context
        self._tool_names = frozenset(t.name for t in context.context_tools)
        self._state = ContextState.active
        await context.activate()
        logger.info("tool_context_activated", context_id=context.context_id)

    async def deactivate(self) -> None:
        """Close the active context unless it is persistent."""
        if self._active is None:
            return
        if self._active.is_persistent:
            logger.debug("tool_context_persistent", context_id=self._active.context_id)
            return
        await self._close()

    async def force_deactivate(self) -> None:
        if self._active is None:
            return
        await self._close()

    def is_context_tool(self, name: str) -> bool:
        return name in self._tool_names

    def is_active_context_gateway(self, name: str) -> bool:
        return self._active is not None and self._active.context_id == name

    def context_tools(self) -> list[BaseTool]:
        return list(self._active.context_tools) if self._active else []

    async def _close(self) -> None:
        context = self._active
        assert context is not None
        logger.info("tool_context_deactivated", context_id=context.context_id)
        await context.deactivate()
        self._active = None
        self._tool_names = frozenset()
        self._state = ContextState.inactive


class ContextGatewayTool(BaseTool):
    """Entry tool of a ToolContext, bound to one session's ToolContextSession.

    Its name is the context id. Calling it activates the context (a no-op when
    already active) and returns the welcome message.
    """

    def __init__(
        self,
        context: ToolContext,
        context_session: ToolContextSession,
        description: str | None = None,
    ) -> None:
        self._context = context
        self._context_session = context_session
        self._description = description

    @property
    def name(self) -> str:
        return self._context.context_id

    @property
    def description(self) -> str:
        return self._description or f"Open the {self._context.display_name} context."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    @property
    def context(self) -> ToolContext:
        return self._context

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        if not self._context_session.is_active_context_gateway(self.name):
            await self._context_session.activate(self._context)
        return ToolResult.ok(self._context.welcome_message())
