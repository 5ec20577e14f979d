"""Tool execution with loop detection, sticky contexts, and permission gating.

Per call: loop check -> context stickiness -> lookup -> permission -> execute -> format.
Only an unknown tool raises (ToolNotFoundError); every other failure comes
back as a tool-role Message the model can react to.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from mnemos.agent.messages import Message, ToolCall
from mnemos.infra.errors import ToolNotFoundError

if TYPE_CHECKING:
    from mnemos.tools.context import ToolContextSession
    from mnemos.tools.permissions import PermissionGate
    from mnemos.tools.registry import SessionToolSet, ToolRegistry

logger = structlog.get_logger()

DEFAULT_MAX_REPEATED_CALLS = 3
CANCELLED_BEFORE_EXECUTION = "Cancelled before execution"


def loop_detected_message(name: str, count: int) -> str:
    return (
        f"Error: Loop detected. Tool '{name}' has been called {count} times with the "
        "exact same parameters. Please try a different approach or verify your logic."
    )


class ToolExecutor:
    """Executes tool calls for one session."""

    def __init__(
        self,
        registry: ToolRegistry | SessionToolSet,
        context_session: ToolContextSession,
        permission_gate: PermissionGate,
        working_directory: str,
        max_repeated_calls: int = DEFAULT_MAX_REPEATED_CALLS,
    ) -> None:
        self._registry = registry
        self._context_session = context_session
        self._permission_gate = permission_gate
        self.working_directory = working_directory
        self._max_repeated_calls = max_repeated_calls
        self._call_counts: Counter[ToolCall] = Counter()

    @property
    def context_session(self) -> ToolContextSession:
        return self._context_session

    @property
    def permission_gate(self) -> PermissionGate:
        return self._permission_gate

    def reset(self) -> None:
        """Clear loop detection counters."""
        self._call_counts.clear()

    async def execute(self, tool_call: ToolCall) -> Message:
        """Run one call. Raises ToolNotFoundError for an unknown tool."""
        self._call_counts[tool_call] += 1
        count = self._call_counts[tool_call]
        if count >= self._max_repeated_calls:
            logger.warning("tool_loop_detected", tool_name=tool_call.name, count=count)
            return Message.tool(loop_detected_message(tool_call.name, count), tool_call.id)

        contexts = self._context_session
        is_context_tool = contexts.is_context_tool(tool_call.name)
        if (
            contexts.has_active_context
            and not is_context_tool
            and not contexts.is_active_context_gateway(tool_call.name)
        ):
            logger.info(
                "tool_context_auto_exit",
                context_id=contexts.active_context_id,
                tool_name=tool_call.name,
            )
            await contexts.deactivate()

        tool = self._registry.get(tool_call.name)
        if tool is None:
            logger.error("tool_not_found", tool_name=tool_call.name)
            raise ToolNotFoundError(tool_call.name)

        allowed = await self._permission_gate.check(
            tool, tool_call.arguments, self.working_directory
        )
        if not allowed:
            return Message.tool(
                f"Error: Permission denied for tool '{tool_call.name}'.", tool_call.id
            )

        logger.info("tool_executing", tool_name=tool.name, call_id=tool_call.id)
        try:
            result = await tool.execute(tool_call.arguments)
        except Exception as e:
            logger.exception("tool_execution_failed", tool_name=tool.name)
            return Message.tool(f"Failed to execute tool {tool.name}: {e}", tool_call.id)

        if result.success:
            content = result.output
            logger.info("tool_executed", tool_name=tool.name)
        else:
            content = f"Error: {result.error or 'Unknown error'}"
            logger.warning("tool_failed", tool_name=tool.name, error=result.error)

        if contexts.has_active_context and contexts.is_context_tool(tool.name):
            context = contexts.active_context
            state = context.format_state() if context else ""
            if state:
                content += f"\n\n---\n{state}"

        return Message.tool(
            content,
            tool_call.id,
            subagent_context=result.subagent_context,
            debug_info={"summary": tool.summarize(tool_call.arguments, result)},
        )

    async def execute_all(
        self,
        tool_calls: Sequence[ToolCall],
        cancel_event: asyncio.Event | None = None,
    ) -> list[Message]:
        """Run all calls concurrently; results keep submission order."""
        if cancel_event is not None and cancel_event.is_set():
            logger.info("tool_batch_cancelled", count=len(tool_calls))
            return [Message.tool(CANCELLED_BEFORE_EXECUTION, c.id) for c in tool_calls]

        logger.debug("tool_batch_started", count=len(tool_calls))
        return list(await asyncio.gather(*(self._execute_in_batch(c) for c in tool_calls)))

    async def _execute_in_batch(self, tool_call: ToolCall) -> Message:
        try:
            return await self.execute(tool_call)
        except ToolNotFoundError as e:
            return Message.tool(f"Failed to execute tool {tool_call.name}: {e}", tool_call.id)
