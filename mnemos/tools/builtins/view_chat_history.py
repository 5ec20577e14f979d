"""Chat history tool: lets the model read turns hidden by prompt truncation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from mnemos.agent.messages import ToolResult
from mnemos.tools.base import BaseTool

if TYPE_CHECKING:
    from mnemos.agent.messages import Message

HistoryLoader = Callable[[], Awaitable[list["Message"]]]

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class ViewChatHistoryTool(BaseTool):
    """Pages through the session transcript, oldest first."""

    def __init__(self, load_history: HistoryLoader) -> None:
        self._load_history = load_history

    @property
    def name(self) -> str:
        return "view_chat_history"

    @property
    def description(self) -> str:
        return (
            "Read earlier messages of this conversation that are no longer in "
            "the prompt. Messages are numbered from 0 (oldest)."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "offset": {"type": "integer", "description": "Index of the first message."},
                "limit": {
                    "type": "integer",
                    "description": f"Number of messages (default {DEFAULT_LIMIT}).",
                },
            },
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        offset = arguments.get("offset", 0)
        limit = arguments.get("limit", DEFAULT_LIMIT)
        if not isinstance(offset, int) or offset < 0:
            return ToolResult.fail("offset must be a non-negative integer.")
        if not isinstance(limit, int) or limit < 1:
            limit = DEFAULT_LIMIT
        limit = min(limit, MAX_LIMIT)

        history = await self._load_history()
        page = history[offset : offset + limit]
        if not page:
            return ToolResult.ok(f"No messages at offset {offset} (total {len(history)}).")

        lines = [
            f"#{offset + i} [{m.role.upper()}] {m.content}" for i, m in enumerate(page)
        ]
        lines.append(f"(showing {len(page)} of {len(history)} messages)")
        return ToolResult.ok("\n\n".join(lines))
