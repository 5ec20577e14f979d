from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mnemos.memory.models import Memory


class MessageRole(StrEnum):
    user = "user"
    assistant = "assistant"
    system = "system"
    tool = "tool"
    summary = "summary"  # synthetic truncation marker, folded into a system turn


def canonical_arguments(arguments: dict[str, Any]) -> str:
    """Stable JSON text for an argument mapping (sorted keys, compact)."""
    return json.dumps(arguments, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


@dataclass(frozen=True, eq=False)
class ToolCall:
    """A model-requested tool invocation.

    Equality and hash cover (name, arguments) only, so two calls with the
    same request but different ids compare equal.
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:24]}")

    @property
    def signature(self) -> tuple[str, str]:
        return (self.name, canonical_arguments(self.arguments))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ToolCall):
            return NotImplemented
        return self.signature == other.signature

    def __hash__(self) -> int:
        return hash(self.signature)

    def to_openai(self) -> dict[str, Any]:
        """Render in OpenAI assistant tool_calls format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": canonical_arguments(self.arguments)},
        }


@dataclass
class ToolResult:
    success: bool
    output: str = ""
    error: str | None = None
    subagent_context: str | None = None

    @classmethod
    def ok(cls, output: str, *, subagent_context: str | None = None) -> ToolResult:
        return cls(success=True, output=output, subagent_context=subagent_context)

    @classmethod
    def fail(cls, error: str) -> ToolResult:
        return cls(success=False, error=error)


@dataclass
class Message:
    role: MessageRole
    content: str
    think: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    recalled_memories: list[Memory] = field(default_factory=list)
    subagent_context: str | None = None
    debug_info: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.user, content=content)

    @classmethod
    def tool(cls, content: str, tool_call_id: str, **kwargs: Any) -> Message:
        return cls(role=MessageRole.tool, content=content, tool_call_id=tool_call_id, **kwargs)
