from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mnemos.agent.messages import Message
    from mnemos.memory.models import ContextBundle


@dataclass
class ContextReady:
    """Retrieval finished for the turn; carries the bundle for debug views."""

    bundle: ContextBundle


@dataclass
class ThinkingChunk:
    """A chunk of reasoning text (inside a think block)."""

    content: str


@dataclass
class TextChunk:
    """A chunk of visible text content from the LLM response."""

    content: str


@dataclass
class Reclassified:
    """Previously streamed text was reasoning after all.

    Consumers replace their thinking/content buffers with these values.
    """

    thinking: str
    content: str


@dataclass
class ToolCallInfo:
    """Notification that a tool is being called."""

    tool_name: str
    arguments: dict
    call_id: str


@dataclass
class ToolResultInfo:
    """A tool finished; content is what the model will see."""

    tool_name: str
    call_id: str
    content: str


@dataclass
class TurnComplete:
    """Final assistant message of the turn."""

    message: Message
    cancelled: bool = False


AgentEvent = (
    ContextReady
    | ThinkingChunk
    | TextChunk
    | Reclassified
    | ToolCallInfo
    | ToolResultInfo
    | TurnComplete
)
