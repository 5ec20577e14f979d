"""Prompt sections: one per input category, ordered by priority (higher first).

Sections that render into the system block return text from render();
chat history and the user query render into the message sequence instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

from mnemos.agent.token_budget import estimate_tokens

if TYPE_CHECKING:
    from mnemos.agent.messages import Message
    from mnemos.memory.models import ContextFile, Memory
    from mnemos.tools.base import BaseTool

MEMORIES_HEADING = "## Relevant Memories"

_MEMORY_GUIDANCE = (
    "Memories are facts saved from earlier conversations. Prefer them over "
    "guessing when they answer the question, and mention when you rely on one. "
    "When the user shares a lasting preference, decision or fact, save it with "
    "the create_memory tool. Use search_memories to look for anything not "
    "listed here."
)

_TOOL_CALL_FORMAT = (
    "To call a tool, use native function calling when available, or emit:\n"
    '<tool_call>{"name": "<tool name>", "arguments": {...}}</tool_call>'
)


class PromptSection(ABC):
    """A block of prompt content with a stable id and an ordering priority."""

    section_id: str = ""
    priority: int = 0

    @abstractmethod
    def render(self) -> str | None:
        """Text for the system block, or None when the section renders elsewhere."""
        ...

    @property
    def estimated_tokens(self) -> int:
        return estimate_tokens(self.render())


class SystemInstructionsSection(PromptSection):
    section_id = "system"
    priority = 100

    def __init__(self, instructions: str) -> None:
        self.instructions = instructions

    def render(self) -> str | None:
        if not self.instructions.strip():
            return None
        return f"# System Instructions\n\n{self.instructions}"


class ContextNotesSection(PromptSection):
    section_id = "context_notes"
    priority = 90

    def __init__(self, notes: Sequence[ContextFile]) -> None:
        self.notes = list(notes)

    def render(self) -> str | None:
        if not self.notes:
            return None
        notes_text = "\n\n".join(
            f"[File: {note.name} ({note.source})]\n{note.content}" for note in self.notes
        )
        return (
            "## Context Notes\n\n"
            "These notes describe the user, the project and your persona. "
            "Keep them in mind for every answer. Long-term information can be "
            "stored by editing or adding files in the `Notes/` directory.\n\n"
            f"{notes_text}"
        )


class MemoriesSection(PromptSection):
    """Always present so the standing guidance reaches the model."""

    section_id = "memories"
    priority = 85

    def __init__(self, memories: Sequence[Memory]) -> None:
        self.memories = list(memories)

    def render(self) -> str | None:
        parts = [MEMORIES_HEADING, _MEMORY_GUIDANCE]
        if self.memories:
            parts.append(f"Found {len(self.memories)} relevant memories:")
            parts.extend(m.prompt_string for m in self.memories)
        else:
            parts.append("No memories were recalled for this message.")
        return "\n\n".join(parts)


class ToolsSection(PromptSection):
    section_id = "tools"
    priority = 80

    def __init__(self, tools: Sequence[BaseTool]) -> None:
        self.tools = list(tools)

    def render(self) -> str | None:
        if not self.tools:
            return None
        lines = ["## Available Tools", ""]
        for tool in self.tools:
            lines.append(tool.prompt_string)
        lines.extend(["", _TOOL_CALL_FORMAT])
        return "\n".join(lines)


class ChatHistorySection(PromptSection):
    section_id = "chat_history"
    priority = 70

    def __init__(self, messages: Sequence[Message]) -> None:
        self.messages = list(messages)

    def render(self) -> str | None:
        return None

    def render_debug(self) -> str:
        return "\n\n".join(f"[{m.role.upper()}] {m.content}" for m in self.messages)

    @property
    def estimated_tokens(self) -> int:
        return sum(estimate_tokens(m.content) for m in self.messages)


class UserQuerySection(PromptSection):
    section_id = "user_query"
    priority = 10

    def __init__(self, query: str) -> None:
        self.query = query

    def render(self) -> str | None:
        return None

    def render_debug(self) -> str:
        return self.query

    @property
    def estimated_tokens(self) -> int:
        return estimate_tokens(self.query)
