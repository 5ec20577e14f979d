from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from mnemos.agent.messages import Message, MessageRole
from mnemos.agent.prompt_sections import (
    ChatHistorySection,
    ContextNotesSection,
    MemoriesSection,
    PromptSection,
    SystemInstructionsSection,
    ToolsSection,
    UserQuerySection,
)
from mnemos.agent.token_budget import estimate_tokens

if TYPE_CHECKING:
    from mnemos.config.settings import PromptSettings
    from mnemos.memory.models import ContextFile, Memory
    from mnemos.tools.base import BaseTool

logger = structlog.get_logger()

SECTION_SEPARATOR = "\n\n---\n\n"

TOOL_RESPONSE_INSTRUCTION = (
    "[System: This is a system message hidden from user; "
    "now respond to the user about this result.]"
)

DEFAULT_SYSTEM_INSTRUCTIONS = (
    "You are Mnemos, a personal AI assistant with long-term memory. "
    "You help the user think, plan and get things done, and you remember "
    "what matters to them across conversations.\n\n"
    "Be concise and honest. When you are unsure, say so rather than guessing. "
    "Think through hard problems inside <think></think> before answering; the "
    "user sees only the text outside the think block.\n\n"
    "Use tools when they help. Call one tool at a time unless the calls are "
    "independent, and read each result before deciding the next step."
)


def default_instructions(*, persona: str | None = None, guardrails: str | None = None) -> str:
    """Default system script, optionally extended with persona and guardrail text."""
    parts = [DEFAULT_SYSTEM_INSTRUCTIONS]
    if persona:
        parts.append(f"## Persona\n\n{persona.strip()}")
    if guardrails:
        parts.append(f"## Guardrails\n\n{guardrails.strip()}")
    return "\n\n".join(parts)


def summary_text(hidden: int) -> str:
    return (
        f"[Earlier: {hidden} messages hidden. "
        "Use the view_chat_history tool to retrieve them.]"
    )


@dataclass(frozen=True)
class BuiltPrompt:
    """Assembled prompt: transport-neutral messages plus debug views."""

    messages: list[dict[str, Any]]
    raw_prompt: str
    structured_sections: dict[str, str] = field(default_factory=dict)
    history: list[Message] = field(default_factory=list)


class PromptBuilder:
    """Assembles a token-budgeted message sequence from prompt sections.

    Order of the system block (highest priority first):
    1. System instructions (default script when none supplied)
    2. Context notes
    3. Tools
    4. Relevant memories (always present, appended last under its own heading)

    Chat history fills the remaining budget from the newest message backward.
    """

    def __init__(self, max_context_tokens: int = 120_000) -> None:
        self._max_context_tokens = max_context_tokens

    @classmethod
    def from_settings(cls, settings: PromptSettings) -> PromptBuilder:
        # The response reserve is carved out of the context window up front
        return cls(settings.max_context_tokens - settings.reserve_tokens_for_response)

    @property
    def max_context_tokens(self) -> int:
        return self._max_context_tokens

    def build_prompt(
        self,
        system_instructions: str | None = None,
        notes: Sequence[ContextFile] = (),
        memories: Sequence[Memory] = (),
        tools: Sequence[BaseTool] = (),
        history: Sequence[Message] = (),
        user_query: str = "",
    ) -> BuiltPrompt:
        sections: list[PromptSection] = [
            SystemInstructionsSection(system_instructions or DEFAULT_SYSTEM_INSTRUCTIONS),
            MemoriesSection(_aggregate_memories(memories, history)),
        ]
        if notes:
            sections.append(ContextNotesSection(notes))
        if tools:
            sections.append(ToolsSection(tools))
        if history:
            sections.append(ChatHistorySection(history))
        if user_query:
            sections.append(UserQuerySection(user_query))
        sections.sort(key=lambda s: s.priority, reverse=True)

        system_content = self._render_system_block(sections)
        budget = self._max_context_tokens - estimate_tokens(system_content)
        kept = optimize_history(history, budget)

        messages: list[dict[str, Any]] = []
        if system_content:
            messages.append({"role": "system", "content": system_content})
        messages.extend(to_transport(m) for m in kept)
        if user_query:
            messages.append({"role": "user", "content": user_query})

        structured = self._structured_sections(sections, kept)
        raw_prompt = "\n\n".join(
            f"=== {section_id.upper()} ===\n{text}" for section_id, text in structured.items()
        )

        logger.debug(
            "prompt_built",
            sections=[s.section_id for s in sections],
            history_in=len(history),
            history_kept=len(kept),
            system_tokens=estimate_tokens(system_content),
        )
        return BuiltPrompt(
            messages=messages,
            raw_prompt=raw_prompt,
            structured_sections=structured,
            history=kept,
        )

    def _render_system_block(self, sections: Sequence[PromptSection]) -> str:
        parts: list[str] = []
        memories_text: str | None = None
        for section in sections:
            if section.section_id == MemoriesSection.section_id:
                memories_text = section.render()
                continue
            text = section.render()
            if text:
                parts.append(text)
        if memories_text:
            parts.append(memories_text)
        return SECTION_SEPARATOR.join(parts)

    def _structured_sections(
        self, sections: Sequence[PromptSection], kept: Sequence[Message]
    ) -> dict[str, str]:
        structured: dict[str, str] = {}
        for section in sections:
            if isinstance(section, ChatHistorySection):
                if kept:
                    structured[section.section_id] = ChatHistorySection(kept).render_debug()
            elif isinstance(section, UserQuerySection):
                structured[section.section_id] = section.render_debug()
            else:
                text = section.render()
                if text:
                    structured[section.section_id] = text
        return structured


def optimize_history(history: Sequence[Message], budget: int) -> list[Message]:
    """Keep the newest messages that fit the budget, oldest-kept first.

    When anything is dropped, a single summary message leads the result.
    """
    kept: list[Message] = []
    used = 0
    for message in reversed(history):
        tokens = estimate_tokens(message.content)
        if used + tokens > budget:
            hidden = len(history) - len(kept)
            kept.append(Message(role=MessageRole.summary, content=summary_text(hidden)))
            logger.info("history_truncated", hidden=hidden, kept=len(kept) - 1)
            break
        kept.append(message)
        used += tokens
    kept.reverse()
    return kept


def to_transport(message: Message) -> dict[str, Any]:
    """Map a Message onto the OpenAI-shaped chat message contract."""
    role = message.role
    if role == MessageRole.user:
        return {"role": "user", "content": message.content}
    if role == MessageRole.assistant:
        content = message.content
        if message.think:
            content = f"<think>{message.think}</think>\n{content}"
        entry: dict[str, Any] = {"role": "assistant", "content": content}
        if message.tool_calls:
            entry["tool_calls"] = [call.to_openai() for call in message.tool_calls]
        return entry
    if role == MessageRole.tool:
        return {
            "role": "user",
            "content": (
                f"<tool_response>\n{message.content}\n</tool_response>\n\n"
                f"{TOOL_RESPONSE_INSTRUCTION}"
            ),
        }
    # system and summary
    return {"role": "system", "content": message.content}


def _aggregate_memories(memories: Sequence[Memory], history: Sequence[Message]) -> list[Memory]:
    """Current memories first, then ones recalled for earlier turns, unique by id."""
    merged: list[Memory] = []
    seen: set[str] = set()
    for memory in [*memories, *(m for msg in history for m in msg.recalled_memories)]:
        if memory.id in seen:
            continue
        seen.add(memory.id)
        merged.append(memory)
    return merged
