"""Memory creation tool: embed and store a new long-term memory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from mnemos.agent.messages import ToolResult
from mnemos.memory.models import Memory
from mnemos.tools.base import BaseTool

if TYPE_CHECKING:
    from mnemos.memory.contracts import EmbeddingProvider, MemoryStore

logger = structlog.get_logger()


def _parse_tags(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return []
    tags: list[str] = []
    for item in raw:
        tag = str(item).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


class CreateMemoryTool(BaseTool):
    """Save a fact the user wants remembered across conversations."""

    def __init__(self, store: MemoryStore, embedder: EmbeddingProvider) -> None:
        self._store = store
        self._embedder = embedder

    @property
    def name(self) -> str:
        return "create_memory"

    @property
    def description(self) -> str:
        return (
            "Save a lasting fact, preference or decision to long-term memory. "
            "Use a short descriptive title and a few topic tags."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Short title."},
                "content": {"type": "string", "description": "The fact to remember."},
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Topic tags for tag-based recall.",
                },
            },
            "required": ["title", "content"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        title = arguments.get("title", "")
        content = arguments.get("content", "")
        if not isinstance(title, str) or not title.strip():
            return ToolResult.fail("title must be a non-empty string.")
        if not isinstance(content, str) or not content.strip():
            return ToolResult.fail("content must be a non-empty string.")

        embedding = await self._embedder.generate_embedding(f"{title.strip()}\n{content.strip()}")
        memory = await self._store.save_memory(
            Memory(
                title=title.strip(),
                content=content.strip(),
                tags=_parse_tags(arguments.get("tags", [])),
                embedding=embedding,
            )
        )
        logger.info("memory_created", memory_id=memory.id, tags=memory.tags)
        return ToolResult.ok(f"Memory saved: {memory.title} (id: {memory.id})")
