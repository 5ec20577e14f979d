"""Memory search tool: semantic search over stored memories."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mnemos.agent.messages import ToolResult
from mnemos.tools.base import BaseTool

if TYPE_CHECKING:
    from mnemos.memory.contracts import EmbeddingProvider, MemoryStore

DEFAULT_LIMIT = 5


class SearchMemoriesTool(BaseTool):
    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        *,
        min_similarity: float = 0.35,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._min_similarity = min_similarity

    @property
    def name(self) -> str:
        return "search_memories"

    @property
    def description(self) -> str:
        return "Search long-term memory for facts related to a query."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query."},
                "limit": {
                    "type": "integer",
                    "description": f"Maximum number of results (default {DEFAULT_LIMIT}).",
                },
            },
            "required": ["query"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        query = arguments.get("query", "")
        if not isinstance(query, str) or not query.strip():
            return ToolResult.fail("query must be a non-empty string.")

        limit = arguments.get("limit", DEFAULT_LIMIT)
        if not isinstance(limit, int) or limit < 1:
            limit = DEFAULT_LIMIT

        embedding = await self._embedder.generate_embedding(query.strip())
        results = await self._store.search_by_embedding(embedding, limit, self._min_similarity)
        if not results:
            return ToolResult.ok(f"No memories found for '{query.strip()}'.")

        lines = [f"Found {len(results)} memories:"]
        for r in results:
            similarity = f" (similarity {r.similarity:.2f})" if r.similarity is not None else ""
            lines.append(f"{r.memory.prompt_string}{similarity}")
        return ToolResult.ok("\n\n".join(lines))
