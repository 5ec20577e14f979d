from __future__ import annotations

from typing import TYPE_CHECKING

from mnemos.tools.builtins.create_memory import CreateMemoryTool
from mnemos.tools.builtins.job_queue import JobQueueContext
from mnemos.tools.builtins.search_memories import SearchMemoriesTool
from mnemos.tools.builtins.view_chat_history import HistoryLoader, ViewChatHistoryTool
from mnemos.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from mnemos.memory.contracts import EmbeddingProvider, MemoryStore


def register_builtins(
    registry: ToolRegistry,
    store: MemoryStore,
    embedder: EmbeddingProvider,
    *,
    history_loader: HistoryLoader | None = None,
    min_similarity: float = 0.35,
) -> None:
    """Register all built-in tools with the registry.

    view_chat_history is registered only when a history loader is supplied.
    """
    registry.register(CreateMemoryTool(store, embedder))
    registry.register(SearchMemoriesTool(store, embedder, min_similarity=min_similarity))
    if history_loader is not None:
        registry.register(ViewChatHistoryTool(history_loader))


__all__ = [
    "CreateMemoryTool",
    "JobQueueContext",
    "SearchMemoriesTool",
    "ViewChatHistoryTool",
    "register_builtins",
]
