"""Collaborator interfaces consumed by the retrieval pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from mnemos.memory.models import ContextFile, Memory, SemanticSearchResult

TagGenerator = Callable[[str], Awaitable[list[str]]]

# (transcript, recalled memories) -> {memory_id: score in [-1, 1]}
RecallEvaluator = Callable[[str, Sequence[Memory]], Awaitable[dict[str, float]]]


class MemoryStore(ABC):
    """Persistence for memories and always-include notes.

    Any method may raise; the retriever treats errors during search as
    fatal for the call.
    """

    @abstractmethod
    async def fetch_memory(self, memory_id: str) -> Memory | None: ...

    @abstractmethod
    async def search_by_embedding(
        self,
        embedding: Sequence[float],
        limit: int,
        min_similarity: float,
    ) -> list[SemanticSearchResult]:
        """Nearest memories with similarity >= min_similarity, best first."""
        ...

    @abstractmethod
    async def search_by_tags(self, tags: Sequence[str]) -> list[Memory]:
        """Memories carrying any of the given tags (case-insensitive)."""
        ...

    @abstractmethod
    async def update_embedding(self, memory_id: str, embedding: Sequence[float]) -> None: ...

    @abstractmethod
    async def fetch_context_notes(self) -> list[ContextFile]: ...

    @abstractmethod
    async def save_memory(self, memory: Memory) -> Memory: ...

    def for_workspace(self, root: Path) -> MemoryStore:
        """Store view whose context notes come from the given workspace.

        Memories stay shared. The default returns self (notes are global).
        """
        return self


class EmbeddingProvider(ABC):
    """Turns text into a unit-normalized embedding vector."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> list[float]: ...
