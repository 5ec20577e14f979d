"""In-process MemoryStore: memories in a dict, embeddings in a VectorIndex.

Always-include notes are read from a Notes/ directory of Markdown files.
"""

from __future__ import annotations

import copy
import itertools
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from mnemos.memory.contracts import MemoryStore
from mnemos.memory.models import ContextFile, Memory, SemanticSearchResult
from mnemos.memory.vector_math import normalize

if TYPE_CHECKING:
    from mnemos.memory.vector_index import VectorIndex

logger = structlog.get_logger()

NOTES_DIRNAME = "Notes"


class VectorMemoryStore(MemoryStore):
    """Reference store used by sessions and tests.

    Index keys are integers assigned on first save; memory ids stay opaque strings.
    """

    def __init__(self, index: VectorIndex, notes_root: Path | None = None) -> None:
        self._index = index
        self._notes_root = notes_root
        self._memories: dict[str, Memory] = {}
        self._keys: dict[str, int] = {}
        self._ids: dict[int, str] = {}
        self._key_counter = itertools.count(1)

    @property
    def index(self) -> VectorIndex:
        return self._index

    def for_workspace(self, root: Path) -> VectorMemoryStore:
        # Shallow copy shares memories, key maps and the index
        view = copy.copy(self)
        view._notes_root = root
        return view

    def __len__(self) -> int:
        return len(self._memories)

    async def save_memory(self, memory: Memory) -> Memory:
        if memory.embedding:
            memory.embedding = normalize(memory.embedding)
        self._memories[memory.id] = memory
        self._reindex(memory)
        logger.info("memory_saved", memory_id=memory.id, tags=len(memory.tags))
        return memory

    async def fetch_memory(self, memory_id: str) -> Memory | None:
        return self._memories.get(memory_id)

    async def search_by_embedding(
        self,
        embedding: Sequence[float],
        limit: int,
        min_similarity: float,
    ) -> list[SemanticSearchResult]:
        results: list[SemanticSearchResult] = []
        for key, distance in self._index.search(embedding, limit):
            memory_id = self._ids.get(key)
            if memory_id is None:
                continue
            similarity = 1.0 - distance
            if similarity < min_similarity:
                continue
            results.append(
                SemanticSearchResult(memory=self._memories[memory_id], similarity=similarity)
            )
        return results

    async def search_by_tags(self, tags: Sequence[str]) -> list[Memory]:
        wanted = {t.strip().lower() for t in tags if t.strip()}
        if not wanted:
            return []
        return [m for m in self._memories.values() if m.tag_set & wanted]

    async def update_embedding(self, memory_id: str, embedding: Sequence[float]) -> None:
        memory = self._memories.get(memory_id)
        if memory is None:
            raise KeyError(f"Memory not found: {memory_id}")
        memory.embedding = normalize(embedding)
        memory.updated_at = datetime.now(UTC)
        self._reindex(memory)

    async def delete_memory(self, memory_id: str) -> bool:
        memory = self._memories.pop(memory_id, None)
        if memory is None:
            return False
        key = self._keys.pop(memory_id, None)
        if key is not None:
            self._ids.pop(key, None)
            self._index.remove(key)
        return True

    async def fetch_context_notes(self) -> list[ContextFile]:
        """Read every Notes/*.md file, sorted by filename."""
        if self._notes_root is None:
            return []
        notes_dir = self._notes_root / NOTES_DIRNAME
        if not notes_dir.is_dir():
            return []

        notes: list[ContextFile] = []
        for path in sorted(notes_dir.glob("*.md"), key=lambda p: p.name):
            try:
                content = path.read_text(encoding="utf-8")
            except OSError:
                logger.warning("context_note_read_failed", path=str(path))
                continue
            notes.append(
                ContextFile(
                    name=path.stem,
                    content=content,
                    source=f"{NOTES_DIRNAME}/{path.name}",
                )
            )
        return notes

    def _reindex(self, memory: Memory) -> None:
        key = self._keys.get(memory.id)
        if key is None:
            key = next(self._key_counter)
            self._keys[memory.id] = key
            self._ids[key] = memory.id
        if memory.embedding:
            self._index.add([memory.embedding], [key])
        else:
            self._index.remove(key)
