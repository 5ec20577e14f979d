"""Tests for VectorMemoryStore."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import make_memory

from mnemos.memory.models import Memory
from mnemos.memory.store import VectorMemoryStore
from mnemos.memory.vector_index import InMemoryVectorIndex
from mnemos.memory.vector_math import magnitude


class TestVectorMemoryStore:
    @pytest.mark.asyncio
    async def test_save_normalizes_and_indexes(self, memory_store: VectorMemoryStore) -> None:
        memory = await memory_store.save_memory(
            Memory(title="t", content="c", embedding=[3.0, 4.0, 0.0])
        )
        assert magnitude(memory.embedding) == pytest.approx(1.0)
        assert memory_store.index.count == 1
        assert await memory_store.fetch_memory(memory.id) is memory

    @pytest.mark.asyncio
    async def test_search_by_embedding_applies_threshold(
        self, memory_store: VectorMemoryStore
    ) -> None:
        near = await memory_store.save_memory(make_memory("near", [1.0, 0.1, 0.0]))
        await memory_store.save_memory(make_memory("far", [0.0, 0.0, 1.0]))

        results = await memory_store.search_by_embedding([1.0, 0.0, 0.0], 10, 0.35)

        assert [r.memory.id for r in results] == [near.id]
        assert results[0].similarity == pytest.approx(0.995, abs=1e-3)

    @pytest.mark.asyncio
    async def test_search_by_tags_is_case_insensitive(
        self, memory_store: VectorMemoryStore
    ) -> None:
        tagged = await memory_store.save_memory(make_memory("a", [1.0, 0.0, 0.0], ["Editor"]))
        await memory_store.save_memory(make_memory("b", [0.0, 1.0, 0.0], ["food"]))

        found = await memory_store.search_by_tags(["editor", "travel"])

        assert [m.id for m in found] == [tagged.id]
        assert await memory_store.search_by_tags([" "]) == []

    @pytest.mark.asyncio
    async def test_update_embedding_reindexes(self, memory_store: VectorMemoryStore) -> None:
        memory = await memory_store.save_memory(make_memory("m", [1.0, 0.0, 0.0]))
        before = memory.updated_at

        await memory_store.update_embedding(memory.id, [0.0, 2.0, 0.0])

        assert memory.embedding == pytest.approx([0.0, 1.0, 0.0])
        assert memory.updated_at >= before
        assert memory_store.index.count == 1
        results = await memory_store.search_by_embedding([0.0, 1.0, 0.0], 1, 0.9)
        assert results[0].memory.id == memory.id

    @pytest.mark.asyncio
    async def test_update_unknown_memory_raises(self, memory_store: VectorMemoryStore) -> None:
        with pytest.raises(KeyError):
            await memory_store.update_embedding("missing", [1.0, 0.0, 0.0])

    @pytest.mark.asyncio
    async def test_delete_memory(self, memory_store: VectorMemoryStore) -> None:
        memory = await memory_store.save_memory(make_memory("m", [1.0, 0.0, 0.0]))
        assert await memory_store.delete_memory(memory.id) is True
        assert await memory_store.delete_memory(memory.id) is False
        assert memory_store.index.count == 0
        assert len(memory_store) == 0


class TestContextNotes:
    @pytest.mark.asyncio
    async def test_no_notes_root(self, memory_store: VectorMemoryStore) -> None:
        assert await memory_store.fetch_context_notes() == []

    @pytest.mark.asyncio
    async def test_reads_markdown_sorted(self, tmp_path: Path) -> None:
        notes = tmp_path / "Notes"
        notes.mkdir()
        (notes / "b.md").write_text("second", encoding="utf-8")
        (notes / "a.md").write_text("first", encoding="utf-8")
        (notes / "ignored.txt").write_text("nope", encoding="utf-8")

        store = VectorMemoryStore(InMemoryVectorIndex(3), tmp_path)
        files = await store.fetch_context_notes()

        assert [(f.name, f.content, f.source) for f in files] == [
            ("a", "first", "Notes/a.md"),
            ("b", "second", "Notes/b.md"),
        ]

    @pytest.mark.asyncio
    async def test_workspace_view_shares_memories(
        self, memory_store: VectorMemoryStore, tmp_path: Path
    ) -> None:
        (tmp_path / "Notes").mkdir()
        (tmp_path / "Notes" / "Welcome.md").write_text("hi", encoding="utf-8")

        view = memory_store.for_workspace(tmp_path)
        saved = await view.save_memory(make_memory("shared", [1.0, 0.0, 0.0]))

        assert await memory_store.fetch_memory(saved.id) is saved
        assert [f.name for f in await view.fetch_context_notes()] == ["Welcome"]
        assert await memory_store.fetch_context_notes() == []
