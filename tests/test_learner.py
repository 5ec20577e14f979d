"""Tests for embedding feedback (EmbeddingLearner / adjust_vector)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from conftest import make_memory

from mnemos.memory.learner import EmbeddingLearner, adjust_vector
from mnemos.memory.models import Memory
from mnemos.memory.store import VectorMemoryStore
from mnemos.memory.vector_math import cosine_similarity, magnitude, normalize


class TestAdjustVector:
    def test_positive_score_moves_toward_target(self) -> None:
        current = normalize([0.2, 1.0, 0.0])
        target = [1.0, 0.0, 0.0]
        updated = adjust_vector(current, target, 1.0, 0.05)
        assert magnitude(updated) == pytest.approx(1.0)
        assert cosine_similarity(updated, target) >= cosine_similarity(current, target)

    def test_negative_score_moves_away(self) -> None:
        current = normalize([1.0, 1.0, 0.0])
        target = [1.0, 0.0, 0.0]
        updated = adjust_vector(current, target, -1.0, 0.05)
        assert magnitude(updated) == pytest.approx(1.0)
        assert cosine_similarity(updated, target) <= cosine_similarity(current, target)

    def test_zero_score_unchanged(self) -> None:
        current = normalize([0.3, 0.4, 0.5])
        assert adjust_vector(current, [1.0, 0.0, 0.0], 0.0) == current

    def test_score_is_clamped(self) -> None:
        current = normalize([0.0, 1.0, 0.0])
        target = [1.0, 0.0, 0.0]
        assert adjust_vector(current, target, 5.0) == pytest.approx(
            adjust_vector(current, target, 1.0)
        )


class TestEmbeddingLearner:
    @pytest.mark.asyncio
    async def test_moves_memory_toward_query(self, memory_store: VectorMemoryStore) -> None:
        memory = await memory_store.save_memory(make_memory("a", [0.0, 1.0, 0.0]))
        learner = EmbeddingLearner(memory_store)

        updated = await learner.adjust({memory.id: 1.0}, [[1.0, 0.0, 0.0]])

        assert updated == 1
        assert memory.embedding[0] > 0
        assert memory.embedding[1] <= 1.0
        assert magnitude(memory.embedding) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_skips_zero_score_missing_and_unembedded(
        self, memory_store: VectorMemoryStore
    ) -> None:
        memory = await memory_store.save_memory(make_memory("a", [0.0, 1.0, 0.0]))
        bare = await memory_store.save_memory(Memory(title="bare", content="no vector"))
        learner = EmbeddingLearner(memory_store)

        updated = await learner.adjust(
            {memory.id: 0.0, bare.id: 1.0, "missing": 1.0}, [[1.0, 0.0, 0.0]]
        )

        assert updated == 0
        assert memory.embedding == pytest.approx([0.0, 1.0, 0.0])
        assert bare.embedding == []

    @pytest.mark.asyncio
    async def test_no_query_vectors(self, memory_store: VectorMemoryStore) -> None:
        memory = await memory_store.save_memory(make_memory("a", [0.0, 1.0, 0.0]))
        assert await EmbeddingLearner(memory_store).adjust({memory.id: 1.0}, []) == 0

    @pytest.mark.asyncio
    async def test_mismatched_query_dimensions_skip(self, memory_store: VectorMemoryStore) -> None:
        memory = await memory_store.save_memory(make_memory("a", [0.0, 1.0, 0.0]))
        updated = await EmbeddingLearner(memory_store).adjust({memory.id: 1.0}, [[1.0, 0.0]])
        assert updated == 0
        assert memory.embedding == pytest.approx([0.0, 1.0, 0.0])

    @pytest.mark.asyncio
    async def test_failure_on_one_memory_does_not_stop_batch(
        self, memory_store: VectorMemoryStore
    ) -> None:
        first = await memory_store.save_memory(make_memory("a", [0.0, 1.0, 0.0]))
        second = await memory_store.save_memory(make_memory("b", [0.0, 0.0, 1.0]))
        original_update = memory_store.update_embedding

        async def flaky_update(memory_id: str, embedding: list[float]) -> None:
            if memory_id == first.id:
                raise RuntimeError("write failed")
            await original_update(memory_id, embedding)

        memory_store.update_embedding = AsyncMock(side_effect=flaky_update)  # type: ignore[method-assign]

        updated = await EmbeddingLearner(memory_store).adjust(
            {first.id: 1.0, second.id: 1.0}, [[1.0, 0.0, 0.0]]
        )

        assert updated == 1
        assert second.embedding[0] > 0
