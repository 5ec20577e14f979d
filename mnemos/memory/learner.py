"""Reinforcement-style feedback on memory embeddings.

A positively scored memory is nudged toward the queries that recalled it,
a negatively scored one away from them:

    v' = normalize(v + score * learning_rate * (target - v))

where target is the normalized mean of the query vectors.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import numpy as np
import structlog

from mnemos.memory.vector_math import magnitude, mean_vector, normalize

if TYPE_CHECKING:
    from mnemos.memory.contracts import MemoryStore

logger = structlog.get_logger()

DEFAULT_LEARNING_RATE = 0.05


def adjust_vector(
    current: Sequence[float],
    target: Sequence[float],
    score: float,
    learning_rate: float = DEFAULT_LEARNING_RATE,
) -> list[float]:
    """Apply one feedback step. A zero score returns the vector unchanged."""
    if score == 0:
        return list(current)
    score = max(-1.0, min(1.0, score))
    v = np.asarray(current, dtype=np.float64)
    t = np.asarray(target, dtype=np.float64)
    return normalize(v + score * learning_rate * (t - v))


class EmbeddingLearner:
    """Applies feedback scores to stored embeddings, one memory at a time."""

    def __init__(self, store: MemoryStore, *, learning_rate: float = DEFAULT_LEARNING_RATE) -> None:
        self._store = store
        self._learning_rate = learning_rate

    async def adjust(
        self,
        evaluations: Mapping[str, float],
        query_vectors: Sequence[Sequence[float]],
    ) -> int:
        """Update each scored memory's embedding. Returns how many were updated.

        Zero scores, missing memories and empty embeddings are skipped.
        A failure on one memory is logged and the batch continues.
        """
        if not query_vectors:
            return 0

        updated = 0
        for memory_id, score in evaluations.items():
            if score == 0:
                continue
            try:
                memory = await self._store.fetch_memory(memory_id)
                if memory is None or not memory.embedding:
                    logger.debug("embedding_adjust_skipped", memory_id=memory_id)
                    continue

                dims = len(memory.embedding)
                target = normalize(mean_vector(query_vectors, dims))
                if magnitude(target) == 0:
                    logger.warning(
                        "embedding_adjust_no_target", memory_id=memory_id, dimensions=dims
                    )
                    continue

                new_vector = adjust_vector(memory.embedding, target, score, self._learning_rate)
                await self._store.update_embedding(memory_id, new_vector)
                updated += 1
                logger.info("embedding_adjusted", memory_id=memory_id, score=score)
            except Exception:
                logger.exception("embedding_adjust_failed", memory_id=memory_id)

        return updated
