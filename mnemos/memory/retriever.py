"""Context retrieval: tags + embedding -> dual search -> ranking -> bundle.

Fault tolerance:
- tag generation failure: logged, retrieval continues with no tags
- embedding failure: EmbeddingFailedError, fatal for the call
- store failure during search: RetrievalError, fatal for the call
- cancellation at the search join: empty bundle, no exception
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import structlog

from mnemos.infra.errors import EmbeddingFailedError, MnemosError, RetrievalError
from mnemos.memory.learner import DEFAULT_LEARNING_RATE, EmbeddingLearner
from mnemos.memory.models import ContextBundle, ContextFile
from mnemos.memory.ranker import rank_memories

if TYPE_CHECKING:
    from mnemos.agent.messages import Message
    from mnemos.config.settings import RetrievalSettings
    from mnemos.memory.contracts import EmbeddingProvider, MemoryStore, TagGenerator

logger = structlog.get_logger()

DEFAULT_MIN_SIMILARITY = 0.35
DEFAULT_CANDIDATE_MULTIPLIER = 2
DEFAULT_HISTORY_WINDOW = 3


def build_augmented_query(
    query: str, history: Sequence[Message], window: int = DEFAULT_HISTORY_WINDOW
) -> str:
    """Recent user/assistant turns plus the query, used only for tagging."""
    turns = [m.content for m in history if m.role in ("user", "assistant") and m.content]
    recent = turns[-window:] if window > 0 else []
    return " ".join([*recent, query])


class ContextRetriever:
    """Gathers memories and notes for one query and applies embedding feedback."""

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        *,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        candidate_multiplier: int = DEFAULT_CANDIDATE_MULTIPLIER,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        learning_rate: float = DEFAULT_LEARNING_RATE,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._min_similarity = min_similarity
        self._candidate_multiplier = candidate_multiplier
        self._history_window = history_window
        self._learner = EmbeddingLearner(store, learning_rate=learning_rate)

    @classmethod
    def from_settings(
        cls,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        settings: RetrievalSettings,
    ) -> ContextRetriever:
        return cls(
            store,
            embedder,
            min_similarity=settings.min_similarity,
            candidate_multiplier=settings.candidate_multiplier,
            history_window=settings.history_window,
            learning_rate=settings.learning_rate,
        )

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def embedder(self) -> EmbeddingProvider:
        return self._embedder

    async def gather_context(
        self,
        query: str,
        history: Sequence[Message] = (),
        limit: int = 5,
        tag_generator: TagGenerator | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ContextBundle:
        start = time.perf_counter()

        if not query.strip():
            notes = await self._store.fetch_context_notes()
            return ContextBundle.empty(
                notes=tuple(notes), elapsed_seconds=time.perf_counter() - start
            )

        augmented = build_augmented_query(query, history, self._history_window)
        notes_task = asyncio.create_task(self._store.fetch_context_notes())
        try:
            tags = await self._generate_tags(augmented, tag_generator)

            try:
                query_vector = await self._embedder.generate_embedding(query)
            except EmbeddingFailedError:
                raise
            except Exception as e:
                raise EmbeddingFailedError(f"Embedding generation failed: {e}") from e

            try:
                semantic, tag_matches = await asyncio.gather(
                    self._store.search_by_embedding(
                        query_vector,
                        limit * self._candidate_multiplier,
                        self._min_similarity,
                    ),
                    self._store.search_by_tags(tags) if tags else _no_tag_matches(),
                )
            except MnemosError:
                raise
            except Exception as e:
                raise RetrievalError(f"Memory search failed: {e}") from e

            if cancel_event is not None and cancel_event.is_set():
                logger.info("context_gather_cancelled", query=query[:50])
                return ContextBundle.empty(
                    augmented_query=augmented,
                    elapsed_seconds=time.perf_counter() - start,
                )

            ranked = rank_memories(semantic, tag_matches, query_vector)[:limit]
            notes: list[ContextFile] = await notes_task
        finally:
            if not notes_task.done():
                notes_task.cancel()

        elapsed = time.perf_counter() - start
        logger.info(
            "context_gathered",
            query=query[:50],
            tags=len(tags),
            semantic_candidates=len(semantic),
            tag_candidates=len(tag_matches),
            selected=len(ranked),
            notes=len(notes),
            elapsed=round(elapsed, 4),
        )
        return ContextBundle(
            notes=tuple(notes),
            selected_memories=tuple(ranked),
            generated_tags=tuple(tags),
            query_vector=tuple(query_vector),
            augmented_query=augmented,
            raw_semantic_candidates=tuple(semantic),
            raw_tag_candidates=tuple(tag_matches),
            elapsed_seconds=elapsed,
        )

    async def adjust_embeddings(
        self,
        evaluations: Mapping[str, float],
        query_vectors: Sequence[Sequence[float]],
    ) -> int:
        """Nudge scored memories toward (or away from) the recalling queries."""
        return await self._learner.adjust(evaluations, query_vectors)

    async def _generate_tags(self, text: str, tag_generator: TagGenerator | None) -> list[str]:
        if tag_generator is None:
            return []
        try:
            return list(await tag_generator(text))
        except Exception:
            logger.warning("tag_generation_failed", exc_info=True)
            return []


async def _no_tag_matches() -> list:
    return []
