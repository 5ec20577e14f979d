from __future__ import annotations

from collections.abc import Sequence

from mnemos.memory.models import Memory, SemanticSearchResult
from mnemos.memory.vector_math import cosine_similarity


def rank_memories(
    semantic: Sequence[SemanticSearchResult],
    tag_based: Sequence[Memory],
    query_embedding: Sequence[float],
) -> list[SemanticSearchResult]:
    """Merge semantic and tag-matched candidates into one ranked list.

    Tag-only memories are scored by cosine similarity against the query
    (0.0 for an empty embedding). Sort is stable and descending; a missing
    similarity counts as 0. The caller truncates.
    """
    combined = list(semantic)
    seen = {r.memory.id for r in semantic}

    for memory in tag_based:
        if memory.id in seen:
            continue
        seen.add(memory.id)
        similarity = cosine_similarity(memory.embedding, query_embedding) if memory.embedding else 0.0
        combined.append(SemanticSearchResult(memory=memory, similarity=similarity))

    return sorted(
        combined,
        key=lambda r: r.similarity if r.similarity is not None else 0.0,
        reverse=True,
    )
