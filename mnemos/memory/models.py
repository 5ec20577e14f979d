"""Data model for the memory subsystem.

Includes:
- Memory: a persisted fact with tags and a unit-normalized embedding
- SemanticSearchResult: per-query pairing of a memory with its similarity
- ContextFile: an always-included note
- ContextBundle: everything one retrieval call produced
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass
class Memory:
    """A persisted fact/snippet.

    embedding is either empty (not yet embedded) or L2-normalized.
    Mutated only by embedding feedback or an explicit edit.
    """

    title: str
    content: str
    tags: list[str] = field(default_factory=list)
    embedding: list[float] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def tag_set(self) -> frozenset[str]:
        return frozenset(t.lower() for t in self.tags)

    @property
    def prompt_string(self) -> str:
        tags = f" [tags: {', '.join(self.tags)}]" if self.tags else ""
        return f"### {self.title}{tags}\n{self.content}"


@dataclass(frozen=True)
class SemanticSearchResult:
    """Single candidate from a semantic or tag search. Never persisted."""

    memory: Memory
    similarity: float | None = None


@dataclass(frozen=True)
class ContextFile:
    """A note that is injected into every prompt, unranked."""

    name: str
    content: str
    source: str


@dataclass(frozen=True)
class ContextBundle:
    """Result of one gather_context call. Immutable once returned."""

    notes: tuple[ContextFile, ...] = ()
    selected_memories: tuple[SemanticSearchResult, ...] = ()
    generated_tags: tuple[str, ...] = ()
    query_vector: tuple[float, ...] = ()
    augmented_query: str = ""
    raw_semantic_candidates: tuple[SemanticSearchResult, ...] = ()
    raw_tag_candidates: tuple[Memory, ...] = ()
    elapsed_seconds: float = 0.0

    @classmethod
    def empty(
        cls,
        *,
        notes: tuple[ContextFile, ...] = (),
        augmented_query: str = "",
        elapsed_seconds: float = 0.0,
    ) -> ContextBundle:
        return cls(
            notes=notes,
            augmented_query=augmented_query,
            elapsed_seconds=elapsed_seconds,
        )

    @property
    def memories(self) -> list[Memory]:
        return [r.memory for r in self.selected_memories]
