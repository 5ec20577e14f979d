"""Approximate-nearest-neighbor index over fixed-dimension embeddings.

Two backends share one contract:
- UsearchVectorIndex: native HNSW index (usearch), persisted as an opaque blob
- InMemoryVectorIndex: numpy linear scan, same ordering, for tests and small stores

Distances are cosine distances (1 - cosine similarity), ascending.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import structlog

from mnemos.infra.errors import VectorCountMismatchError, VectorDimensionMismatchError
from mnemos.memory.vector_math import cosine_distance

if TYPE_CHECKING:
    from mnemos.config.settings import VectorIndexSettings

logger = structlog.get_logger()


class VectorIndex(ABC):
    """Key/vector store answering k-nearest queries.

    Dimension and count checks happen here, before any backend call.
    """

    def __init__(self, dimensions: int, path: Path | None = None) -> None:
        if dimensions <= 0:
            raise ValueError(f"dimensions must be > 0, got {dimensions}")
        self._dimensions = dimensions
        self._path = path

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def path(self) -> Path | None:
        return self._path

    def add(self, vectors: Sequence[Sequence[float]], keys: Sequence[int]) -> None:
        """Add vectors under integer keys. An existing key is replaced."""
        if len(vectors) != len(keys):
            raise VectorCountMismatchError(len(vectors), len(keys))
        for v in vectors:
            self._check_dimension(v)
        if not keys:
            return
        self._add(np.asarray(vectors, dtype=np.float32), [int(k) for k in keys])

    def search(self, vector: Sequence[float], k: int) -> list[tuple[int, float]]:
        """Return up to k (key, distance) pairs ordered by increasing distance."""
        self._check_dimension(vector)
        if k <= 0 or self.count == 0:
            return []
        return self._search(np.asarray(vector, dtype=np.float32), k)

    def initialize(self) -> None:
        """Load the persisted blob if one exists, otherwise start empty."""
        if self._path is not None and self._path.exists():
            self.load()
            logger.info("vector_index_loaded", path=str(self._path), count=self.count)
        else:
            logger.info("vector_index_created", dimensions=self._dimensions)

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self._dimensions:
            raise VectorDimensionMismatchError(self._dimensions, len(vector))

    @property
    @abstractmethod
    def count(self) -> int:
        """Number of indexed vectors."""
        ...

    @abstractmethod
    def remove(self, key: int) -> None: ...

    @abstractmethod
    def save(self) -> None: ...

    @abstractmethod
    def load(self) -> None: ...

    @abstractmethod
    def _add(self, vectors: np.ndarray, keys: list[int]) -> None: ...

    @abstractmethod
    def _search(self, vector: np.ndarray, k: int) -> list[tuple[int, float]]: ...


class InMemoryVectorIndex(VectorIndex):
    """Linear scan with cosine distance. Ties keep insertion order."""

    def __init__(self, dimensions: int, path: Path | None = None) -> None:
        super().__init__(dimensions, path)
        self._vectors: dict[int, np.ndarray] = {}

    @property
    def count(self) -> int:
        return len(self._vectors)

    def remove(self, key: int) -> None:
        self._vectors.pop(key, None)

    def _add(self, vectors: np.ndarray, keys: list[int]) -> None:
        for key, vector in zip(keys, vectors, strict=True):
            self._vectors[key] = vector

    def _search(self, vector: np.ndarray, k: int) -> list[tuple[int, float]]:
        scored = [
            (key, cosine_distance(vector, stored))
            for key, stored in self._vectors.items()
        ]
        scored.sort(key=lambda pair: pair[1])
        return scored[:k]

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        keys = np.fromiter(self._vectors.keys(), dtype=np.int64, count=len(self._vectors))
        if self._vectors:
            vectors = np.stack(list(self._vectors.values()))
        else:
            vectors = np.empty((0, self._dimensions), dtype=np.float32)
        # File handle keeps numpy from appending its own .npz suffix
        with self._path.open("wb") as fh:
            np.savez(fh, keys=keys, vectors=vectors)

    def load(self) -> None:
        if self._path is None:
            return
        with np.load(self._path) as data:
            keys = data["keys"]
            vectors = data["vectors"]
        if vectors.size and vectors.shape[1] != self._dimensions:
            raise VectorDimensionMismatchError(self._dimensions, vectors.shape[1])
        self._vectors = {
            int(key): vector.astype(np.float32) for key, vector in zip(keys, vectors, strict=True)
        }


class UsearchVectorIndex(VectorIndex):
    """HNSW index backed by usearch (cosine metric, f32 storage)."""

    def __init__(
        self,
        dimensions: int,
        path: Path | None = None,
        *,
        connectivity: int = 16,
    ) -> None:
        super().__init__(dimensions, path)
        from usearch.index import Index

        self._index = Index(
            ndim=dimensions,
            metric="cos",
            dtype="f32",
            connectivity=connectivity,
        )

    @property
    def count(self) -> int:
        return len(self._index)

    def remove(self, key: int) -> None:
        if self._index.contains(key):
            self._index.remove(key)

    def _add(self, vectors: np.ndarray, keys: list[int]) -> None:
        for key in keys:
            self.remove(key)
        self._index.add(np.asarray(keys, dtype=np.uint64), vectors)

    def _search(self, vector: np.ndarray, k: int) -> list[tuple[int, float]]:
        matches = self._index.search(vector, k)
        return [
            (int(key), float(distance))
            for key, distance in zip(matches.keys, matches.distances, strict=True)
        ]

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._index.save(str(self._path))

    def load(self) -> None:
        if self._path is None:
            return
        self._index.load(str(self._path))
        if self._index.ndim != self._dimensions:
            raise VectorDimensionMismatchError(self._dimensions, self._index.ndim)


def create_vector_index(settings: VectorIndexSettings) -> VectorIndex:
    """Build the configured backend and load any persisted state."""
    index: VectorIndex
    if settings.backend == "usearch":
        index = UsearchVectorIndex(
            settings.dimensions,
            settings.path,
            connectivity=settings.connectivity,
        )
    else:
        index = InMemoryVectorIndex(settings.dimensions, settings.path)
    index.initialize()
    return index
