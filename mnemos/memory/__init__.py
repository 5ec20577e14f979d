"""Memory module: vector index, ranking, retrieval, and embedding feedback."""

from mnemos.memory.contracts import (
    EmbeddingProvider,
    MemoryStore,
    RecallEvaluator,
    TagGenerator,
)
from mnemos.memory.embeddings import OpenAIEmbeddingProvider
from mnemos.memory.learner import EmbeddingLearner, adjust_vector
from mnemos.memory.models import ContextBundle, ContextFile, Memory, SemanticSearchResult
from mnemos.memory.ranker import rank_memories
from mnemos.memory.recall import make_llm_recall_evaluator
from mnemos.memory.retriever import ContextRetriever
from mnemos.memory.store import VectorMemoryStore
from mnemos.memory.tagging import make_llm_tag_generator
from mnemos.memory.vector_index import (
    InMemoryVectorIndex,
    UsearchVectorIndex,
    VectorIndex,
    create_vector_index,
)

__all__ = [
    "ContextBundle",
    "ContextFile",
    "ContextRetriever",
    "EmbeddingLearner",
    "EmbeddingProvider",
    "InMemoryVectorIndex",
    "Memory",
    "MemoryStore",
    "OpenAIEmbeddingProvider",
    "RecallEvaluator",
    "SemanticSearchResult",
    "TagGenerator",
    "UsearchVectorIndex",
    "VectorIndex",
    "VectorMemoryStore",
    "adjust_vector",
    "create_vector_index",
    "make_llm_recall_evaluator",
    "make_llm_tag_generator",
    "rank_memories",
]
