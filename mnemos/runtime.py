"""Application bootstrap: builds the shared object graph from Settings."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from mnemos.agent.agent import AgentLoop
from mnemos.agent.model_client import ModelClient, create_model_client
from mnemos.config.settings import Settings, get_settings
from mnemos.infra.logging import setup_logging
from mnemos.memory.contracts import EmbeddingProvider
from mnemos.memory.embeddings import OpenAIEmbeddingProvider
from mnemos.memory.recall import make_llm_recall_evaluator
from mnemos.memory.store import VectorMemoryStore
from mnemos.memory.tagging import make_llm_tag_generator
from mnemos.memory.vector_index import VectorIndex, create_vector_index
from mnemos.session.manager import SessionManager
from mnemos.session.store import InMemorySessionStore, SessionStore
from mnemos.tools.builtins import register_builtins
from mnemos.tools.registry import ToolRegistry

logger = structlog.get_logger()


@dataclass
class Runtime:
    settings: Settings
    index: VectorIndex
    memory_store: VectorMemoryStore
    embedder: EmbeddingProvider
    model_client: ModelClient | None
    registry: ToolRegistry
    session_manager: SessionManager
    agent_loop: AgentLoop

    def shutdown(self) -> None:
        """Persist the vector index."""
        self.index.save()
        logger.info("runtime_shutdown", indexed=self.index.count)


def build_runtime(
    settings: Settings | None = None,
    *,
    model_client: ModelClient | None = None,
    embedder: EmbeddingProvider | None = None,
    session_store: SessionStore | None = None,
    configure_logging: bool = True,
) -> Runtime:
    """Wire index, stores, tools, sessions and the agent loop.

    Collaborators passed in take precedence over the ones built from settings.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(json_output=settings.logging.json_output, log_level=settings.logging.level)

    index = create_vector_index(settings.vector_index)
    memory_store = VectorMemoryStore(index)

    if embedder is None:
        embedder = OpenAIEmbeddingProvider.from_settings(
            settings.openai, dimensions=settings.vector_index.dimensions
        )
    if model_client is None:
        model_client = create_model_client(settings.openai)

    registry = ToolRegistry()
    register_builtins(
        registry,
        memory_store,
        embedder,
        min_similarity=settings.retrieval.min_similarity,
    )

    tag_generator = None
    recall_evaluator = None
    if model_client is not None:
        tag_generator = make_llm_tag_generator(model_client, settings.openai.model)
        recall_evaluator = make_llm_recall_evaluator(model_client, settings.openai.model)

    session_manager = SessionManager(
        session_store or InMemorySessionStore(),
        registry,
        memory_store,
        embedder,
        settings=settings,
        recall_evaluator=recall_evaluator,
    )

    agent_loop = AgentLoop(
        model_client,
        session_manager,
        settings.openai.model,
        settings=settings,
        tag_generator=tag_generator,
    )

    logger.info(
        "runtime_started",
        model=settings.openai.model,
        backend=settings.vector_index.backend,
        tools=[t.name for t in registry.list_tools()],
        llm_configured=model_client is not None,
    )
    return Runtime(
        settings=settings,
        index=index,
        memory_store=memory_store,
        embedder=embedder,
        model_client=model_client,
        registry=registry,
        session_manager=session_manager,
        agent_loop=agent_loop,
    )
