from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from mnemos.config.settings import Settings
from mnemos.infra.errors import SessionNotFoundError
from mnemos.memory.recall import build_transcript, collect_recall
from mnemos.memory.retriever import ContextRetriever
from mnemos.memory.store import NOTES_DIRNAME
from mnemos.session.models import Session
from mnemos.tools.builtins.job_queue import JOB_QUEUE_DESCRIPTION, JobQueueContext
from mnemos.tools.builtins.view_chat_history import ViewChatHistoryTool
from mnemos.tools.context import ContextGatewayTool, ToolContextSession
from mnemos.tools.executor import ToolExecutor
from mnemos.tools.permissions import PermissionGate
from mnemos.tools.registry import SessionToolSet

if TYPE_CHECKING:
    from mnemos.agent.messages import Message
    from mnemos.memory.contracts import EmbeddingProvider, MemoryStore, RecallEvaluator
    from mnemos.session.store import SessionStore
    from mnemos.tools.permissions import PermissionDelegate
    from mnemos.tools.registry import ToolRegistry

logger = structlog.get_logger()

SEED_NOTES = {
    "Welcome.md": (
        "# Welcome\n\n"
        "This folder holds notes that are included in every prompt of this "
        "conversation. Keep lasting facts about the user and their preferences here.\n"
    ),
    "Project.md": (
        "# Project\n\n"
        "Track the goals, decisions and open questions of the current project here.\n"
    ),
}


class SessionOrchestrator:
    """Per-session owner of retrieval, tool execution and mutable session state.

    All mutations go through `async with orchestrator.locked():` so two
    operations on the same session never interleave.
    """

    def __init__(
        self,
        session: Session,
        context_retriever: ContextRetriever,
        tool_set: SessionToolSet,
        context_session: ToolContextSession,
        permission_gate: PermissionGate,
        tool_executor: ToolExecutor,
    ) -> None:
        self._session = session
        self._context_retriever = context_retriever
        self._tool_set = tool_set
        self._context_session = context_session
        self._permission_gate = permission_gate
        self._tool_executor = tool_executor
        self._lock = asyncio.Lock()
        self._last_touched = time.monotonic()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.id

    @property
    def context_retriever(self) -> ContextRetriever:
        return self._context_retriever

    @property
    def tool_executor(self) -> ToolExecutor:
        return self._tool_executor

    @property
    def tool_set(self) -> SessionToolSet:
        return self._tool_set

    @property
    def context_session(self) -> ToolContextSession:
        return self._context_session

    @property
    def permission_gate(self) -> PermissionGate:
        return self._permission_gate

    @property
    def working_directory(self) -> str:
        return self._tool_executor.working_directory

    @property
    def last_touched(self) -> float:
        """Monotonic timestamp of the last access."""
        return self._last_touched

    def touch(self) -> None:
        self._last_touched = time.monotonic()
        self._session.touch()

    def locked(self) -> asyncio.Lock:
        return self._lock

    def idle_seconds(self) -> float:
        return time.monotonic() - self._last_touched


class SessionManager:
    """Registry of live SessionOrchestrators backed by a SessionStore.

    The registry map has its own lock; per-session state is guarded by each
    orchestrator's lock.
    """

    def __init__(
        self,
        store: SessionStore,
        registry: ToolRegistry,
        memory_store: MemoryStore,
        embedder: EmbeddingProvider,
        *,
        settings: Settings | None = None,
        workspace_root: Path | None = None,
        permission_delegate: PermissionDelegate | None = None,
        recall_evaluator: RecallEvaluator | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._memory_store = memory_store
        self._embedder = embedder
        self._settings = settings or Settings()
        self._workspace_root = workspace_root or self._settings.session.workspace_root
        self._permission_delegate = permission_delegate
        self._recall_evaluator = recall_evaluator
        self._orchestrators: dict[str, SessionOrchestrator] = {}
        self._lock = asyncio.Lock()

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def active_session_ids(self) -> list[str]:
        return list(self._orchestrators)

    def session_workspace(self, session_id: str) -> Path:
        return self._workspace_root / "sessions" / session_id

    async def create_session(
        self, title: str = "New Conversation", *, persona: str | None = None
    ) -> Session:
        """Create a session, its workspace with seeded notes, and its orchestrator."""
        session = Session(title=title, persona=persona)
        workspace = self.session_workspace(session.id)
        notes_dir = workspace / NOTES_DIRNAME
        notes_dir.mkdir(parents=True, exist_ok=True)
        for filename, content in SEED_NOTES.items():
            (notes_dir / filename).write_text(content, encoding="utf-8")

        session.working_directory = str(workspace)
        session.primary_workspace_id = f"sessions/{session.id}"
        await self._store.save_session(session)

        async with self._lock:
            self._orchestrators[session.id] = self._build_orchestrator(session)
        logger.info("session_created", session_id=session.id, workspace=str(workspace))
        return session

    async def hydrate_session(self, session_id: str) -> SessionOrchestrator:
        """Rebuild the orchestrator from the store. No-op when already live."""
        async with self._lock:
            existing = self._orchestrators.get(session_id)
            if existing is not None:
                return existing

            session = await self._store.fetch_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            orchestrator = self._build_orchestrator(session)
            self._orchestrators[session_id] = orchestrator
        logger.info("session_hydrated", session_id=session_id)
        return orchestrator

    async def get_orchestrator(self, session_id: str) -> SessionOrchestrator:
        """Live orchestrator for the session, hydrating it on first use."""
        orchestrator = self._orchestrators.get(session_id)
        if orchestrator is None:
            orchestrator = await self.hydrate_session(session_id)
        orchestrator.touch()
        return orchestrator

    async def get_session(self, session_id: str) -> Session:
        orchestrator = await self.get_orchestrator(session_id)
        return orchestrator.session

    async def list_sessions(self) -> list[Session]:
        return await self._store.list_sessions()

    async def update_session_title(self, session_id: str, title: str) -> Session:
        orchestrator = self._orchestrators.get(session_id)
        if orchestrator is None:
            session = await self._store.fetch_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.title = title
            session.touch()
            await self._store.save_session(session)
            return session

        async with orchestrator.locked():
            orchestrator.session.title = title
            orchestrator.touch()
            await self._store.save_session(orchestrator.session)
        return orchestrator.session

    async def attach_workspace(
        self, session_id: str, workspace_id: str, *, is_primary: bool = False
    ) -> Session:
        orchestrator = await self.get_orchestrator(session_id)
        async with orchestrator.locked():
            orchestrator.session.attach_workspace(workspace_id, is_primary=is_primary)
            await self._store.save_session(orchestrator.session)
        logger.info(
            "workspace_attached",
            session_id=session_id,
            workspace_id=workspace_id,
            is_primary=is_primary,
        )
        return orchestrator.session

    async def detach_workspace(self, session_id: str, workspace_id: str) -> Session:
        orchestrator = await self.get_orchestrator(session_id)
        async with orchestrator.locked():
            orchestrator.session.detach_workspace(workspace_id)
            await self._store.save_session(orchestrator.session)
        logger.info("workspace_detached", session_id=session_id, workspace_id=workspace_id)
        return orchestrator.session

    async def delete_session(self, session_id: str, *, purge: bool = False) -> bool:
        """Drop the live orchestrator. purge=True also deletes persisted state."""
        async with self._lock:
            removed = self._orchestrators.pop(session_id, None) is not None
        if purge:
            removed = await self._store.delete_session(session_id) or removed
        logger.info("session_deleted", session_id=session_id, purge=purge)
        return removed

    async def archive_session(self, session_id: str) -> int:
        """Apply recall feedback for the conversation, then drop the live orchestrator.

        Persisted state is kept. Returns how many memory embeddings were adjusted.
        """
        orchestrator = await self.get_orchestrator(session_id)
        async with orchestrator.locked():
            adjusted = await self._apply_recall_feedback(orchestrator)
        await self.delete_session(session_id)
        logger.info("session_archived", session_id=session_id, adjusted=adjusted)
        return adjusted

    async def cleanup_stale_sessions(self, max_age_seconds: float | None = None) -> list[str]:
        """Evict orchestrators idle longer than max_age_seconds. Returns evicted ids."""
        max_age = max_age_seconds if max_age_seconds is not None else self._settings.session.max_age_seconds
        async with self._lock:
            stale = [
                session_id
                for session_id, orchestrator in self._orchestrators.items()
                if orchestrator.idle_seconds() > max_age
            ]
            for session_id in stale:
                del self._orchestrators[session_id]
        if stale:
            logger.info("stale_sessions_evicted", count=len(stale), max_age=max_age)
        return stale

    async def get_history(self, session_id: str) -> list[Message]:
        return await self._store.fetch_messages(session_id)

    async def append_message(self, session_id: str, message: Message) -> None:
        await self._store.append_message(session_id, message)

    async def _apply_recall_feedback(self, orchestrator: SessionOrchestrator) -> int:
        if self._recall_evaluator is None:
            return 0

        messages = await self._store.fetch_messages(orchestrator.session_id)
        memories, query_vectors = collect_recall(messages)
        if not memories or not query_vectors:
            return 0

        try:
            evaluations = await self._recall_evaluator(build_transcript(messages), memories)
        except Exception:
            logger.exception("recall_evaluation_failed", session_id=orchestrator.session_id)
            return 0
        return await orchestrator.context_retriever.adjust_embeddings(evaluations, query_vectors)

    def _build_orchestrator(self, session: Session) -> SessionOrchestrator:
        workspace = (
            Path(session.working_directory)
            if session.working_directory
            else self.session_workspace(session.id)
        )
        retriever = ContextRetriever.from_settings(
            self._memory_store.for_workspace(workspace),
            self._embedder,
            self._settings.retrieval,
        )
        context_session = ToolContextSession()
        tool_set = SessionToolSet(self._registry, context_session)
        session_id = session.id
        tool_set.add_session_tool(ViewChatHistoryTool(lambda: self.get_history(session_id)))
        tool_set.add_session_tool(
            ContextGatewayTool(JobQueueContext(), context_session, JOB_QUEUE_DESCRIPTION)
        )

        permission_gate = PermissionGate(self._permission_delegate)
        executor = ToolExecutor(
            tool_set,
            context_session,
            permission_gate,
            str(workspace),
            max_repeated_calls=self._settings.tools.max_repeated_calls,
        )
        return SessionOrchestrator(
            session=session,
            context_retriever=retriever,
            tool_set=tool_set,
            context_session=context_session,
            permission_gate=permission_gate,
            tool_executor=executor,
        )
