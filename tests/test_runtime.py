"""Tests for build_runtime wiring."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import FakeEmbedder, ScriptedModelClient, make_memory

from mnemos.agent.events import TurnComplete
from mnemos.agent.model_client import StreamDelta
from mnemos.config.settings import Settings
from mnemos.memory.vector_index import InMemoryVectorIndex
from mnemos.runtime import build_runtime


class TestBuildRuntime:
    def test_wires_builtins(self, settings: Settings) -> None:
        runtime = build_runtime(
            settings, embedder=FakeEmbedder(), model_client=None, configure_logging=False
        )
        assert isinstance(runtime.index, InMemoryVectorIndex)
        assert [t.name for t in runtime.registry.list_tools()] == [
            "create_memory",
            "search_memories",
        ]

    @pytest.mark.asyncio
    async def test_end_to_end_turn(self, settings: Settings) -> None:
        client = ScriptedModelClient([[StreamDelta(content="Hi there")]], reply='["greeting"]')
        runtime = build_runtime(
            settings, embedder=FakeEmbedder(), model_client=client, configure_logging=False
        )
        session = await runtime.session_manager.create_session()

        events = [e async for e in runtime.agent_loop.handle_message(session.id, "hello")]

        assert isinstance(events[-1], TurnComplete)
        assert events[0].bundle.generated_tags == ("greeting",)

    def test_shutdown_persists_index(self, settings: Settings, tmp_path: Path) -> None:
        settings.vector_index.path = tmp_path / "index.npz"
        runtime = build_runtime(
            settings, embedder=FakeEmbedder(), model_client=None, configure_logging=False
        )
        runtime.index.add([[1.0, 0.0, 0.0]], [1])

        runtime.shutdown()

        assert settings.vector_index.path.exists()

    @pytest.mark.asyncio
    async def test_archive_applies_recall_feedback(self, settings: Settings) -> None:
        class _FeedbackClient(ScriptedModelClient):
            scores: dict[str, float] = {}

            async def chat(self, messages, model, temperature=None):
                self.chats.append(messages)
                if "RECALLED MEMORIES" in messages[0]["content"]:
                    return json.dumps(self.scores)
                return '["editor"]'

        client = _FeedbackClient([[StreamDelta(content="You use Helix.")]])
        embedder = FakeEmbedder({"what editor do I use?": [0.6, 0.8, 0.0]})
        runtime = build_runtime(
            settings, embedder=embedder, model_client=client, configure_logging=False
        )
        memory = await runtime.memory_store.save_memory(
            make_memory("Editor is Helix", [1.0, 0.0, 0.0])
        )
        client.scores = {memory.id: 1.0}
        session = await runtime.session_manager.create_session()
        async for _ in runtime.agent_loop.handle_message(session.id, "what editor do I use?"):
            pass

        adjusted = await runtime.session_manager.archive_session(session.id)

        assert adjusted == 1
        updated = await runtime.memory_store.fetch_memory(memory.id)
        assert updated.embedding[1] > 0.0
        assert runtime.session_manager.active_session_ids == []
