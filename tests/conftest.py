"""Shared pytest fixtures and in-memory fakes for mnemos tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import Any

import pytest

from mnemos.agent.messages import ToolResult
from mnemos.agent.model_client import ModelClient, StreamDelta
from mnemos.config.settings import Settings
from mnemos.memory.contracts import EmbeddingProvider
from mnemos.memory.models import Memory
from mnemos.memory.store import VectorMemoryStore
from mnemos.memory.vector_index import InMemoryVectorIndex
from mnemos.memory.vector_math import normalize
from mnemos.tools.base import BaseTool


class FakeEmbedder(EmbeddingProvider):
    """Looks vectors up by exact text; unknown text maps to `default`."""

    def __init__(
        self,
        vectors: dict[str, Sequence[float]] | None = None,
        *,
        default: Sequence[float] = (0.0, 0.0, 1.0),
        fail: bool = False,
    ) -> None:
        self.vectors = {k: list(v) for k, v in (vectors or {}).items()}
        self.default = list(default)
        self.fail = fail
        self.calls: list[str] = []

    async def generate_embedding(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding backend down")
        return normalize(self.vectors.get(text, self.default))


class EchoTool(BaseTool):
    """Returns its `text` argument."""

    def __init__(self, name: str = "echo", *, requires_permission: bool = False) -> None:
        self._name = name
        self._requires_permission = requires_permission
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Echo the given text."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }

    @property
    def requires_permission(self) -> bool:
        return self._requires_permission

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        self.calls.append(arguments)
        return ToolResult.ok(str(arguments.get("text", "")))


class SlowTool(BaseTool):
    """Sleeps for `delay` seconds, then records its completion order."""

    def __init__(self, name: str, delay: float, finished: list[str]) -> None:
        self._name = name
        self._delay = delay
        self._finished = finished

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"Slow tool {self._name}."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        await asyncio.sleep(self._delay)
        self._finished.append(self._name)
        return ToolResult.ok(f"{self._name} done")


class FailingTool(BaseTool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always raises."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        raise RuntimeError("boom")


class ScriptedModelClient(ModelClient):
    """Replays one scripted list of StreamDelta per chat_stream call."""

    def __init__(self, turns: list[list[StreamDelta]], *, reply: str = "[]") -> None:
        self.turns = list(turns)
        self.reply = reply
        self.requests: list[list[dict[str, Any]]] = []
        self.tools_seen: list[list[dict] | None] = []
        self.chats: list[list[dict[str, Any]]] = []

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float | None = None,
    ) -> str:
        self.chats.append(messages)
        return self.reply

    async def chat_stream(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        tools: list[dict] | None = None,
        response_format: dict | None = None,
    ) -> AsyncIterator[StreamDelta]:
        self.requests.append(messages)
        self.tools_seen.append(tools)
        deltas = self.turns.pop(0) if self.turns else [StreamDelta(content="done")]
        for delta in deltas:
            yield delta


def make_memory(title: str, embedding: Sequence[float], tags: Sequence[str] = ()) -> Memory:
    return Memory(
        title=title,
        content=f"{title} content",
        tags=list(tags),
        embedding=normalize(embedding),
    )


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    s = Settings()
    s.session.workspace_root = tmp_path / "workspace"
    s.vector_index.dimensions = 3
    return s


@pytest.fixture()
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex(3)


@pytest.fixture()
def memory_store(index: InMemoryVectorIndex) -> VectorMemoryStore:
    return VectorMemoryStore(index)


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()
