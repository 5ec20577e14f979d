"""Tests for built-in tools: create_memory, search_memories, view_chat_history."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from conftest import FakeEmbedder, make_memory

from mnemos.agent.messages import Message, MessageRole
from mnemos.memory.store import VectorMemoryStore
from mnemos.tools.builtins import (
    CreateMemoryTool,
    SearchMemoriesTool,
    ViewChatHistoryTool,
    register_builtins,
)
from mnemos.tools.registry import ToolRegistry


class TestCreateMemoryTool:
    @pytest.mark.asyncio
    async def test_saves_embedded_memory(self, memory_store: VectorMemoryStore) -> None:
        embedder = FakeEmbedder({"Editor\nUses Helix": [1.0, 0.0, 0.0]})
        tool = CreateMemoryTool(memory_store, embedder)

        result = await tool.execute(
            {"title": " Editor ", "content": "Uses Helix", "tags": ["Tools", "tools", "editor"]}
        )

        assert result.success
        assert result.output.startswith("Memory saved: Editor (id: ")
        assert len(memory_store) == 1
        found = await memory_store.search_by_tags(["editor"])
        assert found[0].tags == ["tools", "editor"]
        assert found[0].embedding == pytest.approx([1.0, 0.0, 0.0])

    @pytest.mark.asyncio
    async def test_comma_separated_tags(self, memory_store: VectorMemoryStore) -> None:
        tool = CreateMemoryTool(memory_store, FakeEmbedder())
        await tool.execute({"title": "t", "content": "c", "tags": "a, b"})
        assert (await memory_store.search_by_tags(["b"]))[0].tags == ["a", "b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("arguments", "error"),
        [
            ({"content": "c"}, "title must be"),
            ({"title": "t", "content": "  "}, "content must be"),
        ],
    )
    async def test_validation(
        self, memory_store: VectorMemoryStore, arguments: dict, error: str
    ) -> None:
        result = await CreateMemoryTool(memory_store, FakeEmbedder()).execute(arguments)
        assert not result.success
        assert error in (result.error or "")


class TestSearchMemoriesTool:
    @pytest.mark.asyncio
    async def test_finds_similar(self, memory_store: VectorMemoryStore) -> None:
        await memory_store.save_memory(make_memory("Helix", [1.0, 0.0, 0.0]))
        tool = SearchMemoriesTool(memory_store, FakeEmbedder({"editor": [1.0, 0.0, 0.0]}))

        result = await tool.execute({"query": "editor"})

        assert result.success
        assert result.output.startswith("Found 1 memories:")
        assert "### Helix" in result.output
        assert "(similarity 1.00)" in result.output

    @pytest.mark.asyncio
    async def test_no_results(self, memory_store: VectorMemoryStore) -> None:
        result = await SearchMemoriesTool(memory_store, FakeEmbedder()).execute({"query": "x"})
        assert result.output == "No memories found for 'x'."

    @pytest.mark.asyncio
    async def test_blank_query_fails(self, memory_store: VectorMemoryStore) -> None:
        result = await SearchMemoriesTool(memory_store, FakeEmbedder()).execute({"query": ""})
        assert not result.success


class TestViewChatHistoryTool:
    @pytest.mark.asyncio
    async def test_pages_history(self) -> None:
        history = [Message.user(f"m{i}") for i in range(5)]
        tool = ViewChatHistoryTool(AsyncMock(return_value=history))

        result = await tool.execute({"offset": 1, "limit": 2})

        assert result.output.split("\n\n") == [
            "#1 [USER] m1",
            "#2 [USER] m2",
            "(showing 2 of 5 messages)",
        ]

    @pytest.mark.asyncio
    async def test_roles_rendered(self) -> None:
        history = [Message(role=MessageRole.assistant, content="hello")]
        result = await ViewChatHistoryTool(AsyncMock(return_value=history)).execute({})
        assert result.output.startswith("#0 [ASSISTANT] hello")

    @pytest.mark.asyncio
    async def test_negative_offset_fails(self) -> None:
        result = await ViewChatHistoryTool(AsyncMock(return_value=[])).execute({"offset": -1})
        assert not result.success


class TestRegisterBuiltins:
    def test_registers_memory_tools(self, memory_store: VectorMemoryStore) -> None:
        registry = ToolRegistry()
        register_builtins(registry, memory_store, FakeEmbedder())
        assert [t.name for t in registry.list_tools()] == ["create_memory", "search_memories"]

    def test_history_tool_with_loader(self, memory_store: VectorMemoryStore) -> None:
        registry = ToolRegistry()
        register_builtins(
            registry, memory_store, FakeEmbedder(), history_loader=AsyncMock(return_value=[])
        )
        assert "view_chat_history" in registry
