"""Tests for BaseTool, ToolRegistry and SessionToolSet."""

from __future__ import annotations

import pytest
from conftest import EchoTool

from mnemos.agent.messages import ToolResult
from mnemos.tools.context import ToolContext, ToolContextSession
from mnemos.tools.registry import SessionToolSet, ToolRegistry


class _Context(ToolContext):
    @property
    def context_id(self) -> str:
        return "viewer"

    @property
    def context_tools(self) -> list:
        return [EchoTool("next_page")]

    def format_state(self) -> str:
        return ""


class TestBaseTool:
    def test_openai_schema(self) -> None:
        schema = EchoTool().to_openai_schema()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "echo"
        assert schema["function"]["parameters"]["required"] == ["text"]

    def test_prompt_string(self) -> None:
        assert EchoTool().prompt_string.startswith("- **echo**: Echo the given text.\n  parameters: {")

    def test_summarize(self) -> None:
        assert EchoTool().summarize({"text": "a"}, ToolResult.fail("x")) == "echo(text) failed"

    def test_requires_permission_default(self) -> None:
        assert EchoTool().requires_permission is False


class TestToolRegistry:
    def test_register_and_get(self) -> None:
        registry = ToolRegistry()
        tool = EchoTool()
        registry.register(tool)
        assert registry.get("echo") is tool
        assert "echo" in registry
        assert registry.get("missing") is None

    def test_duplicate_raises(self) -> None:
        registry = ToolRegistry()
        registry.register(EchoTool())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(EchoTool())

    def test_unregister(self) -> None:
        registry = ToolRegistry()
        registry.register(EchoTool())
        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False

    def test_schema(self) -> None:
        registry = ToolRegistry()
        registry.register(EchoTool("a"))
        registry.register(EchoTool("b"))
        assert [s["function"]["name"] for s in registry.get_tools_schema()] == ["a", "b"]


class TestSessionToolSet:
    @pytest.mark.asyncio
    async def test_merges_session_and_context_tools(self) -> None:
        registry = ToolRegistry()
        registry.register(EchoTool("shared"))
        contexts = ToolContextSession()
        tool_set = SessionToolSet(registry, contexts)
        session_tool = EchoTool("history")
        tool_set.add_session_tool(session_tool)

        assert [t.name for t in tool_set.list_tools()] == ["shared", "history"]

        await contexts.activate(_Context())
        assert [t.name for t in tool_set.list_tools()] == ["shared", "history", "next_page"]
        assert tool_set.get("next_page") is not None
        assert tool_set.get("history") is session_tool

    def test_disable_hides_registry_tool(self) -> None:
        registry = ToolRegistry()
        registry.register(EchoTool("a"))
        registry.register(EchoTool("b"))
        tool_set = SessionToolSet(registry, ToolContextSession())

        tool_set.disable("a")

        assert tool_set.get("a") is None
        assert [t.name for t in tool_set.list_tools()] == ["b"]
        tool_set.enable("a")
        assert tool_set.is_enabled("a")

    def test_session_tool_shadows_registry_tool(self) -> None:
        registry = ToolRegistry()
        registry.register(EchoTool("history"))
        tool_set = SessionToolSet(registry, ToolContextSession())
        bound = EchoTool("history")
        tool_set.add_session_tool(bound)

        assert tool_set.get("history") is bound
        assert len(tool_set.get_tools_schema()) == 1
