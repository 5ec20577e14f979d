"""Tests for StreamingParser, StreamProcessor and XML tool-call extraction."""

from __future__ import annotations

import pytest

from mnemos.agent.messages import MessageRole, ToolCall
from mnemos.agent.model_client import ToolCallDelta
from mnemos.agent.stream_parser import (
    ParserState,
    StreamingParser,
    StreamProcessor,
    extract_tool_calls,
)


def _feed(chunks: list[str]) -> StreamProcessor:
    processor = StreamProcessor()
    for chunk in chunks:
        processor.process_chunk(chunk)
    return processor


class TestStreamingParser:
    def test_split_open_tag_matches_single_chunk(self) -> None:
        split = _feed(["<thi", "nk>plan</think>hello"]).finalize()
        whole = _feed(["<think>plan</think>hello"]).finalize()

        assert split.think == "plan"
        assert split.content == "hello"
        assert (whole.think, whole.content) == (split.think, split.content)

    def test_partial_tag_is_held_back(self) -> None:
        parser = StreamingParser()
        first = parser.process("Hello <thi")
        assert first.content == "Hello "
        second = parser.process("nk>idea")
        assert second.content is None
        assert second.thinking == "idea"
        assert parser.state is ParserState.inside_think

    def test_split_close_tag(self) -> None:
        message = _feed(["<think>ab", "c</thi", "nk>", "done"]).finalize()
        assert message.think == "abc"
        assert message.content == "done"

    def test_incremental_results(self) -> None:
        parser = StreamingParser()
        assert parser.process("<think>a").thinking == "a"
        result = parser.process("b</think>c")
        assert result.thinking == "b"
        assert result.content == "c"
        assert parser.state is ParserState.outside_think

    def test_orphan_close_reclassifies(self) -> None:
        parser = StreamingParser()
        parser.process("I should check ")
        parser.process("the docs")
        result = parser.process("</think>")

        assert result.reclassified is True
        assert result.thinking == "I should check the docs"
        assert result.content == ""
        assert parser.content == ""

    def test_orphan_close_in_processor(self) -> None:
        message = _feed(["reasoning here", "</think>", "The answer."]).finalize()
        assert message.think == "reasoning here"
        assert message.content == "The answer."

    def test_think_tags_inside_code_fence_are_text(self) -> None:
        text = "Example:\n```\n<think>not thinking</think>\n```\nend"
        message = _feed([text]).finalize()
        assert message.think is None
        assert message.content == text

    def test_flush_releases_partial_tag(self) -> None:
        parser = StreamingParser()
        parser.process("a <th")
        assert parser.flush().content == "<th"
        assert parser.content == "a <th"

    def test_reset(self) -> None:
        parser = StreamingParser()
        parser.process("<think>x")
        parser.reset()
        assert parser.state is ParserState.outside_think
        assert parser.thinking == ""


class TestExtractToolCalls:
    def test_extracts_and_strips(self) -> None:
        text = 'Let me look.\n<tool_call>{"name": "echo", "arguments": {"text": "hi"}}</tool_call>'
        clean, calls = extract_tool_calls(text)
        assert clean.strip() == "Let me look."
        assert calls == [ToolCall(name="echo", arguments={"text": "hi"})]

    def test_fenced_block(self) -> None:
        text = '```xml\n<tool_call>{"name": "echo", "arguments": {}}</tool_call>\n```'
        clean, calls = extract_tool_calls(text)
        assert clean.strip() == ""
        assert [c.name for c in calls] == ["echo"]

    def test_string_arguments_are_decoded(self) -> None:
        _, calls = extract_tool_calls(
            '<tool_call>{"name": "echo", "arguments": "{\\"text\\": \\"x\\"}"}</tool_call>'
        )
        assert calls[0].arguments == {"text": "x"}

    @pytest.mark.parametrize(
        "payload",
        ["not json", '{"arguments": {}}', '{"name": "echo", "arguments": [1]}'],
    )
    def test_invalid_blocks_dropped(self, payload: str) -> None:
        clean, calls = extract_tool_calls(f"a<tool_call>{payload}</tool_call>b")
        assert clean == "ab"
        assert calls == []


class TestStreamProcessorToolCalls:
    def test_native_fragments_accumulate_per_index(self) -> None:
        processor = StreamProcessor()
        processor.process_tool_calls([
            ToolCallDelta(index=1, id="call_b", name="echo", arguments_fragment='{"text":'),
            ToolCallDelta(index=0, id="call_a", name="ec"),
        ])
        processor.process_tool_calls([
            ToolCallDelta(index=0, name="ho", arguments_fragment='{"text": "a"}'),
            ToolCallDelta(index=1, arguments_fragment=' "b"}'),
        ])

        message = processor.finalize()

        assert [(c.id, c.name, c.arguments) for c in message.tool_calls] == [
            ("call_a", "echo", {"text": "a"}),
            ("call_b", "echo", {"text": "b"}),
        ]

    def test_native_before_xml(self) -> None:
        processor = StreamProcessor()
        processor.process_chunk('<tool_call>{"name": "second", "arguments": {}}</tool_call>')
        processor.process_tool_calls([ToolCallDelta(index=0, id="c1", name="first")])

        message = processor.finalize()

        assert [c.name for c in message.tool_calls] == ["first", "second"]
        assert message.tool_calls[0].arguments == {}
        assert message.content == ""

    def test_bad_fragments_dropped(self) -> None:
        processor = StreamProcessor()
        processor.process_tool_calls([
            ToolCallDelta(index=0, arguments_fragment="{}"),
            ToolCallDelta(index=1, name="echo", arguments_fragment="[1, 2]"),
            ToolCallDelta(index=2, name="echo", arguments_fragment='{"text": '),
        ])
        assert processor.finalize().tool_calls == []

    def test_cancelled_turn_keeps_tool_calls(self) -> None:
        processor = StreamProcessor()
        processor.process_chunk(
            'partial answer<tool_call>{"name": "echo", "arguments": {"text": "x"}}</tool_call>'
        )
        processor.process_tool_calls([ToolCallDelta(index=0, name="echo", arguments_fragment="{}")])

        message = processor.finalize(was_cancelled=True)

        assert message.role is MessageRole.assistant
        assert [c.arguments for c in message.tool_calls] == [{}, {"text": "x"}]
        assert message.content == "partial answer"
        assert message.debug_info["cancelled"] is True

    def test_empty_think_is_none(self) -> None:
        message = _feed(["<think>  </think>hi"]).finalize()
        assert message.think is None
        assert message.content == "hi"
