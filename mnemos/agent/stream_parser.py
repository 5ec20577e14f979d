"""Incremental parsing of streamed model output.

StreamingParser splits text into reasoning (<think>...</think>) and visible
content, holding back partial tags across chunk boundaries. StreamProcessor
wraps it for one turn: keeps the accumulated buffers, collects native
tool-call fragments by index, and produces the finalized assistant Message.

Both are single-threaded: feed chunks in arrival order from one task.
"""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from mnemos.agent.messages import Message, MessageRole, ToolCall

if TYPE_CHECKING:
    from mnemos.agent.model_client import ToolCallDelta

logger = structlog.get_logger()

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
CODE_FENCE = "```"

_TOOL_CALL_RE = re.compile(
    r"(?:```(?:xml)?\s*)?<tool_call>(.*?)</tool_call>(?:\s*```)?",
    re.DOTALL | re.IGNORECASE,
)


class ParserState(StrEnum):
    outside_think = "outside_think"
    inside_think = "inside_think"


class _Kind(StrEnum):
    thinking = "thinking"
    content = "content"
    reclassify = "reclassify"


@dataclass(frozen=True)
class ParseResult:
    """Output of one process() call.

    Normally thinking/content are the new text since the last call. When
    reclassified is True they are the complete replacement buffers.
    """

    thinking: str | None = None
    content: str | None = None
    reclassified: bool = False


class StreamingParser:
    """Think-tag state machine (outside_think <-> inside_think).

    Tags inside ``` fenced code are plain text. A closing tag seen while
    outside a think block means the opening tag was missed: everything
    emitted so far is reclassified as thinking.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._buffer = ""
        self._state = ParserState.outside_think
        self._in_code_block = False
        self._thinking = ""
        self._content = ""

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def thinking(self) -> str:
        return self._thinking

    @property
    def content(self) -> str:
        return self._content

    def process(self, chunk: str) -> ParseResult:
        self._buffer += chunk
        new_thinking: list[str] = []
        new_content: list[str] = []
        reclassified = False

        while (segment := self._next_segment()) is not None:
            text, kind = segment
            if kind is _Kind.reclassify:
                logger.warning("orphaned_think_close", content_chars=len(self._content))
                self._thinking = self._content + text
                self._content = ""
                reclassified = True
            elif kind is _Kind.thinking:
                self._thinking += text
                new_thinking.append(text)
            else:
                self._content += text
                new_content.append(text)

        if reclassified:
            return ParseResult(thinking=self._thinking, content=self._content, reclassified=True)
        return ParseResult(
            thinking="".join(new_thinking) or None,
            content="".join(new_content) or None,
        )

    def flush(self) -> ParseResult:
        """Release any held-back text (e.g. a partial tag) at end of stream."""
        text, self._buffer = self._buffer, ""
        if not text:
            return ParseResult()
        if self._state is ParserState.inside_think:
            self._thinking += text
            return ParseResult(thinking=text)
        self._content += text
        return ParseResult(content=text)

    def _current_kind(self) -> _Kind:
        return _Kind.thinking if self._state is ParserState.inside_think else _Kind.content

    def _active_markers(self) -> list[str]:
        if self._in_code_block:
            return [CODE_FENCE]
        if self._state is ParserState.inside_think:
            return [CODE_FENCE, THINK_CLOSE]
        return [CODE_FENCE, THINK_OPEN, THINK_CLOSE]

    def _next_segment(self) -> tuple[str, _Kind] | None:
        """Consume the next classifiable piece of the buffer, or None to wait."""
        buf = self._buffer
        if not buf:
            return None

        found = [(buf.find(m), m) for m in self._active_markers()]
        found = [(idx, m) for idx, m in found if idx >= 0]

        if found:
            idx, marker = min(found, key=lambda pair: pair[0])
            before = buf[:idx]
            self._buffer = buf[idx + len(marker):]
            kind = self._current_kind()

            if marker == CODE_FENCE:
                self._in_code_block = not self._in_code_block
                return before + marker, kind
            if marker == THINK_OPEN:
                self._state = ParserState.inside_think
                return before, kind
            if self._state is ParserState.inside_think:
                self._state = ParserState.outside_think
                return before, kind
            return before, _Kind.reclassify

        # Hold back a suffix that could still grow into a marker
        hold = _partial_marker_length(buf, self._active_markers())
        emit = buf[: len(buf) - hold]
        if not emit:
            return None
        self._buffer = buf[len(emit):]
        return emit, self._current_kind()


def _partial_marker_length(text: str, markers: Iterable[str]) -> int:
    longest = 0
    for marker in markers:
        for size in range(min(len(marker) - 1, len(text)), 0, -1):
            if text.endswith(marker[:size]):
                longest = max(longest, size)
                break
    return longest


def extract_tool_calls(text: str) -> tuple[str, list[ToolCall]]:
    """Strip <tool_call>{json}</tool_call> blocks from text and decode them.

    Blocks may be wrapped in ``` or ```xml fences. Undecodable blocks are
    removed from the text and dropped.
    """
    calls: list[ToolCall] = []

    def _collect(match: re.Match[str]) -> str:
        call = _decode_xml_tool_call(match.group(1).strip())
        if call is not None:
            calls.append(call)
        return ""

    clean = _TOOL_CALL_RE.sub(_collect, text)
    return clean, calls


def _decode_xml_tool_call(payload: str) -> ToolCall | None:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("xml_tool_call_invalid_json", payload=payload[:200])
        return None
    if not isinstance(data, dict) or not data.get("name"):
        logger.warning("xml_tool_call_missing_name", payload=payload[:200])
        return None

    arguments = data.get("arguments", {})
    if isinstance(arguments, str):
        arguments = _decode_arguments(arguments)
    if not isinstance(arguments, dict):
        logger.warning("xml_tool_call_bad_arguments", tool_name=data["name"])
        return None

    call_id = data.get("id")
    if call_id:
        return ToolCall(name=str(data["name"]), arguments=arguments, id=str(call_id))
    return ToolCall(name=str(data["name"]), arguments=arguments)


def _decode_arguments(raw: str) -> dict[str, Any] | None:
    if not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


@dataclass
class _PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class StreamProcessor:
    """Per-turn accumulator on top of StreamingParser."""

    def __init__(self) -> None:
        self._parser = StreamingParser()
        self._pending: dict[int, _PendingToolCall] = {}
        self.thinking = ""
        self.content = ""

    def reset(self) -> None:
        self._parser.reset()
        self._pending = {}
        self.thinking = ""
        self.content = ""

    def process_chunk(self, text: str) -> ParseResult:
        result = self._parser.process(text)
        self._apply(result)
        return result

    def process_tool_calls(self, deltas: Iterable[ToolCallDelta]) -> None:
        """Concatenate fragments per index. Order matters only within one index."""
        for delta in deltas:
            entry = self._pending.setdefault(delta.index, _PendingToolCall())
            if delta.id:
                entry.id += delta.id
            if delta.name:
                entry.name += delta.name
            if delta.arguments_fragment:
                entry.arguments += delta.arguments_fragment

    def finalize(self, was_cancelled: bool = False) -> Message:
        """Build the assistant Message for this turn.

        Native tool calls (by index) come before XML-embedded ones. A
        cancelled turn keeps its decoded calls; the caller decides not to run them.
        """
        self._apply(self._parser.flush())

        content, xml_calls = extract_tool_calls(self.content)
        tool_calls = [*self._native_tool_calls(), *xml_calls]

        debug_info: dict[str, Any] = {}
        if was_cancelled:
            debug_info["cancelled"] = True
            logger.info("stream_finalized_cancelled", tool_calls=len(tool_calls))

        thinking = self.thinking.strip()
        return Message(
            role=MessageRole.assistant,
            content=content.strip(),
            think=thinking or None,
            tool_calls=tool_calls,
            debug_info=debug_info,
        )

    def _apply(self, result: ParseResult) -> None:
        if result.reclassified:
            self.thinking = result.thinking or ""
            self.content = result.content or ""
            return
        if result.thinking:
            self.thinking += result.thinking
        if result.content:
            self.content += result.content

    def _native_tool_calls(self) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for index in sorted(self._pending):
            entry = self._pending[index]
            if not entry.name:
                logger.warning("tool_call_fragment_dropped", index=index, reason="empty_name")
                continue
            arguments = _decode_arguments(entry.arguments)
            if arguments is None:
                logger.warning(
                    "tool_call_fragment_dropped",
                    index=index,
                    tool_name=entry.name,
                    reason="arguments_not_object",
                )
                continue
            calls.append(
                ToolCall(
                    name=entry.name,
                    arguments=arguments,
                    id=entry.id or f"call_{uuid.uuid4().hex[:24]}",
                )
            )
        return calls
