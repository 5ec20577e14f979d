from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import structlog

from mnemos.agent.events import (
    AgentEvent,
    ContextReady,
    Reclassified,
    TextChunk,
    ThinkingChunk,
    ToolCallInfo,
    ToolResultInfo,
    TurnComplete,
)
from mnemos.agent.messages import Message, MessageRole
from mnemos.agent.prompt_builder import PromptBuilder, default_instructions
from mnemos.agent.stream_parser import StreamProcessor
from mnemos.config.settings import Settings
from mnemos.infra.errors import LLMError
from mnemos.infra.logging import bind_session, clear_session
from mnemos.memory.recall import QUERY_VECTOR_KEY

if TYPE_CHECKING:
    from mnemos.agent.model_client import ModelClient
    from mnemos.memory.contracts import TagGenerator
    from mnemos.session.manager import SessionManager, SessionOrchestrator

logger = structlog.get_logger()

MAX_TOOL_ITERATIONS = 10

MAX_ITERATIONS_REPLY = "I've reached the maximum number of tool calls. Please try again."


class AgentLoop:
    """Core agent loop with tool calling support.

    Flow: user msg -> gather context -> build prompt -> stream LLM ->
          (tool_calls -> execute_all -> stream LLM)* -> final answer

    The whole turn runs under the session orchestrator's lock, so turns on
    one session are serialized while different sessions run in parallel.
    """

    def __init__(
        self,
        model_client: ModelClient | None,
        session_manager: SessionManager,
        model: str,
        *,
        settings: Settings | None = None,
        prompt_builder: PromptBuilder | None = None,
        tag_generator: TagGenerator | None = None,
        system_instructions: str | None = None,
    ) -> None:
        self._model_client = model_client
        self._session_manager = session_manager
        self._model = model
        self._settings = settings or Settings()
        self._prompt_builder = prompt_builder or PromptBuilder.from_settings(self._settings.prompt)
        self._tag_generator = tag_generator
        self._system_instructions = system_instructions
        self._max_iterations = self._settings.tools.max_tool_iterations

    async def handle_message(
        self,
        session_id: str,
        content: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Handle an incoming user message and yield agent events.

        Raises LLMError(code="LLM_NOT_CONFIGURED") on first iteration when no
        model client is configured.
        """
        if self._model_client is None:
            raise LLMError("No model backend configured", code="LLM_NOT_CONFIGURED")

        orchestrator = await self._session_manager.get_orchestrator(session_id)
        bind_session(session_id)
        try:
            async with orchestrator.locked():
                async for event in self._run_turn(orchestrator, content, cancel_event):
                    yield event
        finally:
            clear_session()

    async def _run_turn(
        self,
        orchestrator: SessionOrchestrator,
        content: str,
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[AgentEvent]:
        session_id = orchestrator.session_id
        executor = orchestrator.tool_executor
        executor.reset()

        prior = await self._session_manager.get_history(session_id)
        bundle = await orchestrator.context_retriever.gather_context(
            content,
            prior,
            limit=self._settings.retrieval.default_limit,
            tag_generator=self._tag_generator,
            cancel_event=cancel_event,
        )
        yield ContextReady(bundle=bundle)

        user_msg = Message.user(content)
        user_msg.recalled_memories = bundle.memories
        user_msg.debug_info = {
            "generated_tags": list(bundle.generated_tags),
            "retrieval_seconds": round(bundle.elapsed_seconds, 4),
        }
        if bundle.query_vector:
            user_msg.debug_info[QUERY_VECTOR_KEY] = list(bundle.query_vector)
        await self._session_manager.append_message(session_id, user_msg)

        instructions = self._system_instructions or default_instructions(
            persona=orchestrator.session.persona
        )
        turn: list[Message] = []

        for iteration in range(self._max_iterations):
            tools = orchestrator.tool_set.list_tools()
            if turn:
                history, query = [*prior, user_msg, *turn], ""
            else:
                history, query = prior, content
            prompt = self._prompt_builder.build_prompt(
                system_instructions=instructions,
                notes=bundle.notes,
                memories=bundle.memories,
                tools=tools,
                history=history,
                user_query=query,
            )

            processor = StreamProcessor()
            cancelled = False
            async for delta in self._model_client.chat_stream(
                prompt.messages,
                self._model,
                tools=[t.to_openai_schema() for t in tools] or None,
            ):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break
                if delta.content:
                    result = processor.process_chunk(delta.content)
                    if result.reclassified:
                        yield Reclassified(thinking=processor.thinking, content=processor.content)
                    else:
                        if result.thinking:
                            yield ThinkingChunk(content=result.thinking)
                        if result.content:
                            yield TextChunk(content=result.content)
                if delta.tool_calls:
                    processor.process_tool_calls(delta.tool_calls)

            assistant = processor.finalize(was_cancelled=cancelled)
            assistant.debug_info["iteration"] = iteration
            assistant.debug_info["raw_prompt"] = prompt.raw_prompt
            await self._session_manager.append_message(session_id, assistant)
            turn.append(assistant)

            if cancelled or not assistant.tool_calls:
                logger.info(
                    "response_complete",
                    session_id=session_id,
                    chars=len(assistant.content),
                    cancelled=cancelled,
                )
                yield TurnComplete(message=assistant, cancelled=cancelled)
                return

            for call in assistant.tool_calls:
                yield ToolCallInfo(tool_name=call.name, arguments=call.arguments, call_id=call.id)

            results = await executor.execute_all(assistant.tool_calls, cancel_event)
            for call, tool_msg in zip(assistant.tool_calls, results, strict=True):
                await self._session_manager.append_message(session_id, tool_msg)
                turn.append(tool_msg)
                yield ToolResultInfo(
                    tool_name=call.name, call_id=call.id, content=tool_msg.content
                )

            logger.info(
                "tool_call_iteration",
                iteration=iteration + 1,
                tools_called=len(assistant.tool_calls),
                session_id=session_id,
            )
            if cancel_event is not None and cancel_event.is_set():
                yield TurnComplete(message=assistant, cancelled=True)
                return

        # Safety: max iterations
        logger.warning("max_tool_iterations", max=self._max_iterations, session_id=session_id)
        final = Message(role=MessageRole.assistant, content=MAX_ITERATIONS_REPLY)
        await self._session_manager.append_message(session_id, final)
        yield TextChunk(content=MAX_ITERATIONS_REPLY)
        yield TurnComplete(message=final)
