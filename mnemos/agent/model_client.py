from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from openai import (
    NOT_GIVEN,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from mnemos.infra.errors import LLMError

if TYPE_CHECKING:
    from mnemos.config.settings import OpenAISettings

logger = structlog.get_logger()

T = TypeVar("T")

_RETRYABLE = (APIConnectionError, APITimeoutError, RateLimitError)


@dataclass(frozen=True)
class ToolCallDelta:
    """One streamed tool-call fragment, decoded from the provider chunk.

    Fragments sharing an index belong to the same call and are concatenated
    in arrival order.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments_fragment: str | None = None


@dataclass(frozen=True)
class StreamDelta:
    """A single streamed increment: optional text plus tool-call fragments."""

    content: str | None = None
    tool_calls: list[ToolCallDelta] = field(default_factory=list)


class ModelClient(ABC):
    """Abstract base class for LLM model clients."""

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float | None = None,
    ) -> str:
        """Send messages and return the complete response content."""
        ...

    @abstractmethod
    def chat_stream(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        tools: list[dict] | None = None,
        response_format: dict | None = None,
    ) -> AsyncIterator[StreamDelta]:
        """Stream the response as StreamDelta increments.

        Tool-call fragments are passed through undecoded; callers accumulate
        them per index.
        """
        ...


async def retry_call(
    coro_factory: Callable[[], Coroutine[Any, Any, T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    context: str = "",
) -> T:
    """Execute an async call with exponential backoff retry.

    Retries on: APIConnectionError, APITimeoutError, RateLimitError.
    Non-retryable API errors are wrapped in LLMError.
    """
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except _RETRYABLE as e:
            if attempt == max_retries:
                raise LLMError(
                    f"LLM call failed after {max_retries + 1} attempts: {e}"
                ) from e
            delay = base_delay * (2**attempt) + random.uniform(0, 0.5)
            logger.warning(
                "llm_retry",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(e),
                context=context,
            )
            await asyncio.sleep(delay)
        except APIStatusError as e:
            raise LLMError(f"LLM API error: {e.status_code} {e.message}") from e
    # Unreachable, but satisfies type checker
    raise LLMError("Retry loop exhausted")  # pragma: no cover


def _first_choice(response, *, context: str = ""):
    """Extract first choice from response, raising LLMError if empty."""
    if not response.choices:
        raise LLMError(f"Empty choices from provider ({context})")
    return response.choices[0]


def decode_tool_call_deltas(raw_deltas) -> list[ToolCallDelta]:
    """Map SDK tool-call delta objects onto ToolCallDelta.

    OpenAI streaming tool_calls format:
    - First chunk per tool: {index, id, function: {name, arguments: ""}}
    - Subsequent chunks: {index, function: {arguments: "partial..."}}
    """
    decoded: list[ToolCallDelta] = []
    for tc_delta in raw_deltas or ():
        function = tc_delta.function
        decoded.append(
            ToolCallDelta(
                index=int(tc_delta.index),
                id=tc_delta.id or None,
                name=(function.name or None) if function else None,
                arguments_fragment=(function.arguments or None) if function else None,
            )
        )
    return decoded


class OpenAICompatModelClient(ModelClient):
    """Model client using the OpenAI SDK.

    Works with OpenAI, OpenRouter and Ollama via OpenAI-compatible endpoints.
    Includes exponential backoff retry for transient errors.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._max_retries = max_retries
        self._base_delay = base_delay

    async def _retry_call(
        self,
        coro_factory: Callable[[], Coroutine[Any, Any, T]],
        *,
        context: str = "",
    ) -> T:
        return await retry_call(
            coro_factory,
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            context=context,
        )

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float | None = None,
    ) -> str:
        """Send messages and return the complete response content."""
        logger.debug("chat_request", model=model, message_count=len(messages))
        response = await self._retry_call(
            lambda: self._client.chat.completions.create(
                model=model,
                messages=messages,
                **({"temperature": temperature} if temperature is not None else {}),
            ),
            context="chat",
        )
        content = _first_choice(response, context="chat").message.content or ""
        logger.debug("chat_response", chars=len(content))
        return content

    async def chat_stream(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        tools: list[dict] | None = None,
        response_format: dict | None = None,
    ) -> AsyncIterator[StreamDelta]:
        """Stream the response, decoding each chunk into a StreamDelta.

        A chunk that cannot be decoded is dropped with a warning; the
        stream continues.
        """
        logger.debug(
            "chat_stream_request",
            model=model,
            message_count=len(messages),
            tool_count=len(tools) if tools else 0,
        )
        stream = await self._retry_call(
            lambda: self._client.chat.completions.create(
                model=model,
                messages=messages,
                tools=tools if tools else NOT_GIVEN,
                response_format=response_format if response_format else NOT_GIVEN,
                stream=True,
            ),
            context="chat_stream",
        )

        async for chunk in stream:
            if not chunk.choices:
                continue
            try:
                delta = chunk.choices[0].delta
                tool_calls = decode_tool_call_deltas(delta.tool_calls)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("stream_chunk_dropped", error=str(e))
                continue
            if delta.content or tool_calls:
                yield StreamDelta(content=delta.content or None, tool_calls=tool_calls)


def create_model_client(settings: OpenAISettings) -> ModelClient | None:
    """Build the configured client, or None when no API key is set."""
    if not settings.api_key:
        logger.warning("model_client_not_configured")
        return None
    return OpenAICompatModelClient(
        api_key=settings.api_key,
        base_url=settings.base_url,
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay,
    )
