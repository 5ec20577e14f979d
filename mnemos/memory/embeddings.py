from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from openai import AsyncOpenAI

from mnemos.agent.model_client import retry_call
from mnemos.infra.errors import EmbeddingFailedError, LLMError
from mnemos.memory.contracts import EmbeddingProvider
from mnemos.memory.vector_math import normalize

if TYPE_CHECKING:
    from mnemos.config.settings import OpenAISettings

logger = structlog.get_logger()


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings via the OpenAI-compatible /embeddings endpoint.

    Output is L2-normalized before it is returned.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        *,
        dimensions: int | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model
        self._dimensions = dimensions
        self._max_retries = max_retries
        self._base_delay = base_delay

    @classmethod
    def from_settings(
        cls, settings: OpenAISettings, *, dimensions: int | None = None
    ) -> OpenAIEmbeddingProvider:
        return cls(
            settings.api_key,
            settings.embedding_model,
            settings.base_url,
            dimensions=dimensions,
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
        )

    async def generate_embedding(self, text: str) -> list[float]:
        extra = {"dimensions": self._dimensions} if self._dimensions else {}
        try:
            response = await retry_call(
                lambda: self._client.embeddings.create(
                    model=self._model, input=text, **extra
                ),
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                context="embedding",
            )
        except LLMError as e:
            raise EmbeddingFailedError(str(e)) from e

        if not response.data:
            raise EmbeddingFailedError("Provider returned no embedding data")
        vector = list(response.data[0].embedding)
        logger.debug("embedding_generated", model=self._model, dimensions=len(vector))
        return normalize(vector)
