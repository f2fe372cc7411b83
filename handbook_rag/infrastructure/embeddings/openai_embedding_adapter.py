from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import openai

from handbook_rag.application.ports.embedding_port import EmbeddingPort
from handbook_rag.domain.errors import EmbeddingError
from handbook_rag.infrastructure.llm.openai_errors import translate_openai_error

logger = logging.getLogger(__name__)


@dataclass
class OpenAIEmbeddingAdapter(EmbeddingPort):
    """Embeddings through an OpenAI-compatible endpoint (Gemini by default).

    The SDK's own retries are disabled: failures surface immediately.
    """

    base_url: str  # e.g. "https://generativelanguage.googleapis.com/v1beta/openai/"
    api_key: str
    model: str = "text-embedding-004"
    dim: int | None = 768
    timeout_s: float = 30.0
    client: Any | None = field(default=None, repr=False)

    def _get_client(self) -> Any:
        if self.client is None:
            self.client = openai.AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                timeout=self.timeout_s,
                max_retries=0,
            )
        return self.client

    async def embed_query(self, text: str) -> list[float]:
        client = self._get_client()
        try:
            resp: Any = await client.embeddings.create(model=self.model, input=text)
        except Exception as ex:  # noqa: BLE001
            # Translate external errors to domain-specific errors
            raise translate_openai_error(ex, EmbeddingError, "embedding") from ex

        if not resp.data or not resp.data[0].embedding:
            raise EmbeddingError(message="embedding response contained no vector")
        vector = [float(x) for x in resp.data[0].embedding]
        if self.dim is not None and len(vector) != self.dim:
            raise EmbeddingError(
                message=f"embedding has {len(vector)} dimensions, expected {self.dim}"
            )
        logger.debug("Query embedding created: %d dimensions", len(vector))
        return vector

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
