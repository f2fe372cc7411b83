from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import openai

from handbook_rag.application.ports.llm_port import ChatMessage, CompletionParams, LLMPort
from handbook_rag.domain.errors import CompletionError
from handbook_rag.infrastructure.llm.openai_errors import translate_openai_error

logger = logging.getLogger(__name__)


@dataclass
class OpenAIChatAdapter(LLMPort):
    """Streamed chat completions through an OpenAI-compatible endpoint."""

    base_url: str  # e.g. "https://generativelanguage.googleapis.com/v1beta/openai/"
    api_key: str
    model: str = "gemini-1.5-flash"
    timeout_s: float = 120.0  # long timeout for LLM
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

    async def open_stream(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> AsyncIterator[str]:
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": True,
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
        }
        if params.presence_penalty is not None:
            kwargs["presence_penalty"] = params.presence_penalty
        if params.frequency_penalty is not None:
            kwargs["frequency_penalty"] = params.frequency_penalty

        try:
            stream: Any = await client.chat.completions.create(**kwargs)
        except Exception as ex:  # noqa: BLE001
            raise translate_openai_error(ex, CompletionError, "completion") from ex
        return self._deltas(stream)

    async def _deltas(self, stream: Any) -> AsyncIterator[str]:
        chunks = 0
        try:
            async for chunk in stream:
                chunks += 1
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                content = getattr(delta, "content", None) if delta is not None else None
                if content:
                    yield content
        except Exception as ex:  # noqa: BLE001
            raise translate_openai_error(ex, CompletionError, "completion") from ex
        finally:
            # stops the HTTP response early when the consumer goes away
            await stream.close()
            logger.debug("Completion stream closed after %d chunks", chunks)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
