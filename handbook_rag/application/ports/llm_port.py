from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

# Import domain model and re-export for convenience
from handbook_rag.domain.models import ChatMessage

__all__ = ["ChatMessage", "CompletionParams", "LLMPort"]


@dataclass(frozen=True)
class CompletionParams:
    temperature: float = 0.2  # low: favour determinism over creativity
    max_tokens: int = 500
    presence_penalty: float | None = None
    frequency_penalty: float | None = None


@runtime_checkable
class LLMPort(Protocol):
    async def open_stream(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> AsyncIterator[str]:
        """Start a streamed chat completion.

        Returns once the provider accepted the request; the returned iterator
        yields text deltas (never cumulative text) and is an async generator,
        so callers can aclose() it to stop pulling chunks.

        Raises:
            CompletionError: at initiation, or from the iterator mid-stream
        """
        ...
