"""Completion streamer: provider deltas → cumulative incremental events.

Why: A producer task pushes IncrementalEvents into a bounded channel and the
     transport drains it; a full channel suspends the producer, so a slow
     client throttles how fast upstream chunks are pulled.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Sequence

from handbook_rag.application.ports.llm_port import ChatMessage, CompletionParams, LLMPort
from handbook_rag.domain.errors import CompletionError
from handbook_rag.domain.models import IncrementalEvent

logger = logging.getLogger(__name__)


async def _single(text: str) -> AsyncIterator[str]:
    yield text


class AnswerStream:
    """One streamed answer.

    Iterate ``events()`` to receive IncrementalEvents in order. The last event of
    a successful stream has ``done=True``; on failure ``events()`` raises
    CompletionError after the partial events and no terminal event is produced.
    """

    def __init__(
        self,
        deltas: AsyncIterator[str],
        channel_size: int = 16,
        deadline: float | None = None,
        on_complete: Callable[[str], None] | None = None,
    ) -> None:
        """
        Args:
            deltas: Upstream text increments (an async generator)
            channel_size: Capacity of the bounded channel between producer and transport
            deadline: Event-loop time after which the stream fails
            on_complete: Called with the final text after a successful stream
        """
        self._deltas = deltas
        # None marks the end of the stream
        self._channel: asyncio.Queue[IncrementalEvent | CompletionError | None] = asyncio.Queue(
            maxsize=channel_size
        )
        self._deadline = deadline
        self._on_complete = on_complete
        self._producer: asyncio.Task[None] | None = None

    @classmethod
    def from_text(cls, text: str) -> AnswerStream:
        """A stream that delivers a fixed answer (no model call)."""
        return cls(_single(text), channel_size=2)

    async def _produce(self) -> None:
        buffer = ""
        try:
            async with asyncio.timeout_at(self._deadline):
                async for piece in self._deltas:
                    if not piece:
                        continue
                    buffer += piece
                    await self._channel.put(IncrementalEvent(text=buffer, done=False))
            self._notify_complete(buffer)
            await self._channel.put(IncrementalEvent(text=buffer, done=True))
        except CompletionError as ex:
            logger.error("Completion stream failed after %d chars: %s", len(buffer), ex)
            await self._channel.put(ex)
        except TimeoutError:
            logger.error("Completion stream exceeded the request budget")
            await self._channel.put(CompletionError("completion exceeded the request time budget"))
        except Exception as ex:  # noqa: BLE001
            logger.exception("Unexpected completion stream failure")
            await self._channel.put(CompletionError(f"completion stream failed: {ex}"))
        finally:
            await self._deltas.aclose()  # type: ignore[attr-defined]
        await self._channel.put(None)

    def _notify_complete(self, text: str) -> None:
        if self._on_complete is None:
            return
        try:
            self._on_complete(text)
        except Exception:  # noqa: BLE001
            # observers never fail an answer that was fully generated
            logger.exception("on_complete callback failed")

    async def events(self) -> AsyncIterator[IncrementalEvent]:
        if self._producer is not None:
            raise RuntimeError("AnswerStream can only be consumed once")
        self._producer = asyncio.create_task(self._produce())
        try:
            while True:
                item = await self._channel.get()
                if item is None:
                    return
                if isinstance(item, CompletionError):
                    raise item
                yield item
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Stop pulling upstream chunks (client went away or consumer finished)."""
        if self._producer is None:
            # never started: close the upstream iterator directly
            await self._deltas.aclose()  # type: ignore[attr-defined]
            return
        if not self._producer.done():
            self._producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._producer


class CompletionStreamer:
    """Sends [system, *history] to the chat model and wraps the reply in an AnswerStream."""

    def __init__(
        self,
        llm: LLMPort,
        params: CompletionParams | None = None,
        channel_size: int = 16,
    ) -> None:
        self.llm = llm
        self.params = params or CompletionParams()
        self.channel_size = channel_size

    async def open(
        self,
        system_message: ChatMessage,
        history: Sequence[ChatMessage],
        deadline: float | None = None,
        on_complete: Callable[[str], None] | None = None,
    ) -> AnswerStream:
        """Start the completion.

        Raises:
            CompletionError: the provider rejected the request (before any event)
        """
        messages = [system_message, *history]
        logger.info(
            "Opening completion stream: %d messages, temperature=%s, max_tokens=%d",
            len(messages),
            self.params.temperature,
            self.params.max_tokens,
        )
        try:
            async with asyncio.timeout_at(deadline):
                deltas = await self.llm.open_stream(messages, self.params)
        except TimeoutError as ex:
            raise CompletionError("completion request timed out") from ex
        return AnswerStream(
            deltas,
            channel_size=self.channel_size,
            deadline=deadline,
            on_complete=on_complete,
        )
