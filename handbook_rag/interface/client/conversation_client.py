"""Async client for the chat endpoint.

Why: Keeps a Conversation in sync with a streamed answer the same way the
     browser front end does, so the wire format can be exercised from Python.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

import httpx

from handbook_rag.domain.errors import (
    ChatRequestFailed,
    CompletionError,
    DomainError,
    RateLimited,
    RateLimitExceeded,
    TransportError,
    UpstreamError,
)
from handbook_rag.domain.models import Conversation, Message
from handbook_rag.domain.types import Result
from handbook_rag.interface.client.reconstructor import MessageReconstructor
from handbook_rag.interface.wire import (
    GENERIC_ERROR_MESSAGE,
    RATE_LIMIT_MESSAGE,
    ErrorFrame,
    FrameDecoder,
    decode_frame,
)

logger = logging.getLogger(__name__)


def user_message_for(error: DomainError) -> str:
    """Text shown to the user for a failed turn: rate limiting gets its own message."""
    if isinstance(error, RateLimitExceeded):
        return RATE_LIMIT_MESSAGE
    if isinstance(error, UpstreamError) and error.is_rate_limited:
        return RATE_LIMIT_MESSAGE
    return GENERIC_ERROR_MESSAGE


def _retry_after(resp: httpx.Response) -> float | None:
    raw = resp.headers.get("retry-after")
    try:
        return float(raw) if raw is not None else None
    except ValueError:
        return None


class ConversationClient:
    """Posts the conversation to /api/chat and reconstructs the streamed reply.

    Never retries; a failed turn leaves the user message (and any partial
    assistant message) in the conversation.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        http: httpx.AsyncClient | None = None,
        timeout_s: float = 120.0,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout_s)
        self._owns_http = http is None
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)

    async def ask(
        self,
        conversation: Conversation,
        question: str,
        on_update: Callable[[Message], None] | None = None,
    ) -> Result[Message, DomainError]:
        """Send question as the next user turn.

        Args:
            conversation: Updated in place (user message, then the assistant message)
            question: The user's question
            on_update: Called with the assistant message after every applied frame

        Returns:
            Result with the final assistant message, or one of
            RateLimitExceeded (HTTP 429), ChatRequestFailed (other statuses or
            no response), CompletionError (error frame, rate-limit tagged when the
            server marked it) and TransportError (stream ended before the final frame)
        """
        conversation.append(Message(id=self._new_id(), role="user", content=question))
        payload: dict[str, Any] = {
            "messages": [
                {"id": m.id, "role": m.role, "content": m.content} for m in conversation.messages
            ]
        }
        try:
            async with self._http.stream("POST", "/api/chat", json=payload) as resp:
                if resp.status_code == 429:
                    await resp.aread()
                    logger.warning("Chat request rate limited")
                    return Result.failure(
                        RateLimitExceeded(
                            message=self._error_text(resp) or RATE_LIMIT_MESSAGE,
                            retry_after_s=_retry_after(resp),
                        )
                    )
                if resp.status_code >= 400:
                    await resp.aread()
                    detail = self._error_text(resp) or resp.reason_phrase
                    logger.error("Chat request failed: %d %s", resp.status_code, detail)
                    return Result.failure(
                        ChatRequestFailed(
                            message=f"HTTP {resp.status_code}: {detail}", status=resp.status_code
                        )
                    )
                return await self._read_stream(resp, conversation, on_update)
        except httpx.HTTPError as ex:
            logger.error("Chat request failed: %s", ex)
            return Result.failure(ChatRequestFailed(message=f"request failed: {ex}"))

    async def _read_stream(
        self,
        resp: httpx.Response,
        conversation: Conversation,
        on_update: Callable[[Message], None] | None,
    ) -> Result[Message, DomainError]:
        reconstructor = MessageReconstructor(conversation, self._new_id())
        decoder = FrameDecoder()

        def handle(raw: str) -> DomainError | None:
            try:
                frame = decode_frame(raw)
            except TransportError as ex:
                logger.warning("Skipping malformed frame: %s", ex)
                return None
            if isinstance(frame, ErrorFrame):
                rate_limit = RateLimited() if frame.rate_limited else None
                return CompletionError(message=frame.error, rate_limit=rate_limit)
            message = reconstructor.apply(frame)
            if on_update is not None:
                on_update(message)
            return None

        async for chunk in resp.aiter_text():
            for raw in decoder.feed(chunk):
                err = handle(raw)
                if err is not None:
                    return Result.failure(err)
        rest = decoder.flush()
        if rest is not None:
            err = handle(rest)
            if err is not None:
                return Result.failure(err)

        if not reconstructor.done:
            return Result.failure(
                TransportError(message="stream ended before the final frame")
            )
        return Result.success(reconstructor.message)

    @staticmethod
    def _error_text(resp: httpx.Response) -> str | None:
        try:
            body = resp.json()
        except ValueError:
            return None
        return body.get("error") if isinstance(body, dict) else None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
