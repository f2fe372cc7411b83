"""HTTP API: streamed chat answers over server-sent events.

Why: Transport only. Validation, retrieval and prompting live in the
     AnswerQuestion use case; this module maps its Result to a stream or
     to a JSON error with the matching status.
"""

from __future__ import annotations

import contextlib
import logging
import math
import uuid
from collections.abc import AsyncIterator
from typing import Any, Literal

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from handbook_rag.application.dto.chat_dto import ChatRequest
from handbook_rag.application.use_cases.stream_answer import AnswerStream
from handbook_rag.config.compose import Container, build_container
from handbook_rag.domain.errors import (
    CompletionError,
    DomainError,
    EmbeddingError,
    PassageStoreError,
    UpstreamError,
    ValidationError,
)
from handbook_rag.domain.models import Message
from handbook_rag.interface.wire import (
    GENERIC_ERROR_MESSAGE,
    RATE_LIMIT_MESSAGE,
    SSE_HEADERS,
    encode_error,
    encode_event,
)

logger = logging.getLogger(__name__)

STARTER_PROMPTS = [
    "What is the purpose of the Elders Quorum?",
    "What is the purpose of the Aaronic Priesthood?",
    "What is the purpose of the Melchizedek Priesthood?",
]


class MessageModel(BaseModel):
    """One conversation turn as sent by the browser."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Literal["user", "assistant"]
    content: str


class ChatRequestModel(BaseModel):
    """Request model for /api/chat (the full conversation so far)."""

    messages: list[MessageModel]

    def to_dto(self) -> ChatRequest:
        return ChatRequest(
            messages=tuple(Message(id=m.id, role=m.role, content=m.content) for m in self.messages)
        )


class ErrorResponseModel(BaseModel):
    error: str


def error_response(err: DomainError) -> JSONResponse:
    """Map a pipeline failure (before streaming began) to a JSON error response."""
    if isinstance(err, UpstreamError) and err.rate_limit is not None:
        headers: dict[str, str] = {}
        if err.rate_limit.retry_after_s is not None:
            headers["Retry-After"] = str(math.ceil(err.rate_limit.retry_after_s))
        return JSONResponse({"error": RATE_LIMIT_MESSAGE}, status_code=429, headers=headers)
    if isinstance(err, ValidationError):
        return JSONResponse({"error": str(err)}, status_code=400)
    if isinstance(err, EmbeddingError):
        return JSONResponse({"error": "Error creating embeddings"}, status_code=500)
    return JSONResponse({"error": "Internal Server Error"}, status_code=500)


async def sse_body(stream: AnswerStream) -> AsyncIterator[str]:
    """Encode the answer stream as SSE frames.

    When the client disconnects the server cancels this generator; the
    finally block then stops the producer and the upstream completion.
    """
    try:
        async with contextlib.aclosing(stream.events()) as events:
            async for event in events:
                yield encode_event(event)
    except CompletionError as ex:
        if ex.is_rate_limited:
            yield encode_error(RATE_LIMIT_MESSAGE, rate_limited=True)
        else:
            yield encode_error(GENERIC_ERROR_MESSAGE)
    finally:
        await stream.aclose()


def create_app(container: Container | None = None) -> FastAPI:
    """Build the FastAPI app; the container is started and closed by the lifespan."""
    container = container or build_container()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await container.start()
        try:
            yield
        finally:
            await container.close()

    app = FastAPI(title="Handbook RAG API", version="1.0.0", lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected invalid chat request: %s", exc.errors())
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    @app.post(
        "/api/chat",
        response_model=None,
        responses={400: {"model": ErrorResponseModel}, 429: {"model": ErrorResponseModel}},
    )
    async def chat(req: ChatRequestModel) -> Any:
        """Answer the last user message; streams ``text/event-stream`` frames.

        Example:
            POST /api/chat
            {"messages": [{"id": "1", "role": "user", "content": "What is the Elders Quorum?"}]}
        """
        try:
            uc = container.get_answer_use_case()
            result = await uc.execute(req.to_dto())
        except Exception:
            logger.exception("Chat request failed before streaming")
            return JSONResponse({"error": "Internal Server Error"}, status_code=500)

        if not result.ok or result.value is None:
            return error_response(result.error or DomainError("no answer stream"))

        return StreamingResponse(
            sse_body(result.value),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/api/suggestions")
    async def suggestions() -> dict[str, list[str]]:
        return {"suggestions": list(STARTER_PROMPTS)}

    @app.get("/health")
    async def health() -> JSONResponse:
        """Health check including the number of stored passages."""
        try:
            n = await container.get_passage_store().count()
        except PassageStoreError as ex:
            logger.warning("Health check failed: %s", ex)
            return JSONResponse(
                {"status": "unavailable", "service": "handbook-rag", "error": str(ex)},
                status_code=503,
            )
        return JSONResponse({"status": "healthy", "service": "handbook-rag", "passages": n})

    return app


app = create_app()
