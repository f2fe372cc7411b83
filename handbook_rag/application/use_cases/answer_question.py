# handbook_rag/application/use_cases/answer_question.py
from __future__ import annotations

import asyncio
import logging

from handbook_rag.application.dto.chat_dto import ChatRequest
from handbook_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from handbook_rag.application.use_cases.retrieve_passages import Retriever
from handbook_rag.application.use_cases.stream_answer import AnswerStream, CompletionStreamer
from handbook_rag.domain.errors import (
    CompletionError,
    DeadlineExceeded,
    DomainError,
    EmbeddingError,
    PassageStoreError,
    ValidationError,
)
from handbook_rag.domain.services.prompting import (
    DEFAULT_POLICY,
    PromptPolicy,
    build_system_message,
    unapproved_citations,
)
from handbook_rag.domain.types import Result

logger = logging.getLogger(__name__)


class AnswerQuestion:
    """
    Application use case for one chat turn:
    retrieve → build system message → open the completion stream.

    Embedding, search and completion are awaited one after another since each
    step needs the previous result. Failures before the first event come back
    as Result.failure so the transport can still answer with a plain status;
    failures after that travel inside the AnswerStream.
    """

    def __init__(
        self,
        retriever: Retriever,
        streamer: CompletionStreamer,
        policy: PromptPolicy = DEFAULT_POLICY,
        request_timeout_s: float | None = 60.0,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.retriever = retriever
        self.streamer = streamer
        self.policy = policy
        self.request_timeout_s = request_timeout_s
        self.telemetry = telemetry or NullTelemetry()

    async def execute(self, req: ChatRequest) -> Result[AnswerStream, DomainError]:
        # 1) Validate
        if not req.messages:
            return Result.failure(ValidationError("messages must not be empty"))
        last = req.messages[-1]
        if last.role != "user" or not last.content.strip():
            return Result.failure(ValidationError("last message must be a non-empty user message"))

        loop = asyncio.get_running_loop()
        deadline = (
            loop.time() + self.request_timeout_s if self.request_timeout_s is not None else None
        )
        logger.info("Answering question (%d messages): %.80s", len(req.messages), req.question)

        try:
            async with asyncio.timeout_at(deadline):
                # 2) Retrieve
                result = await self.retriever.retrieve(req.question)
        except TimeoutError:
            return self._fail(DeadlineExceeded("retrieval exceeded the request time budget"))
        except (ValidationError, EmbeddingError, PassageStoreError) as ex:
            return self._fail(ex)

        # 3) No grounding: answer with the refusal instead of prompting without passages
        if result is None:
            logger.info("No grounding available; returning refusal without a model call")
            self.telemetry.incr("rag.answers.total", {"grounding": "none"})
            return Result.success(AnswerStream.from_text(self.policy.refusal))

        # 4) Build system message from this request's passages only
        system_message = build_system_message(result, self.policy)
        logger.debug("System prompt length: %d chars", len(system_message.content))

        # 5) Open completion stream
        passage_count = len(result)
        try:
            stream = await self.streamer.open(
                system_message,
                req.history,
                deadline=deadline,
                on_complete=lambda text: self._audit(text, passage_count),
            )
        except CompletionError as ex:
            return self._fail(ex)
        self.telemetry.incr("rag.answers.total", {"grounding": result.path})
        return Result.success(stream)

    def _fail(self, err: DomainError) -> Result[AnswerStream, DomainError]:
        logger.error("%s: %s", type(err).__name__, err)
        rate_limited = getattr(err, "is_rate_limited", False)
        self.telemetry.incr(
            "rag.errors.total",
            {"error_type": "rate_limited" if rate_limited else type(err).__name__},
        )
        return Result.failure(err)

    def _audit(self, answer: str, passage_count: int) -> None:
        bad = unapproved_citations(answer, passage_count, self.policy)
        if bad:
            logger.warning("Answer cites unapproved sources: %s", ", ".join(bad))
            self.telemetry.incr("rag.citations.unapproved", {"count": str(len(bad))})
