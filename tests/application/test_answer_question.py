"""End-to-end tests of the AnswerQuestion pipeline with fake adapters."""

import asyncio
from collections.abc import AsyncIterator, Sequence

from handbook_rag.application.dto.chat_dto import ChatRequest
from handbook_rag.application.ports.llm_port import ChatMessage, CompletionParams
from handbook_rag.application.use_cases.answer_question import AnswerQuestion
from handbook_rag.application.use_cases.retrieve_passages import Retriever
from handbook_rag.application.use_cases.stream_answer import CompletionStreamer
from handbook_rag.domain.errors import (
    CompletionError,
    DeadlineExceeded,
    EmbeddingError,
    RateLimited,
    ValidationError,
)
from handbook_rag.domain.models import (
    IncrementalEvent,
    Message,
    Passage,
    PassageMetadata,
    ScoredPassage,
)
from handbook_rag.domain.services.keywords import KeywordPattern
from handbook_rag.domain.services.prompting import REFUSAL_MESSAGE, unapproved_citations

HANDBOOK_URL = "https://example.org/handbook/11"


class FakeEmbedding:
    def __init__(self, error: Exception | None = None, delay_s: float = 0.0) -> None:
        self.error = error
        self.delay_s = delay_s
        self.calls = 0

    async def embed_query(self, text: str) -> list[float]:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return [1.0, 0.0]


class FakeStore:
    def __init__(self, hits: list[ScoredPassage] | None = None) -> None:
        self.hits = hits or []
        self.calls = 0

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def count(self) -> int:
        return len(self.hits)

    async def vector_search(
        self, index: str, vector: Sequence[float], num_candidates: int, limit: int
    ) -> list[ScoredPassage]:
        self.calls += 1
        return self.hits[:limit]

    async def pattern_search(self, keywords: KeywordPattern, limit: int) -> list[Passage]:
        self.calls += 1
        return []


class FakeLLM:
    """Streams scripted pieces; optionally fails after fail_after pieces."""

    def __init__(self, pieces: Sequence[str] = (), fail_after: int | None = None) -> None:
        self.pieces = list(pieces)
        self.fail_after = fail_after
        self.calls: list[list[ChatMessage]] = []

    async def open_stream(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> AsyncIterator[str]:
        self.calls.append(list(messages))
        return self._deltas()

    async def _deltas(self) -> AsyncIterator[str]:
        for i, piece in enumerate(self.pieces):
            if self.fail_after is not None and i == self.fail_after:
                raise CompletionError(message="model overloaded")
            yield piece
        if self.fail_after is not None and self.fail_after >= len(self.pieces):
            raise CompletionError(message="model overloaded")


class RecordingTelemetry:
    def __init__(self) -> None:
        self.counters: list[tuple[str, dict]] = []

    def incr(self, name: str, tags: dict | None = None) -> None:
        self.counters.append((name, tags or {}))

    def observe(self, name: str, value: float, tags: dict | None = None) -> None:
        pass


def handbook_hit() -> ScoredPassage:
    return ScoredPassage(
        passage=Passage(
            id="p11",
            text="The elders quorum helps members prepare to receive temple ordinances.",
            vector=(1.0, 0.0),
            url=HANDBOOK_URL,
            metadata=PassageMetadata(chunk_index=3, total_chunks=12),
        ),
        score=0.91,
    )


def build(
    embedding: FakeEmbedding | None = None,
    store: FakeStore | None = None,
    llm: FakeLLM | None = None,
    telemetry: RecordingTelemetry | None = None,
    request_timeout_s: float | None = 60.0,
) -> AnswerQuestion:
    retriever = Retriever(embedding or FakeEmbedding(), store or FakeStore([handbook_hit()]))
    return AnswerQuestion(
        retriever=retriever,
        streamer=CompletionStreamer(llm or FakeLLM(["ok"])),
        request_timeout_s=request_timeout_s,
        telemetry=telemetry,
    )


def ask(question: str, *earlier: Message) -> ChatRequest:
    return ChatRequest(messages=(*earlier, Message(id="q", role="user", content=question)))


async def drain(
    uc: AnswerQuestion, req: ChatRequest
) -> tuple[list[IncrementalEvent], Exception | None]:
    result = await uc.execute(req)
    assert result.ok and result.value is not None, result.error
    events: list[IncrementalEvent] = []
    try:
        async for event in result.value.events():
            events.append(event)
    except CompletionError as ex:
        return events, ex
    return events, None


def test_scenario_a_grounded_answer_cites_only_the_passage():
    llm = FakeLLM(["The elders quorum ", "helps members prepare [1]."])
    uc = build(llm=llm)

    events, err = asyncio.run(drain(uc, ask("What is the purpose of the Elders Quorum?")))

    assert err is None
    system = llm.calls[0][0]
    assert system.role == "system"
    assert "[1]" in system.content
    assert HANDBOOK_URL in system.content
    assert events[-1].done
    assert unapproved_citations(events[-1].text, passage_count=1) == []


def test_history_follows_the_system_message():
    llm = FakeLLM(["ok"])
    earlier = (
        Message(id="1", role="user", content="Who leads it?"),
        Message(id="2", role="assistant", content="A president [1]."),
    )
    asyncio.run(drain(build(llm=llm), ask("And its purpose?", *earlier)))
    sent = llm.calls[0]
    assert [m.role for m in sent] == ["system", "user", "assistant", "user"]
    assert sent[-1].content == "And its purpose?"


def test_scenario_c_rate_limited_embedding_stops_the_pipeline():
    store, llm = FakeStore([handbook_hit()]), FakeLLM(["never"])
    telemetry = RecordingTelemetry()
    err = EmbeddingError(message="quota exceeded", rate_limit=RateLimited(retry_after_s=30.0))
    uc = build(embedding=FakeEmbedding(error=err), store=store, llm=llm, telemetry=telemetry)

    result = asyncio.run(uc.execute(ask("What is the purpose of the Elders Quorum?")))

    assert not result.ok
    assert isinstance(result.error, EmbeddingError)
    assert result.error.is_rate_limited
    assert store.calls == 0
    assert llm.calls == []
    assert ("rag.errors.total", {"error_type": "rate_limited"}) in telemetry.counters


def test_scenario_d_error_after_two_partial_events():
    llm = FakeLLM(["The elders ", "quorum ", "never sent"], fail_after=2)

    events, err = asyncio.run(drain(build(llm=llm), ask("What is the Elders Quorum?")))

    assert [e.text for e in events] == ["The elders ", "The elders quorum "]
    assert isinstance(err, CompletionError)
    assert not any(e.done for e in events)


def test_no_grounding_returns_refusal_without_model_call():
    llm = FakeLLM(["should not be called"])
    uc = build(store=FakeStore([]), llm=llm)

    events, err = asyncio.run(drain(uc, ask("What is the capital of France?")))

    assert err is None
    assert llm.calls == []
    assert events[-1] == IncrementalEvent(text=REFUSAL_MESSAGE, done=True)


class TestValidation:
    def test_empty_conversation(self) -> None:
        result = asyncio.run(build().execute(ChatRequest(messages=())))
        assert not result.ok
        assert isinstance(result.error, ValidationError)

    def test_last_message_must_be_from_user(self) -> None:
        req = ChatRequest(messages=(Message(id="a", role="assistant", content="Hello"),))
        result = asyncio.run(build().execute(req))
        assert isinstance(result.error, ValidationError)

    def test_blank_question(self) -> None:
        result = asyncio.run(build().execute(ask("   ")))
        assert isinstance(result.error, ValidationError)


def test_slow_retrieval_exceeds_request_budget():
    uc = build(embedding=FakeEmbedding(delay_s=1.0), request_timeout_s=0.05)
    result = asyncio.run(uc.execute(ask("question")))
    assert isinstance(result.error, DeadlineExceeded)


def test_unapproved_citation_is_counted():
    telemetry = RecordingTelemetry()
    uc = build(llm=FakeLLM(["See [Wikipedia]."]), telemetry=telemetry)
    events, _ = asyncio.run(drain(uc, ask("question")))
    assert events[-1].done
    assert any(name == "rag.citations.unapproved" for name, _ in telemetry.counters)
