"""Tests for AnswerStream and CompletionStreamer (bounded channel of cumulative events)."""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Sequence

import pytest

from handbook_rag.application.ports.llm_port import ChatMessage, CompletionParams
from handbook_rag.application.use_cases.stream_answer import AnswerStream, CompletionStreamer
from handbook_rag.domain.errors import CompletionError
from handbook_rag.domain.models import IncrementalEvent


class Upstream:
    """Scripted delta source; records whether it was closed."""

    def __init__(
        self,
        pieces: Sequence[str],
        fail_after: int | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.pieces = list(pieces)
        self.fail_after = fail_after
        self.delay_s = delay_s
        self.closed = False
        self.pulled = 0

    async def deltas(self) -> AsyncIterator[str]:
        try:
            for i, piece in enumerate(self.pieces):
                if self.fail_after is not None and i == self.fail_after:
                    raise CompletionError(message="upstream broke")
                if self.delay_s:
                    await asyncio.sleep(self.delay_s)
                self.pulled += 1
                yield piece
        finally:
            self.closed = True


async def collect(stream: AnswerStream) -> list[IncrementalEvent]:
    return [event async for event in stream.events()]


class TestAnswerStream:
    def test_events_are_cumulative_with_one_final_done(self) -> None:
        up = Upstream(["The ", "Elders ", "Quorum [1]."])
        events = asyncio.run(collect(AnswerStream(up.deltas())))

        assert [e.text for e in events] == [
            "The ",
            "The Elders ",
            "The Elders Quorum [1].",
            "The Elders Quorum [1].",
        ]
        assert [e.done for e in events] == [False, False, False, True]
        assert up.closed

    def test_each_event_extends_the_previous(self) -> None:
        up = Upstream(["a", "", "b", "c"])
        events = asyncio.run(collect(AnswerStream(up.deltas(), channel_size=1)))
        for prev, cur in zip(events, events[1:]):
            assert cur.text.startswith(prev.text)
        assert sum(e.done for e in events) == 1
        assert events[-1].text == "abc"

    def test_mid_stream_error_after_partial_events(self) -> None:
        """Partial events arrive, then the error; no terminal event is produced."""
        up = Upstream(["one ", "two ", "three"], fail_after=2)
        seen: list[IncrementalEvent] = []

        async def run() -> None:
            async for event in AnswerStream(up.deltas()).events():
                seen.append(event)

        with pytest.raises(CompletionError, match="upstream broke"):
            asyncio.run(run())
        assert [e.text for e in seen] == ["one ", "one two "]
        assert not any(e.done for e in seen)
        assert up.closed

    def test_deadline_turns_into_completion_error(self) -> None:
        up = Upstream(["slow"], delay_s=1.0)

        async def run() -> None:
            deadline = asyncio.get_running_loop().time() + 0.05
            await collect(AnswerStream(up.deltas(), deadline=deadline))

        with pytest.raises(CompletionError, match="time budget"):
            asyncio.run(run())
        assert up.closed

    def test_consumer_leaving_early_closes_upstream(self) -> None:
        up = Upstream([f"{i} " for i in range(100)])

        async def run() -> None:
            stream = AnswerStream(up.deltas(), channel_size=1)
            async with contextlib.aclosing(stream.events()) as events:
                async for event in events:
                    if len(event.text) > 4:
                        break

        asyncio.run(run())
        assert up.closed
        assert up.pulled < 100

    def test_aclose_before_consumption_closes_upstream(self) -> None:
        up = Upstream(["x"])

        async def run() -> None:
            deltas = up.deltas()
            await AnswerStream(deltas).aclose()
            with pytest.raises(StopAsyncIteration):
                await deltas.__anext__()

        asyncio.run(run())
        assert up.pulled == 0

    def test_stream_can_only_be_consumed_once(self) -> None:
        async def run() -> None:
            stream = AnswerStream(Upstream(["a"]).deltas())
            await collect(stream)
            await collect(stream)

        with pytest.raises(RuntimeError):
            asyncio.run(run())

    def test_on_complete_receives_final_text(self) -> None:
        finished: list[str] = []
        up = Upstream(["a", "b"])
        asyncio.run(collect(AnswerStream(up.deltas(), on_complete=finished.append)))
        assert finished == ["ab"]

    def test_failing_on_complete_does_not_fail_the_answer(self) -> None:
        def explode(text: str) -> None:
            raise RuntimeError("observer bug")

        events = asyncio.run(collect(AnswerStream(Upstream(["a"]).deltas(), on_complete=explode)))
        assert events[-1] == IncrementalEvent(text="a", done=True)

    def test_from_text_streams_a_fixed_answer(self) -> None:
        events = asyncio.run(collect(AnswerStream.from_text("No answer.")))
        assert events[-1] == IncrementalEvent(text="No answer.", done=True)
        assert sum(e.done for e in events) == 1


class FakeLLM:
    """Fake chat adapter recording what it was asked."""

    def __init__(self, pieces: Sequence[str] = ("ok",), error: Exception | None = None) -> None:
        self.pieces = pieces
        self.error = error
        self.calls: list[tuple[list[ChatMessage], CompletionParams]] = []

    async def open_stream(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> AsyncIterator[str]:
        self.calls.append((list(messages), params))
        if self.error is not None:
            raise self.error
        return Upstream(self.pieces).deltas()


class TestCompletionStreamer:
    def test_sends_system_message_then_history(self) -> None:
        llm = FakeLLM(pieces=["Hi"])
        params = CompletionParams(temperature=0.2, max_tokens=500)
        system = ChatMessage(role="system", content="rules")
        history = [
            ChatMessage(role="user", content="q1"),
            ChatMessage(role="assistant", content="a1"),
            ChatMessage(role="user", content="q2"),
        ]

        async def run() -> list[IncrementalEvent]:
            stream = await CompletionStreamer(llm, params).open(system, history)
            return await collect(stream)

        events = asyncio.run(run())
        messages, sent_params = llm.calls[0]
        assert messages == [system, *history]
        assert sent_params == params
        assert events[-1].text == "Hi" and events[-1].done

    def test_initiation_error_is_raised_before_any_event(self) -> None:
        llm = FakeLLM(error=CompletionError(message="bad request"))
        system = ChatMessage(role="system", content="rules")
        with pytest.raises(CompletionError, match="bad request"):
            asyncio.run(CompletionStreamer(llm).open(system, []))

    def test_default_params(self) -> None:
        streamer = CompletionStreamer(FakeLLM())
        assert streamer.params.temperature == 0.2
        assert streamer.params.max_tokens == 500
