"""Tests for the ChatRequest DTO."""

from handbook_rag.application.dto.chat_dto import ChatRequest
from handbook_rag.domain.models import ChatMessage, Message


def test_question_is_last_message_content():
    req = ChatRequest(
        messages=(
            Message(id="1", role="user", content="first"),
            Message(id="2", role="assistant", content="reply"),
            Message(id="3", role="user", content="second"),
        )
    )
    assert req.question == "second"


def test_history_keeps_roles_and_order_without_ids():
    req = ChatRequest(
        messages=(
            Message(id="1", role="user", content="q"),
            Message(id="2", role="assistant", content="a"),
        )
    )
    assert req.history == [
        ChatMessage(role="user", content="q"),
        ChatMessage(role="assistant", content="a"),
    ]


def test_empty_request_has_empty_question():
    assert ChatRequest(messages=()).question == ""
