# handbook_rag/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from typing import Literal

from .types import Score, Vector

Role = Literal["user", "assistant"]
ChatRole = Literal["system", "user", "assistant"]
RetrievalPath = Literal["vector", "fallback"]


@dataclass(frozen=True)
class PassageMetadata:
    """Position of a passage inside the page it was split from."""

    chunk_index: int
    total_chunks: int


@dataclass(frozen=True)
class Passage:
    """
    Immutable chunk of scraped source text, written once by the ingestion job.

    - id:        stable identifier assigned by the store
    - text:      the passage text handed to the model
    - vector:    embedding of the text (fixed dimension per collection)
    - url:       page the passage was scraped from (provenance for citations)
    - metadata:  chunk position inside that page
    """

    id: str
    text: str
    vector: Vector
    url: str
    metadata: PassageMetadata


@dataclass(frozen=True)
class ScoredPassage:
    """A passage with the relevance score assigned by the path that found it."""

    passage: Passage
    score: Score


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked passages for one request, all produced by a single retrieval path."""

    path: RetrievalPath
    entries: tuple[ScoredPassage, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ScoredPassage]:
        return iter(self.entries)

    @property
    def urls(self) -> list[str]:
        return [e.passage.url for e in self.entries]


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str


@dataclass(frozen=True)
class Message:
    """A conversation turn as exchanged with the client."""

    id: str
    role: Role
    content: str

    def to_chat(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


@dataclass
class Conversation:
    """Ordered messages; only the content of an existing message may be replaced."""

    messages: list[Message] = field(default_factory=list)

    def append(self, message: Message) -> None:
        if any(m.id == message.id for m in self.messages):
            raise ValueError(f"duplicate message id: {message.id}")
        self.messages.append(message)

    def replace_content(self, message_id: str, content: str) -> Message:
        for i, m in enumerate(self.messages):
            if m.id == message_id:
                updated = replace(m, content=content)
                self.messages[i] = updated
                return updated
        raise KeyError(message_id)

    def get(self, message_id: str) -> Message:
        for m in self.messages:
            if m.id == message_id:
                return m
        raise KeyError(message_id)

    def __len__(self) -> int:
        return len(self.messages)


@dataclass(frozen=True)
class IncrementalEvent:
    """Cumulative answer text so far; done marks the single terminal event."""

    text: str
    done: bool = False
