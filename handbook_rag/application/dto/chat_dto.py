# handbook_rag/application/dto/chat_dto.py
from __future__ import annotations

from dataclasses import dataclass

from handbook_rag.domain.models import ChatMessage, Message


@dataclass(frozen=True)
class ChatRequest:
    """
    DTO for one conversation turn.

    - messages: the whole conversation so far; the last entry is the user's question
    """

    messages: tuple[Message, ...]

    @property
    def question(self) -> str:
        return self.messages[-1].content if self.messages else ""

    @property
    def history(self) -> list[ChatMessage]:
        """Prior turns passed to the model verbatim (ids dropped)."""
        return [m.to_chat() for m in self.messages]
