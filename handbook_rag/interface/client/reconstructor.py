"""Rebuilds the assistant message from cumulative event frames."""

from __future__ import annotations

import logging

from handbook_rag.domain.models import Conversation, Message
from handbook_rag.interface.wire import EventFrame

logger = logging.getLogger(__name__)


class MessageReconstructor:
    """Owns one in-flight assistant message inside a conversation.

    The message is appended empty on construction; each frame replaces its
    content with the frame's cumulative text, so the final content equals the
    text of the terminal frame. Frames after ``done`` are ignored.
    """

    def __init__(self, conversation: Conversation, message_id: str) -> None:
        self.conversation = conversation
        self.message_id = message_id
        self.done = False
        self.frames = 0
        conversation.append(Message(id=message_id, role="assistant", content=""))

    @property
    def message(self) -> Message:
        return self.conversation.get(self.message_id)

    def apply(self, frame: EventFrame) -> Message:
        if self.done:
            logger.debug("Ignoring frame after the terminal frame")
            return self.message
        self.frames += 1
        updated = self.conversation.replace_content(self.message_id, frame.text)
        if frame.done:
            self.done = True
        return updated
