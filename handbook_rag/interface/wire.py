"""Server-sent event frames exchanged between the chat endpoint and its clients.

Frames (each terminated by a blank line):
    data: {"text": "<cumulative answer>", "done": false}
    event: error
    data: {"error": "<message>", "rate_limited": false}

rate_limited lets clients tell a mid-stream rate limit apart from other failures.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from handbook_rag.domain.errors import TransportError
from handbook_rag.domain.models import IncrementalEvent

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class EventFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    done: bool = False


class ErrorFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    error: str
    rate_limited: bool = False


Frame = EventFrame | ErrorFrame


def encode_event(event: IncrementalEvent) -> str:
    return f"data: {EventFrame(text=event.text, done=event.done).model_dump_json()}\n\n"


def encode_error(message: str, rate_limited: bool = False) -> str:
    frame = ErrorFrame(error=message, rate_limited=rate_limited)
    return f"event: error\ndata: {frame.model_dump_json()}\n\n"


class FrameDecoder:
    """Reassembles frames from arbitrarily split text chunks."""

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk; return the frames it completed (without the blank-line terminator)."""
        self._buffer += chunk.replace("\r\n", "\n")
        *complete, self._buffer = self._buffer.split("\n\n")
        return [f for f in complete if f.strip()]

    def flush(self) -> str | None:
        """Unterminated trailing text, if any (the stream ended mid-frame)."""
        rest, self._buffer = self._buffer, ""
        return rest if rest.strip() else None


def decode_frame(raw: str) -> Frame:
    """Parse one frame.

    Raises:
        TransportError: no data line, unparseable JSON or missing fields
    """
    event = "message"
    data: list[str] = []
    for line in raw.split("\n"):
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if not data:
        raise TransportError(message="frame has no data line", frame=raw)
    payload = "\n".join(data)
    model = ErrorFrame if event == "error" else EventFrame
    try:
        return model.model_validate_json(payload)
    except PydanticValidationError as ex:
        raise TransportError(
            message=f"malformed {event} frame: {ex.error_count()} validation error(s)",
            frame=raw,
        ) from ex
