"""Translate openai SDK exceptions into domain errors.

Why: Rate limiting is decided here, where the upstream call is made, and
     travels as a RateLimited tag instead of a status field inspected later.
"""

from __future__ import annotations

from typing import TypeVar

import openai

from handbook_rag.domain.errors import RateLimited, UpstreamError

E = TypeVar("E", bound=UpstreamError)


def _retry_after(ex: openai.APIStatusError) -> float | None:
    raw = ex.response.headers.get("retry-after") if ex.response is not None else None
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        # HTTP-date form is not worth parsing for a hint
        return None


def translate_openai_error(ex: Exception, error_cls: type[E], what: str) -> E:
    """Map an exception raised by the openai SDK to error_cls.

    Args:
        ex: The exception raised by the SDK (or anything else that escaped it)
        error_cls: EmbeddingError or CompletionError
        what: Short name of the operation for the message ("embedding", "completion")
    """
    if isinstance(ex, openai.RateLimitError) or (
        isinstance(ex, openai.APIStatusError) and "quota" in str(ex.message).lower()
    ):
        return error_cls(
            message=f"{what} rate limited: {ex.message}",
            rate_limit=RateLimited(retry_after_s=_retry_after(ex)),
        )
    if isinstance(ex, openai.APIStatusError):
        return error_cls(message=f"{what} failed with status {ex.status_code}: {ex.message}")
    if isinstance(ex, openai.APITimeoutError):
        return error_cls(message=f"{what} request timed out")
    if isinstance(ex, openai.APIConnectionError):
        return error_cls(message=f"could not connect to the {what} service")
    return error_cls(message=f"{what} failed: {ex}")
