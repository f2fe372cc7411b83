"""Domain errors (typed) for the answer pipeline.

Why: One error family for the application layer; adapters decide the variant
     (including rate limiting) where the upstream call is made.
"""

from dataclasses import dataclass


class DomainError(Exception):
    """Base class for domain-specific errors."""


class ValidationError(DomainError):
    """Invalid input/domain state."""


@dataclass(frozen=True)
class RateLimited:
    """Rate-limit tag attached to an upstream failure."""

    retry_after_s: float | None = None


@dataclass(frozen=True)
class UpstreamError(DomainError):
    """An upstream model call failed.

    rate_limit is set only when the provider answered with a rate-limit or
    quota-exceeded status.
    """

    message: str
    rate_limit: RateLimited | None = None

    def __str__(self) -> str:
        return self.message

    @property
    def is_rate_limited(self) -> bool:
        return self.rate_limit is not None


class EmbeddingError(UpstreamError):
    """Embedding backend failed or is misconfigured."""


class CompletionError(UpstreamError):
    """Streaming chat completion failed at initiation or mid-stream."""


class RetrievalEmpty(DomainError):
    """Neither the vector path nor the fallback path found a passage."""


class PassageStoreError(DomainError):
    """Passage store backend failed or is misconfigured."""


@dataclass(frozen=True)
class TransportError(DomainError):
    """A client-side frame could not be decoded, or the stream broke off."""

    message: str
    frame: str = ""

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class RateLimitExceeded(DomainError):
    """The conversation endpoint answered with HTTP 429."""

    message: str
    retry_after_s: float | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ChatRequestFailed(DomainError):
    """The chat request failed outright: a non-429 error status or no response.

    status is None when the connection itself failed.
    """

    message: str
    status: int | None = None

    def __str__(self) -> str:
        return self.message


class DeadlineExceeded(DomainError):
    """The request used up its wall-clock budget before streaming started."""
