from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingPort(Protocol):
    async def embed_query(self, text: str) -> list[float]:
        """Embed one query string.

        Raises:
            EmbeddingError: upstream failure, tagged RateLimited on 429/quota errors
        """
        ...
