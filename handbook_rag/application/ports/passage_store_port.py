from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from handbook_rag.domain.models import Passage, ScoredPassage
from handbook_rag.domain.services.keywords import KeywordPattern

__all__ = ["PassageStorePort", "Passage", "ScoredPassage"]


@runtime_checkable
class PassageStorePort(Protocol):
    """Read side of the passage store, as used by the retriever.

    Both queries are read-only; the store is shared between concurrent
    requests without locking.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def count(self) -> int: ...

    async def vector_search(
        self,
        index: str,
        vector: Sequence[float],
        num_candidates: int,
        limit: int,
    ) -> list[ScoredPassage]:
        """Approximate nearest neighbours, best first, at most limit entries."""
        ...

    async def pattern_search(self, keywords: KeywordPattern, limit: int) -> list[Passage]:
        """Passages whose text matches the keyword pattern (unranked)."""
        ...
