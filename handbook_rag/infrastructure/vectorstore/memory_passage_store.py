"""In-process passage store for local runs and tests.

Loads a JSONL passage export (one document per line, see payloads.py) and
answers both queries by brute force: cosine similarity for the vector path,
a regex scan for the keyword fallback.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from handbook_rag.application.ports.passage_store_port import PassageStorePort
from handbook_rag.domain.errors import PassageStoreError
from handbook_rag.domain.models import Passage, ScoredPassage
from handbook_rag.domain.services.keywords import KeywordPattern
from handbook_rag.domain.similarity import cosine

from .payloads import passage_from_record

logger = logging.getLogger(__name__)


def load_jsonl(path: str | Path) -> list[Passage]:
    """Read a JSONL passage export; blank lines are skipped.

    Raises:
        PassageStoreError: file missing or a line is not a JSON object
    """
    passages: list[Passage] = []
    try:
        with open(path, encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, 1):
                if not line.strip():
                    continue
                doc = json.loads(line)
                if not isinstance(doc, dict):
                    raise PassageStoreError(f"{path}:{lineno}: expected a JSON object")
                passages.append(passage_from_record(doc))
    except OSError as ex:
        raise PassageStoreError(f"Cannot read passages from {path}: {ex}") from ex
    except json.JSONDecodeError as ex:
        raise PassageStoreError(f"Invalid JSON in {path}: {ex}") from ex
    return passages


class InMemoryPassageStore(PassageStorePort):
    """Brute-force passage store.

    Only the configured vector_index is searchable; querying any other index
    name returns no hits, like a misconfigured index on a real backend.
    """

    def __init__(
        self,
        passages: Iterable[Passage] = (),
        path: str | Path | None = None,
        vector_index: str = "vector_index",
    ) -> None:
        self.path = path
        self.vector_index = vector_index
        self._passages: list[Passage] = list(passages)

    async def connect(self) -> None:
        if self.path is not None:
            self._passages = await asyncio.to_thread(load_jsonl, self.path)
            logger.info("Loaded %d passages from %s", len(self._passages), self.path)

    async def close(self) -> None:
        return None

    async def count(self) -> int:
        return len(self._passages)

    def add(self, passages: Iterable[Passage]) -> int:
        added = list(passages)
        self._passages.extend(added)
        return len(added)

    async def vector_search(
        self,
        index: str,
        vector: Sequence[float],
        num_candidates: int,
        limit: int,
    ) -> list[ScoredPassage]:
        if index != self.vector_index:
            logger.warning("Unknown vector index '%s' (have '%s')", index, self.vector_index)
            return []
        # a passage of another dimension is not a hit
        comparable = [p for p in self._passages if p.vector and len(p.vector) == len(vector)]
        skipped = sum(1 for p in self._passages if p.vector) - len(comparable)
        if skipped:
            logger.warning(
                "Skipped %d passages whose dimension is not %d", skipped, len(vector)
            )
        scored = [ScoredPassage(passage=p, score=cosine(vector, p.vector)) for p in comparable]
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:num_candidates][:limit]

    async def pattern_search(self, keywords: KeywordPattern, limit: int) -> list[Passage]:
        return [p for p in self._passages if keywords.matches(p.text)][:limit]
