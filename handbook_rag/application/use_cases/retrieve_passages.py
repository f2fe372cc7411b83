# handbook_rag/application/use_cases/retrieve_passages.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from handbook_rag.application.ports.embedding_port import EmbeddingPort
from handbook_rag.application.ports.passage_store_port import PassageStorePort
from handbook_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from handbook_rag.domain.errors import ValidationError
from handbook_rag.domain.models import Passage, RetrievalResult, ScoredPassage
from handbook_rag.domain.services.keywords import KeywordPattern

logger = logging.getLogger(__name__)

# Fallback matches are unranked; they all carry this neutral score.
FALLBACK_SCORE = 0.0


@dataclass(frozen=True)
class RetrieverConfig:
    """
    - index:          name of the vector index to query
    - candidate_pool: ANN candidates considered before truncation
    - result_limit:   passages surfaced on the vector path
    - fallback_limit: passages surfaced on the textual fallback path
    - keywords:       domain keywords for the textual fallback
    """

    index: str = "vector_index"
    candidate_pool: int = 20
    result_limit: int = 10
    fallback_limit: int = 5
    keywords: KeywordPattern = field(
        default_factory=lambda: KeywordPattern(groups=(("elders", "quorum"),))
    )

    def __post_init__(self) -> None:
        if self.result_limit <= 0 or self.fallback_limit <= 0:
            raise ValidationError("result limits must be > 0")
        if self.candidate_pool < self.result_limit:
            raise ValidationError("candidate_pool must be >= result_limit")


def _is_complete(p: Passage) -> bool:
    return bool(p.text and p.url and p.vector)


class Retriever:
    """
    Embeds the query, runs the vector search and, only when that finds
    nothing, the keyword fallback. Read-only and uncached: every call
    re-embeds and re-searches.
    """

    def __init__(
        self,
        embedding: EmbeddingPort,
        store: PassageStorePort,
        config: RetrieverConfig | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.embedding = embedding
        self.store = store
        self.config = config or RetrieverConfig()
        self.telemetry = telemetry or NullTelemetry()

    async def retrieve(self, query: str) -> RetrievalResult | None:
        """Return passages for query, or None when neither path finds any.

        Raises:
            ValidationError: empty query
            EmbeddingError: embedding call failed (the store is not queried)
            PassageStoreError: a store query failed
        """
        if not query or not query.strip():
            raise ValidationError("query must not be empty")
        cfg = self.config

        # 1) Embed query
        vector = await self.embedding.embed_query(query)

        # 2) Vector path
        hits = await self.store.vector_search(
            cfg.index, vector, num_candidates=cfg.candidate_pool, limit=cfg.result_limit
        )
        if hits:
            complete = [h for h in hits if _is_complete(h.passage)]
            self._log_dropped("vector", len(hits), len(complete))
            entries = complete[: cfg.result_limit]
            if not entries:
                # the vector path answered, so the fallback stays off
                logger.warning("All %d vector results were incomplete; no grounding", len(hits))
                self._record("empty", 0)
                return None
            logger.info(
                "Vector search: %d results (top score %.4f, top url %s)",
                len(entries),
                entries[0].score,
                entries[0].passage.url,
            )
            self._record("vector", len(entries))
            return RetrievalResult(path="vector", entries=tuple(entries))

        # 3) Textual fallback, only because the vector path came back empty
        logger.warning("Vector search returned no results; trying keyword fallback")
        matches = await self.store.pattern_search(cfg.keywords, limit=cfg.fallback_limit)
        complete_matches = [p for p in matches if _is_complete(p)]
        self._log_dropped("fallback", len(matches), len(complete_matches))
        fallback = [
            ScoredPassage(passage=p, score=FALLBACK_SCORE) for p in complete_matches
        ][: cfg.fallback_limit]
        if fallback:
            logger.info("Using %d keyword fallback results", len(fallback))
            self._record("fallback", len(fallback))
            return RetrievalResult(path="fallback", entries=tuple(fallback))

        # 4) Empty
        logger.warning("No passages found by vector search or keyword fallback")
        self._record("empty", 0)
        return None

    def _log_dropped(self, path: str, found: int, kept: int) -> None:
        if found > kept:
            logger.warning("Dropped %d incomplete %s results", found - kept, path)

    def _record(self, path: str, n: int) -> None:
        self.telemetry.incr("rag.retrieval.total", {"path": path})
        self.telemetry.observe("rag.retrieval.results", n, {"path": path})
