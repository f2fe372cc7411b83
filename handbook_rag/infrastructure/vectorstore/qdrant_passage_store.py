"""Qdrant-backed passage store.

Why: The handbook passages and their embeddings live in one Qdrant collection.
     The vector index is a named vector on each point; the keyword fallback
     uses a full-text payload index on "text" as a prefilter and the compiled
     keyword regex as the final check.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from qdrant_client import AsyncQdrantClient, models

from handbook_rag.application.ports.passage_store_port import PassageStorePort
from handbook_rag.domain.errors import DomainError, PassageStoreError
from handbook_rag.domain.models import Passage, ScoredPassage
from handbook_rag.domain.services.keywords import KeywordPattern
from handbook_rag.domain.types import Result

from .payloads import passage_from_payload, passage_to_payload, point_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QdrantConfig:
    url: str = "http://localhost:6333"
    api_key: str | None = None
    timeout_s: int = 30
    prefer_grpc: bool = False


def _named_vector(raw: Any, index: str) -> Sequence[float] | None:
    if isinstance(raw, Mapping):
        vec = raw.get(index)
        return vec if isinstance(vec, Sequence) else None
    if isinstance(raw, Sequence):
        return raw
    return None


class QdrantPassageStore(PassageStorePort):
    """Passage store on a Qdrant collection.

    The client is created in connect() unless one is injected (tests).
    Every backend failure is raised as PassageStoreError.
    """

    def __init__(
        self,
        cfg: QdrantConfig,
        collection: str = "handbook_passages",
        vector_index: str = "vector_index",
        client: Any | None = None,
        scan_page_size: int = 256,
        max_scan: int = 5000,
    ) -> None:
        self.cfg = cfg
        self.collection = collection
        self.vector_index = vector_index
        self.scan_page_size = scan_page_size
        self.max_scan = max_scan
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            raise PassageStoreError("Qdrant client not initialized; call connect() first")
        return self._client

    async def connect(self) -> None:
        if self._client is None:
            self._client = AsyncQdrantClient(
                url=self.cfg.url,
                api_key=self.cfg.api_key,
                timeout=self.cfg.timeout_s,
                prefer_grpc=self.cfg.prefer_grpc,
            )
        try:
            n = await self.count()
        except PassageStoreError as ex:
            # requests fail with PassageStoreError until the backend is reachable
            logger.warning("Passage store not ready at startup: %s", ex)
            return
        logger.info("Connected to Qdrant: collection '%s' holds %d passages", self.collection, n)

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.close()
        except Exception as ex:  # noqa: BLE001
            logger.warning("Closing Qdrant client failed: %s", ex)
        finally:
            self._client = None

    async def count(self) -> int:
        try:
            res = await self.client.count(collection_name=self.collection, exact=True)
        except PassageStoreError:
            raise
        except Exception as ex:  # noqa: BLE001
            raise PassageStoreError(f"Count failed: {ex}") from ex
        return int(res.count)

    async def vector_search(
        self,
        index: str,
        vector: Sequence[float],
        num_candidates: int,
        limit: int,
    ) -> list[ScoredPassage]:
        try:
            res = await self.client.query_points(
                collection_name=self.collection,
                query=list(vector),
                using=index,
                limit=limit,
                search_params=models.SearchParams(hnsw_ef=num_candidates),
                with_payload=True,
                with_vectors=[index],
            )
        except PassageStoreError:
            raise
        except Exception as ex:  # noqa: BLE001
            raise PassageStoreError(f"Vector search on index '{index}' failed: {ex}") from ex
        return [
            ScoredPassage(
                passage=passage_from_payload(
                    str(p.id), p.payload or {}, _named_vector(p.vector, index)
                ),
                score=float(p.score),
            )
            for p in res.points
        ]

    async def pattern_search(self, keywords: KeywordPattern, limit: int) -> list[Passage]:
        text_filter = models.Filter(
            should=[
                models.FieldCondition(key="text", match=models.MatchText(text=phrase))
                for phrase in keywords.phrases
            ]
        )
        found: list[Passage] = []
        offset: Any = None
        scanned = 0
        try:
            while len(found) < limit and scanned < self.max_scan:
                records, offset = await self.client.scroll(
                    collection_name=self.collection,
                    scroll_filter=text_filter,
                    limit=self.scan_page_size,
                    offset=offset,
                    with_payload=True,
                    with_vectors=[self.vector_index],
                )
                scanned += len(records)
                for rec in records:
                    payload = rec.payload or {}
                    if not keywords.matches(str(payload.get("text", ""))):
                        continue
                    found.append(
                        passage_from_payload(
                            str(rec.id), payload, _named_vector(rec.vector, self.vector_index)
                        )
                    )
                    if len(found) >= limit:
                        break
                if offset is None:
                    break
        except PassageStoreError:
            raise
        except Exception as ex:  # noqa: BLE001
            raise PassageStoreError(f"Keyword search failed: {ex}") from ex
        logger.debug("Keyword search scanned %d passages, matched %d", scanned, len(found))
        return found

    # Admin operations used by the ingestion CLI

    async def ensure_collection(self, dim: int) -> Result[None, DomainError]:
        """Create the collection (named cosine vector + text index) if it is missing."""
        try:
            if not await self.client.collection_exists(collection_name=self.collection):
                await self.client.create_collection(
                    collection_name=self.collection,
                    vectors_config={
                        self.vector_index: models.VectorParams(
                            size=dim, distance=models.Distance.COSINE
                        )
                    },
                )
                logger.info("Created collection '%s' (dim=%d)", self.collection, dim)
            await self.client.create_payload_index(
                collection_name=self.collection,
                field_name="text",
                field_schema=models.TextIndexParams(
                    type=models.TextIndexType.TEXT,
                    tokenizer=models.TokenizerType.WORD,
                    lowercase=True,
                ),
            )
        except PassageStoreError as ex:
            return Result.failure(ex)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(
                PassageStoreError(f"Failed to prepare collection '{self.collection}': {ex}")
            )
        return Result.success(None)

    async def upsert(
        self, passages: Iterable[Passage], batch_size: int = 128
    ) -> Result[int, DomainError]:
        """Write passages (id, named vector, payload); returns the number written."""
        written = 0
        batch: list[Any] = []
        try:
            for p in passages:
                batch.append(
                    models.PointStruct(
                        id=point_id(p),
                        vector={self.vector_index: list(p.vector)},
                        payload=passage_to_payload(p),
                    )
                )
                if len(batch) >= batch_size:
                    await self.client.upsert(collection_name=self.collection, points=batch)
                    written += len(batch)
                    batch = []
            if batch:
                await self.client.upsert(collection_name=self.collection, points=batch)
                written += len(batch)
        except PassageStoreError as ex:
            return Result.failure(ex)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(
                PassageStoreError(f"Upsert failed after {written} passages: {ex}")
            )
        logger.info("Upserted %d passages into '%s'", written, self.collection)
        return Result.success(written)
