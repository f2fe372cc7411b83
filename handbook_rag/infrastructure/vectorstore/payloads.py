"""Mapping between stored documents and the Passage model.

Stored shape (written by the ingestion job):
    {"text": str, "url": str, "metadata": {"chunkIndex": int, "totalChunks": int}}
plus the vector, kept as a named vector (Qdrant) or under "embedding" (JSONL export).
Missing fields map to empty values; the retriever drops incomplete passages.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from handbook_rag.domain.models import Passage, PassageMetadata


def _metadata(raw: Any) -> PassageMetadata:
    meta = raw if isinstance(raw, Mapping) else {}
    return PassageMetadata(
        chunk_index=int(meta.get("chunkIndex", 0) or 0),
        total_chunks=int(meta.get("totalChunks", 0) or 0),
    )


def passage_from_payload(
    point_id: str, payload: Mapping[str, Any], vector: Sequence[float] | None
) -> Passage:
    return Passage(
        id=point_id,
        text=str(payload.get("text", "") or ""),
        vector=tuple(float(x) for x in (vector or ())),
        url=str(payload.get("url", "") or ""),
        metadata=_metadata(payload.get("metadata")),
    )


def passage_to_payload(p: Passage) -> dict[str, Any]:
    return {
        "text": p.text,
        "url": p.url,
        "metadata": {
            "chunkIndex": p.metadata.chunk_index,
            "totalChunks": p.metadata.total_chunks,
        },
    }


def passage_from_record(doc: Mapping[str, Any]) -> Passage:
    """Parse one line of a JSONL passage export ("embedding" or "vector" holds the vector)."""
    vector = doc.get("embedding")
    if vector is None:
        vector = doc.get("vector")
    raw_id = doc.get("id") or doc.get("_id") or ""
    if isinstance(raw_id, Mapping):
        raw_id = raw_id.get("$oid", "")  # MongoDB extended JSON
    p = passage_from_payload(str(raw_id), doc, vector)
    if not p.id:
        p = Passage(
            id=stable_point_id(p),
            text=p.text,
            vector=p.vector,
            url=p.url,
            metadata=p.metadata,
        )
    return p


def stable_point_id(p: Passage) -> str:
    """Deterministic UUID for a passage without an id (same page+chunk → same id)."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{p.url}#{p.metadata.chunk_index}"))


def point_id(p: Passage) -> int | str:
    """Qdrant accepts unsigned ints or UUIDs; other ids (e.g. exported ObjectIds) are hashed."""
    if p.id.isdigit():
        return int(p.id)
    try:
        return str(uuid.UUID(p.id))
    except ValueError:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, p.id))
