"""Application ports package.

Re-exports the ports the use cases depend on.
"""

from handbook_rag.application.ports.embedding_port import EmbeddingPort
from handbook_rag.application.ports.llm_port import ChatMessage, CompletionParams, LLMPort
from handbook_rag.application.ports.passage_store_port import (
    Passage,
    PassageStorePort,
    ScoredPassage,
)
from handbook_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort

__all__ = [
    "ChatMessage",
    "CompletionParams",
    "EmbeddingPort",
    "LLMPort",
    "NullTelemetry",
    "Passage",
    "PassageStorePort",
    "ScoredPassage",
    "TelemetryPort",
]
