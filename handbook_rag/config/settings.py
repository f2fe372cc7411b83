"""Application settings with environment-driven configuration.

Why: Single place that reads the environment; every other layer receives
     settings through composition.
"""

import os
from dataclasses import dataclass, field


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name, "")
    return float(raw) if raw.strip() else None


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    This is the ONLY place where environment variables are read.
    """

    # ===== Model provider (OpenAI-compatible Gemini endpoint) =====
    gemini_api_key: str = field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    llm_base_url: str = field(
        default_factory=lambda: os.getenv(
            "LLM_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/"
        )
    )
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gemini-1.5-flash"))
    llm_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("LLM_TIMEOUT_S", "120"))
    )
    embedding_model: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-004")
    )
    embedding_dim: int = field(default_factory=lambda: int(os.getenv("EMBEDDING_DIM", "768")))

    # Completion parameters
    llm_temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.2"))
    )
    llm_max_tokens: int = field(default_factory=lambda: int(os.getenv("LLM_MAX_TOKENS", "500")))
    llm_presence_penalty: float | None = field(
        default_factory=lambda: _optional_float("LLM_PRESENCE_PENALTY")
    )
    llm_frequency_penalty: float | None = field(
        default_factory=lambda: _optional_float("LLM_FREQUENCY_PENALTY")
    )

    # ===== Passage store =====
    passage_backend: str = field(
        default_factory=lambda: os.getenv("PASSAGE_BACKEND", "qdrant").lower()
    )
    # Supported: "qdrant" | "memory"

    qdrant_url: str = field(
        default_factory=lambda: os.getenv("QDRANT_URL", "http://localhost:6333")
    )
    qdrant_api_key: str = field(default_factory=lambda: os.getenv("QDRANT_API_KEY", ""))
    qdrant_timeout_s: int = field(default_factory=lambda: int(os.getenv("QDRANT_TIMEOUT_S", "30")))
    collection: str = field(
        default_factory=lambda: os.getenv("PASSAGE_COLLECTION", "handbook_passages")
    )
    vector_index: str = field(default_factory=lambda: os.getenv("VECTOR_INDEX", "vector_index"))
    passages_path: str = field(
        default_factory=lambda: os.getenv("PASSAGES_PATH", "var/passages.jsonl")
    )
    # JSONL export loaded by the "memory" backend

    # ===== Retrieval =====
    candidate_pool: int = field(
        default_factory=lambda: int(os.getenv("RETRIEVAL_CANDIDATE_POOL", "20"))
    )
    result_limit: int = field(
        default_factory=lambda: int(os.getenv("RETRIEVAL_RESULT_LIMIT", "10"))
    )
    fallback_limit: int = field(default_factory=lambda: int(os.getenv("FALLBACK_LIMIT", "5")))
    fallback_keywords: str = field(
        default_factory=lambda: os.getenv("FALLBACK_KEYWORDS", "elders quorum")
    )
    # Comma-separated groups, e.g. "elders quorum, relief society"

    # ===== Streaming =====
    stream_channel_size: int = field(
        default_factory=lambda: int(os.getenv("STREAM_CHANNEL_SIZE", "16"))
    )
    request_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT_S", "60"))
    )

    # ===== Telemetry Configuration =====
    telemetry_enabled: bool = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENABLED", "false").lower() == "true"
    )
    otlp_endpoint: str = field(default_factory=lambda: os.getenv("OTLP_ENDPOINT", ""))
    telemetry_environment: str = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENVIRONMENT", "production")
    )

    # ===== Logging =====
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
