"""AppSettings reads every value from the environment at construction time."""

from handbook_rag.config.settings import AppSettings


def test_defaults(monkeypatch):
    for key in (
        "LLM_MODEL",
        "EMBEDDING_MODEL",
        "EMBEDDING_DIM",
        "LLM_TEMPERATURE",
        "LLM_MAX_TOKENS",
        "LLM_PRESENCE_PENALTY",
        "PASSAGE_BACKEND",
        "RETRIEVAL_CANDIDATE_POOL",
        "RETRIEVAL_RESULT_LIMIT",
        "FALLBACK_LIMIT",
        "FALLBACK_KEYWORDS",
        "VECTOR_INDEX",
    ):
        monkeypatch.delenv(key, raising=False)

    s = AppSettings()

    assert s.llm_model == "gemini-1.5-flash"
    assert s.embedding_model == "text-embedding-004"
    assert s.embedding_dim == 768
    assert s.llm_temperature == 0.2
    assert s.llm_max_tokens == 500
    assert s.llm_presence_penalty is None
    assert s.passage_backend == "qdrant"
    assert (s.candidate_pool, s.result_limit, s.fallback_limit) == (20, 10, 5)
    assert s.fallback_keywords == "elders quorum"
    assert s.vector_index == "vector_index"
    assert s.llm_base_url.startswith("https://generativelanguage.googleapis.com/")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PASSAGE_BACKEND", "MEMORY")
    monkeypatch.setenv("RETRIEVAL_RESULT_LIMIT", "4")
    monkeypatch.setenv("LLM_FREQUENCY_PENALTY", "0.3")
    monkeypatch.setenv("TELEMETRY_ENABLED", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    s = AppSettings()

    assert s.passage_backend == "memory"
    assert s.result_limit == 4
    assert s.llm_frequency_penalty == 0.3
    assert s.telemetry_enabled is True
    assert s.log_level == "DEBUG"
