from handbook_rag.application.ports.embedding_port import EmbeddingPort
from handbook_rag.application.ports.llm_port import CompletionParams, LLMPort
from handbook_rag.application.ports.passage_store_port import PassageStorePort
from handbook_rag.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from handbook_rag.application.use_cases.answer_question import AnswerQuestion
from handbook_rag.application.use_cases.retrieve_passages import Retriever, RetrieverConfig
from handbook_rag.application.use_cases.stream_answer import CompletionStreamer
from handbook_rag.config.settings import AppSettings
from handbook_rag.domain.errors import ValidationError
from handbook_rag.domain.services.keywords import parse_keyword_groups
from handbook_rag.infrastructure.embeddings.openai_embedding_adapter import OpenAIEmbeddingAdapter
from handbook_rag.infrastructure.llm.openai_chat_adapter import OpenAIChatAdapter
from handbook_rag.infrastructure.vectorstore.memory_passage_store import InMemoryPassageStore
from handbook_rag.infrastructure.vectorstore.qdrant_passage_store import (
    QdrantConfig,
    QdrantPassageStore,
)


def build_embedding(settings: AppSettings) -> EmbeddingPort:
    return OpenAIEmbeddingAdapter(
        base_url=settings.llm_base_url,
        api_key=settings.gemini_api_key,
        model=settings.embedding_model,
        dim=settings.embedding_dim,
    )


def build_passage_store(settings: AppSettings) -> PassageStorePort:
    backend = settings.passage_backend

    if backend == "memory":
        return InMemoryPassageStore(
            path=settings.passages_path,
            vector_index=settings.vector_index,
        )

    if backend == "qdrant":
        cfg = QdrantConfig(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key or None,
            timeout_s=settings.qdrant_timeout_s,
        )
        return QdrantPassageStore(
            cfg, collection=settings.collection, vector_index=settings.vector_index
        )

    raise ValidationError(f"Unknown PASSAGE_BACKEND '{backend}' (expected qdrant or memory)")


def build_llm(settings: AppSettings) -> LLMPort:
    return OpenAIChatAdapter(
        base_url=settings.llm_base_url,
        api_key=settings.gemini_api_key,
        model=settings.llm_model,
        timeout_s=settings.llm_timeout_s,
    )


def build_telemetry(settings: AppSettings) -> TelemetryPort:
    """Build telemetry adapter.

    Returns:
        OpenTelemetryAdapter when TELEMETRY_ENABLED=true, otherwise NullTelemetry.
    """
    if not settings.telemetry_enabled:
        return NullTelemetry()

    from handbook_rag.infrastructure.telemetry.otel_adapter import OpenTelemetryAdapter, OtelConfig

    cfg = OtelConfig(
        service_name="handbook-rag",
        otlp_endpoint=settings.otlp_endpoint or None,
        environment=settings.telemetry_environment,
    )
    return OpenTelemetryAdapter(cfg)


def build_retriever_config(settings: AppSettings) -> RetrieverConfig:
    return RetrieverConfig(
        index=settings.vector_index,
        candidate_pool=settings.candidate_pool,
        result_limit=settings.result_limit,
        fallback_limit=settings.fallback_limit,
        keywords=parse_keyword_groups(settings.fallback_keywords),
    )


def build_completion_params(settings: AppSettings) -> CompletionParams:
    return CompletionParams(
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        presence_penalty=settings.llm_presence_penalty,
        frequency_penalty=settings.llm_frequency_penalty,
    )


def build_answer_use_case(
    settings: AppSettings,
    embedding: EmbeddingPort,
    store: PassageStorePort,
    llm: LLMPort,
    telemetry: TelemetryPort | None = None,
) -> AnswerQuestion:
    """Wire retriever, streamer and pipeline from already-built adapters.

    Args:
        settings: Limits, prompt parameters and time budget
        embedding: Query embedding adapter
        store: Passage store (connected by the caller)
        llm: Chat completion adapter
        telemetry: Metrics sink (default: no-op)
    """
    telemetry = telemetry or NullTelemetry()
    retriever = Retriever(
        embedding=embedding,
        store=store,
        config=build_retriever_config(settings),
        telemetry=telemetry,
    )
    streamer = CompletionStreamer(
        llm=llm,
        params=build_completion_params(settings),
        channel_size=settings.stream_channel_size,
    )
    return AnswerQuestion(
        retriever=retriever,
        streamer=streamer,
        request_timeout_s=settings.request_timeout_s,
        telemetry=telemetry,
    )
