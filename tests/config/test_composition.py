"""Composition helpers and the Container lifecycle."""

import asyncio
from dataclasses import replace

import pytest

from handbook_rag.application.ports.telemetry_port import NullTelemetry
from handbook_rag.config import composition
from handbook_rag.config.compose import Container
from handbook_rag.config.settings import AppSettings
from handbook_rag.domain.errors import ValidationError
from handbook_rag.infrastructure.embeddings.openai_embedding_adapter import OpenAIEmbeddingAdapter
from handbook_rag.infrastructure.llm.openai_chat_adapter import OpenAIChatAdapter
from handbook_rag.infrastructure.vectorstore.memory_passage_store import InMemoryPassageStore
from handbook_rag.infrastructure.vectorstore.qdrant_passage_store import QdrantPassageStore


@pytest.fixture
def settings(monkeypatch) -> AppSettings:
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("TELEMETRY_ENABLED", "false")
    return AppSettings()


def test_backend_switch(settings):
    assert isinstance(composition.build_passage_store(settings), QdrantPassageStore)
    memory = replace(settings, passage_backend="memory")
    assert isinstance(composition.build_passage_store(memory), InMemoryPassageStore)
    with pytest.raises(ValidationError):
        composition.build_passage_store(replace(settings, passage_backend="mongo"))


def test_model_adapters_share_endpoint_and_key(settings):
    embedding = composition.build_embedding(settings)
    llm = composition.build_llm(settings)
    assert isinstance(embedding, OpenAIEmbeddingAdapter)
    assert isinstance(llm, OpenAIChatAdapter)
    assert embedding.base_url == llm.base_url == settings.llm_base_url
    assert embedding.api_key == llm.api_key == "test-key"
    assert embedding.dim == 768


def test_telemetry_disabled_is_null(settings):
    assert isinstance(composition.build_telemetry(settings), NullTelemetry)


def test_retriever_config_from_settings(settings):
    cfg = composition.build_retriever_config(
        replace(settings, fallback_keywords="elders quorum, relief society", result_limit=3)
    )
    assert cfg.result_limit == 3
    assert cfg.keywords.phrases == ["elders quorum", "relief society"]


def test_completion_params_from_settings(settings):
    params = composition.build_completion_params(replace(settings, llm_presence_penalty=0.1))
    assert params.temperature == 0.2
    assert params.max_tokens == 500
    assert params.presence_penalty == 0.1


class ClosableStore(InMemoryPassageStore):
    def __init__(self) -> None:
        super().__init__()
        self.connected = 0
        self.closed = 0

    async def connect(self) -> None:
        self.connected += 1

    async def close(self) -> None:
        self.closed += 1


def test_container_lifecycle_uses_injected_store(settings):
    store = ClosableStore()
    container = Container(settings, store=store, telemetry=NullTelemetry())

    async def run() -> None:
        await container.start()
        await container.start()
        uc = container.get_answer_use_case()
        assert uc.retriever.store is store
        assert container.get_answer_use_case() is uc
        await container.close()

    asyncio.run(run())
    assert store.connected == 1
    assert store.closed == 1
