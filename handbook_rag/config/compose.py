"""Dependency container with an explicit start/close lifecycle.

Why: The passage store connection and the HTTP clients are opened once per
     process and shared by all requests; the web app's lifespan calls
     start() and close().
"""

from __future__ import annotations

import logging
from typing import Any

from handbook_rag.application.ports import (
    EmbeddingPort,
    LLMPort,
    PassageStorePort,
    TelemetryPort,
)
from handbook_rag.application.use_cases.answer_question import AnswerQuestion
from handbook_rag.config import composition
from handbook_rag.config.settings import AppSettings

logger = logging.getLogger(__name__)


class Container:
    """Dependency injection container for application components.

    Adapters are built lazily from settings; any of them can be injected
    instead (tests pass fakes).
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        embedding: EmbeddingPort | None = None,
        store: PassageStorePort | None = None,
        llm: LLMPort | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self._embedding = embedding
        self._store = store
        self._llm = llm
        self._telemetry = telemetry
        self._answer: AnswerQuestion | None = None
        self._started = False

    # ===== Adapters =====

    def get_embedding(self) -> EmbeddingPort:
        if self._embedding is None:
            self._embedding = composition.build_embedding(self.settings)
        return self._embedding

    def get_passage_store(self) -> PassageStorePort:
        if self._store is None:
            self._store = composition.build_passage_store(self.settings)
        return self._store

    def get_llm(self) -> LLMPort:
        if self._llm is None:
            self._llm = composition.build_llm(self.settings)
        return self._llm

    def get_telemetry(self) -> TelemetryPort:
        if self._telemetry is None:
            self._telemetry = composition.build_telemetry(self.settings)
        return self._telemetry

    # ===== Use Cases =====

    def get_answer_use_case(self) -> AnswerQuestion:
        if self._answer is None:
            self._answer = composition.build_answer_use_case(
                self.settings,
                embedding=self.get_embedding(),
                store=self.get_passage_store(),
                llm=self.get_llm(),
                telemetry=self.get_telemetry(),
            )
        return self._answer

    # ===== Lifecycle =====

    async def start(self) -> None:
        if self._started:
            return
        if not self.settings.gemini_api_key and self._llm is None:
            logger.warning("GEMINI_API_KEY is not set; model calls will be rejected")
        await self.get_passage_store().connect()
        self._started = True
        logger.info(
            "Container started (backend=%s, model=%s)",
            self.settings.passage_backend,
            self.settings.llm_model,
        )

    async def close(self) -> None:
        for name, component in (
            ("passage store", self._store),
            ("embedding client", self._embedding),
            ("chat client", self._llm),
        ):
            closer: Any = getattr(component, "close", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception as ex:  # noqa: BLE001
                logger.warning("Closing %s failed: %s", name, ex)
        shutdown = getattr(self._telemetry, "shutdown", None)
        if shutdown is not None:
            shutdown()
        self._started = False


def build_container(settings: AppSettings | None = None) -> Container:
    return Container(settings)
