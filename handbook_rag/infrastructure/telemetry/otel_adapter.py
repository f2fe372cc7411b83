"""OpenTelemetry metrics for the answer pipeline.

Why: Retrieval path mix (vector vs keyword fallback), upstream error types and
     unapproved citations are the numbers that tell whether answers stay
     grounded in the handbook.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from handbook_rag.application.ports.telemetry_port import TelemetryPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OtelConfig:
    service_name: str = "handbook-rag"
    otlp_endpoint: str | None = None  # e.g. "http://localhost:4317"
    environment: str = "production"
    enable_console: bool = False


class OpenTelemetryAdapter(TelemetryPort):
    """Counters (incr) and histograms (observe), created lazily per metric name.

    Metric names used by the pipeline:
    - rag.retrieval.total / rag.retrieval.results   tagged by path
    - rag.answers.total                             tagged by grounding
    - rag.errors.total                              tagged by error_type
    - rag.citations.unapproved
    """

    def __init__(self, cfg: OtelConfig, provider: MeterProvider | None = None) -> None:
        self._cfg = cfg
        self._counters: dict[str, Any] = {}
        self._histograms: dict[str, Any] = {}
        self._provider = provider or self._build_provider()
        self._meter = self._provider.get_meter("handbook_rag")

    def _build_provider(self) -> MeterProvider:
        resource = Resource.create(
            {
                "service.name": self._cfg.service_name,
                "deployment.environment": self._cfg.environment,
            }
        )
        readers = []
        if self._cfg.otlp_endpoint:
            # exporter ships in the optional "otlp" extra
            try:
                otlp = import_module("opentelemetry.exporter.otlp.proto.grpc.metric_exporter")
            except ImportError:
                logger.warning(
                    "OTLP endpoint %s configured but opentelemetry-exporter-otlp is not installed",
                    self._cfg.otlp_endpoint,
                )
            else:
                exporter = otlp.OTLPMetricExporter(endpoint=self._cfg.otlp_endpoint)
                readers.append(PeriodicExportingMetricReader(exporter))
        if self._cfg.enable_console:
            readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))
        provider = MeterProvider(resource=resource, metric_readers=readers)
        metrics.set_meter_provider(provider)
        return provider

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        """Add 1 to counter name, e.g. incr("rag.errors.total", {"error_type": "rate_limited"})."""
        try:
            counter = self._counters.get(name)
            if counter is None:
                counter = self._counters[name] = self._meter.create_counter(
                    name=name, description=f"Counter for {name}"
                )
            counter.add(1, attributes=tags or {})
        except Exception as ex:  # noqa: BLE001
            # metrics never fail a request
            logger.debug("Metric %s not recorded: %s", name, ex)

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        try:
            hist = self._histograms.get(name)
            if hist is None:
                hist = self._histograms[name] = self._meter.create_histogram(
                    name=name, description=f"Histogram for {name}"
                )
            hist.record(value, attributes=tags or {})
        except Exception as ex:  # noqa: BLE001
            logger.debug("Metric %s not recorded: %s", name, ex)

    def shutdown(self) -> None:
        self._provider.shutdown()
