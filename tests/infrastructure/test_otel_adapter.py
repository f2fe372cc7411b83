"""OpenTelemetry adapter with an in-memory metric reader."""

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from handbook_rag.infrastructure.telemetry.otel_adapter import OpenTelemetryAdapter, OtelConfig


def collected(reader: InMemoryMetricReader) -> dict[str, list]:
    out: dict[str, list] = {}
    data = reader.get_metrics_data()
    for rm in data.resource_metrics:
        for sm in rm.scope_metrics:
            for metric in sm.metrics:
                out[metric.name] = list(metric.data.data_points)
    return out


def test_counters_and_histograms_are_recorded_with_tags():
    reader = InMemoryMetricReader()
    adapter = OpenTelemetryAdapter(OtelConfig(), provider=MeterProvider(metric_readers=[reader]))

    adapter.incr("rag.retrieval.total", {"path": "fallback"})
    adapter.incr("rag.retrieval.total", {"path": "fallback"})
    adapter.observe("rag.retrieval.results", 5, {"path": "fallback"})

    metrics = collected(reader)
    (counter,) = metrics["rag.retrieval.total"]
    assert counter.value == 2
    assert dict(counter.attributes) == {"path": "fallback"}
    (hist,) = metrics["rag.retrieval.results"]
    assert hist.sum == 5
    adapter.shutdown()


def test_missing_tags_are_allowed():
    reader = InMemoryMetricReader()
    adapter = OpenTelemetryAdapter(OtelConfig(), provider=MeterProvider(metric_readers=[reader]))
    adapter.incr("rag.citations.unapproved")
    assert collected(reader)["rag.citations.unapproved"][0].value == 1
    adapter.shutdown()
