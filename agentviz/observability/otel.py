"""OpenTelemetry + Prometheus fallback wiring for agentviz."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from agentviz import config

logger = logging.getLogger("agentviz.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_refresh_counter: Any | None = None
_refresh_latency_hist: Any | None = None
_parser_failure_counter: Any | None = None
_source_failure_counter: Any | None = None
_tokens_counter: Any | None = None

_prom_enabled = False
_prom_refresh_counter: Any | None = None
_prom_refresh_latency_hist: Any | None = None
_prom_parser_failure_counter: Any | None = None
_prom_source_failure_counter: Any | None = None
_prom_tokens_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    endpoint = endpoint.rstrip("/")
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _label(value: str | None) -> str:
    return (value or "").strip() or "unknown"


def _start_prometheus() -> None:
    global _prom_enabled
    global _prom_refresh_counter, _prom_refresh_latency_hist
    global _prom_parser_failure_counter, _prom_source_failure_counter, _prom_tokens_counter

    try:
        from prometheus_client import Counter, Histogram, start_http_server
    except ImportError as exc:
        logger.warning("Prometheus fallback unavailable: %s", exc)
        return

    try:
        start_http_server(config.PROM_PORT)
    except OSError as exc:
        logger.warning("Prometheus fallback not started: %s", exc)
        return

    _prom_refresh_counter = Counter(
        "agentviz_refresh_total",
        "Count of board refresh cycles",
        ["result"],
    )
    _prom_refresh_latency_hist = Histogram(
        "agentviz_refresh_latency_ms",
        "Latency of board refresh cycles",
        ["result"],
    )
    _prom_parser_failure_counter = Counter(
        "agentviz_parser_failures_total",
        "Count of records dropped by parsers",
        ["parser"],
    )
    _prom_source_failure_counter = Counter(
        "agentviz_source_failures_total",
        "Count of failed session source fetches",
        ["source"],
    )
    _prom_tokens_counter = Counter(
        "agentviz_tokens_total",
        "Token totals by model observed in process logs",
        ["model", "direction"],
    )
    _prom_enabled = True
    logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _refresh_counter, _refresh_latency_hist, _parser_failure_counter
    global _source_failure_counter, _tokens_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (AGENTVIZ_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    service_name = config.OTEL_SERVICE_NAME or "agentviz"
    resource = Resource.create({"service.name": service_name, "service.namespace": "agentviz"})

    trace_provider = TracerProvider(resource=resource)
    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    metric_reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=metrics_endpoint or None))
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("agentviz")

    _refresh_counter = meter.create_counter(
        "agentviz_refresh_total",
        unit="1",
        description="Count of board refresh cycles",
    )
    _refresh_latency_hist = meter.create_histogram(
        "agentviz_refresh_latency_ms",
        unit="ms",
        description="Latency of board refresh cycles",
    )
    _parser_failure_counter = meter.create_counter(
        "agentviz_parser_failures_total",
        unit="1",
        description="Count of records dropped by parsers",
    )
    _source_failure_counter = meter.create_counter(
        "agentviz_source_failures_total",
        unit="1",
        description="Count of failed session source fetches",
    )
    _tokens_counter = meter.create_counter(
        "agentviz_tokens_total",
        unit="1",
        description="Token totals by model observed in process logs",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("agentviz")
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        _start_prometheus()

    logger.info("OpenTelemetry initialized (service=%s endpoint=%s)", service_name, config.OTEL_ENDPOINT)


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized or not _enabled:
        return
    if app and _fastapi_instrumentor:
        _fastapi_instrumentor.uninstrument_app(app)
    if _meter_provider is not None:
        _meter_provider.shutdown()
    if _trace_provider is not None:
        _trace_provider.shutdown()
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_refresh(result: str, duration_ms: float) -> None:
    labels = {"result": _label(result)}
    latency = max(0.0, float(duration_ms))
    if _enabled and _refresh_counter is not None:
        _refresh_counter.add(1, labels)
    if _enabled and _refresh_latency_hist is not None:
        _refresh_latency_hist.record(latency, labels)
    if _prom_enabled and _prom_refresh_counter is not None:
        _prom_refresh_counter.labels(**labels).inc()
    if _prom_enabled and _prom_refresh_latency_hist is not None:
        _prom_refresh_latency_hist.labels(**labels).observe(latency)


def record_parser_failure(parser: str) -> None:
    labels = {"parser": _label(parser)}
    if _enabled and _parser_failure_counter is not None:
        _parser_failure_counter.add(1, labels)
    if _prom_enabled and _prom_parser_failure_counter is not None:
        _prom_parser_failure_counter.labels(**labels).inc()


def record_source_failure(source: str) -> None:
    labels = {"source": _label(source)}
    if _enabled and _source_failure_counter is not None:
        _source_failure_counter.add(1, labels)
    if _prom_enabled and _prom_source_failure_counter is not None:
        _prom_source_failure_counter.labels(**labels).inc()


def record_token_usage(model: str, token_input: int, token_output: int) -> None:
    in_tokens = max(0, int(token_input))
    out_tokens = max(0, int(token_output))
    model_label = _label(model)
    for direction, amount in (("input", in_tokens), ("output", out_tokens)):
        if amount <= 0:
            continue
        labels = {"model": model_label, "direction": direction}
        if _enabled and _tokens_counter is not None:
            _tokens_counter.add(amount, labels)
        if _prom_enabled and _prom_tokens_counter is not None:
            _prom_tokens_counter.labels(**labels).inc(amount)
