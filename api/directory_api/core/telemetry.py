"""Tracing and log correlation for the HTTP API.

Inbound requests are traced by the FastAPI instrumentation and outbound GitHub
calls by the httpx instrumentation, so a submission or refresh shows up as a
single trace. Every log line carries the ids of the span it was written in.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from directory_api.core.config import Settings

logger = logging.getLogger(__name__)

API_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"

# Comma separated, as FastAPIInstrumentor expects.
UNTRACED_PATHS = "healthz"


class TraceContextFilter(logging.Filter):
    """Stamps the active span's ``trace_id`` and ``span_id`` onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = trace.get_current_span().get_span_context()
        record.trace_id = f"{context.trace_id:032x}"
        record.span_id = f"{context.span_id:016x}"
        return True


def configure_api_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(API_LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(level)
    for handler in root.handlers:
        if not any(isinstance(existing, TraceContextFilter) for existing in handler.filters):
            handler.addFilter(TraceContextFilter())


@dataclass(frozen=True, slots=True)
class SpanExportTarget:
    endpoint: str
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> SpanExportTarget | None:
        endpoint = (
            settings.otel_exporter_otlp_endpoint
            or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
            or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        )
        if not endpoint:
            return None
        raw_headers = settings.otel_exporter_otlp_headers or os.getenv("OTEL_EXPORTER_OTLP_HEADERS") or ""
        headers = {
            key.strip(): value.strip()
            for key, separator, value in (item.partition("=") for item in raw_headers.split(","))
            if separator and key.strip()
        }
        return cls(endpoint=endpoint, headers=headers)

    def exporter(self) -> OTLPSpanExporter:
        return OTLPSpanExporter(endpoint=self.endpoint, headers=self.headers or None)


class ApiTelemetry:
    """Owns the tracer provider and the instrumentation installed on one app."""

    def __init__(self, app: FastAPI, provider: TracerProvider | None = None) -> None:
        self.app = app
        self.provider = provider
        self._httpx = HTTPXClientInstrumentor()

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def start(self) -> None:
        if self.provider is None:
            return
        trace.set_tracer_provider(self.provider)
        FastAPIInstrumentor.instrument_app(self.app, tracer_provider=self.provider, excluded_urls=UNTRACED_PATHS)
        self._httpx.instrument(tracer_provider=self.provider)

    def shutdown(self) -> None:
        if self.provider is None:
            return
        FastAPIInstrumentor.uninstrument_app(self.app)
        self._httpx.uninstrument()
        self.provider.force_flush()
        self.provider.shutdown()
        self.provider = None


def build_tracer_provider(settings: Settings) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: settings.otel_service_name, DEPLOYMENT_ENVIRONMENT: settings.environment}),
        sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio),
    )
    target = SpanExportTarget.from_settings(settings)
    if target is None:
        logger.info("no OTLP endpoint configured; API spans are not exported")
    else:
        provider.add_span_processor(BatchSpanProcessor(target.exporter()))
    return provider


def setup_api_telemetry(app: FastAPI, settings: Settings) -> ApiTelemetry:
    configure_api_logging()
    telemetry = ApiTelemetry(app, build_tracer_provider(settings) if settings.otel_enabled else None)
    telemetry.start()
    return telemetry
