from __future__ import annotations

import os
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from salescrm.core.config import Settings


_provider: TracerProvider | None = None
_exporter_attached = False


def _provider_for(service_name: str) -> TracerProvider:
    global _provider

    if _provider is None:
        resource = Resource.create(
            {
                "service.name": service_name,
                "service.version": os.getenv("APP_VERSION", "0.1.0"),
            }
        )
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def _build_exporter(settings: Settings) -> SpanExporter | None:
    kind = settings.otel_exporter.lower()
    if kind == "console":
        return ConsoleSpanExporter()
    if kind == "otlp":
        if settings.otel_exporter_otlp_endpoint:
            return OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
        return OTLPSpanExporter()
    return None


def setup_otel(settings: Settings) -> TracerProvider | None:
    """Install the tracer provider once; no-op when tracing is disabled."""
    global _exporter_attached

    if not settings.otel_enabled:
        return None

    provider = _provider_for(settings.otel_service_name)
    if _exporter_attached:
        return provider

    exporter = _build_exporter(settings)
    if isinstance(exporter, ConsoleSpanExporter):
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    elif exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    _exporter_attached = True
    return provider


def setup_inmemory_otel(service_name: str = "salescrm-api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _provider_for(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def get_fastapi_server_request_hook():
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        headers = dict(scope.get("headers", []))
        for header, attribute in ((b"x-correlation-id", "correlation_id"), (b"x-tenant-id", "tenant_id")):
            raw = headers.get(header)
            if raw:
                span.set_attribute(attribute, raw.decode("utf-8", errors="replace"))

    return server_request_hook
