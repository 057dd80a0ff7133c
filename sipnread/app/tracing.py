"""Configuration du tracing OpenTelemetry pour l'observabilité.

Configure l'export OTLP quand un endpoint est défini et fournit `flow_span`, un span nommé
par opération d'interprétation. Sans provider configuré, les spans sont des no-op.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from sipnread.core.settings import Settings

_tracer = trace.get_tracer("sipnread.flows")


def setup_tracing(settings: Settings) -> bool:
    """Initialise le provider de tracing si `OTLP_ENDPOINT` est configuré."""
    if not settings.OTLP_ENDPOINT:
        return False

    provider = TracerProvider(resource=Resource.create({"service.name": settings.APP_NAME}))
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    return True


@contextmanager
def flow_span(flow: str, **attributes: str | int | bool) -> Iterator[Span]:
    """Ouvre un span `flow.<nom>`; une exception marque le span en erreur puis est propagée."""
    with _tracer.start_as_current_span(
        f"flow.{flow}", record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
            raise
