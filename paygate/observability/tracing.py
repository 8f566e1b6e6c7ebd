"""
OpenTelemetry tracing for the API and outgoing Square calls.

Tracing is off unless TRACING_ENABLED is set; with it off every span is a
no-op from the default tracer provider.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from paygate.config import Settings

TRACER_NAME = "paygate.square"


def _service_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
            "deployment.environment": settings.square_environment.lower(),
            "square.location_id": settings.square_location_id,
        }
    )


def setup_tracing(settings: Settings) -> TracerProvider | None:
    """
    Install a global TracerProvider exporting spans over OTLP/gRPC.

    Returns:
        The provider, so the caller can flush it on shutdown; None when
        tracing is disabled
    """
    if not settings.tracing_enabled:
        return None

    provider = TracerProvider(resource=_service_resource(settings))
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)
    return provider


def instrument_fastapi(app: Any, settings: Settings) -> None:
    """Add server spans for every request when tracing is enabled."""
    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")


def _set_attributes(span: Span, attributes: dict[str, Any]) -> None:
    """Copy attributes onto a span; None is skipped, non-primitives become strings."""
    for key, value in attributes.items():
        if value is None:
            continue
        if not isinstance(value, (str, int, float, bool)):
            value = str(value)
        span.set_attribute(key, value)


class trace_operation:
    """
    Context manager wrapping a Square call in its own span.

    Usage:
        with trace_operation("square.payments.create", amount_minor=2500) as span:
            response = await client.payments.create(...)
            span.set_attribute("payment_id", response.payment.id)

    An exception leaving the block marks the span as failed and is re-raised.
    """

    def __init__(self, operation_name: str, **attributes: Any) -> None:
        self.operation_name = operation_name
        self.attributes = attributes
        self._cm: Any = None

    def __enter__(self) -> Span:
        tracer = trace.get_tracer(TRACER_NAME)
        self._cm = tracer.start_as_current_span(
            self.operation_name,
            record_exception=False,
            set_status_on_exception=False,
        )
        span: Span = self._cm.__enter__()
        _set_attributes(span, self.attributes)
        return span

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_val is not None:
            span = trace.get_current_span()
            span.set_status(Status(StatusCode.ERROR, str(exc_val)))
            span.record_exception(exc_val)
        self._cm.__exit__(exc_type, exc_val, exc_tb)
