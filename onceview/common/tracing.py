"""OpenTelemetry wiring for the onceview API.

Request spans come from FastAPI auto-instrumentation; the redemption and
response paths open their own child spans through `tracer`. With
`OTEL_ENABLED=false` no provider is registered and `tracer` stays a no-op.
"""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from onceview.common.config import settings

# Probe and scrape endpoints would drown the token spans.
UNTRACED_URLS = "health,metrics"

tracer = trace.get_tracer("onceview")


def setup_tracing(service_name: str) -> None:
    if not settings.otel_enabled:
        return
    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.namespace": "onceview"})
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint))
    )
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    """Attach request spans to every route except probes."""

    if settings.otel_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)
