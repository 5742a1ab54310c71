from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from listings_client.core.config import Settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("listings_client")

_api_calls = HTTPXClientInstrumentor()


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None


class SpanContextFilter(logging.Filter):
    """Stamps trace and span ids onto records passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = trace.get_current_span().get_span_context()
        record.trace_id = format(context.trace_id, "032x") if context.is_valid else "-"
        record.span_id = format(context.span_id, "016x") if context.is_valid else "-"
        return True


def configure_client_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.addFilter(SpanContextFilter())
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s %(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.INFO)


@contextmanager
def mutation_span(kind: str, action: str, record_id: str | None = None) -> Iterator[trace.Span]:
    with tracer.start_as_current_span(f"listings.{action}") as span:
        span.set_attribute("listing.kind", kind)
        if record_id:
            span.set_attribute("listing.id", record_id)
        yield span


def setup_client_telemetry(settings: Settings) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None)

    provider = TracerProvider(
        resource=Resource.create(
            {SERVICE_NAME: settings.otel_service_name, DEPLOYMENT_ENVIRONMENT: settings.environment}
        ),
        sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio),
    )
    endpoint = settings.otel_exporter_otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        headers = dict(
            pair.split("=", 1)
            for pair in (settings.otel_exporter_otlp_headers or "").split(",")
            if "=" in pair
        )
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, headers=headers or None)))
    else:
        logger.info("client spans are not exported; set RS_CLIENT_OTEL_EXPORTER_OTLP_ENDPOINT to ship them")

    trace.set_tracer_provider(provider)
    _api_calls.instrument(tracer_provider=provider)
    return TelemetryRuntime(enabled=True, provider=provider)


def shutdown_client_telemetry(runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    _api_calls.uninstrument()
    if runtime.provider is not None:
        runtime.provider.force_flush()
        runtime.provider.shutdown()
