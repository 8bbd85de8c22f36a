from contextlib import contextmanager
from typing import Iterator, Mapping, MutableMapping, Optional

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.trace import SpanKind
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader
from opentelemetry.exporter.prometheus import PrometheusMetricReader

from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from log_setup import logger


class Telemetry:
    """Tracer/meter providers and the W3C propagator of one service.

    Built once at startup and handed to the app factory, the handlers and the
    resolvers. Nothing here is installed as the global provider, so several
    services can live in the same process (tests chain both hops in-process).
    """

    def __init__(
        self,
        tracer_provider: TracerProvider,
        meter_provider: Optional[MeterProvider] = None,
    ):
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider
        self.tracer = tracer_provider.get_tracer("cep_pipeline")
        self.propagator = CompositePropagator([
            TraceContextTextMapPropagator(),
            W3CBaggagePropagator(),
        ])

    def extract(self, carrier: Mapping[str, str]) -> otel_context.Context:
        return self.propagator.extract(carrier=carrier)

    def inject(self, carrier: MutableMapping[str, str], ctx: Optional[otel_context.Context] = None) -> None:
        self.propagator.inject(carrier, context=ctx)

    def request_context(self, headers: Mapping[str, str]) -> otel_context.Context:
        # The FastAPI instrumentation has already extracted the inbound headers
        # and opened a server span; only fall back to the raw headers without it.
        if trace.get_current_span().get_span_context().is_valid:
            return otel_context.get_current()
        return self.extract(headers)

    @contextmanager
    def span(
        self,
        name: str,
        ctx: Optional[otel_context.Context] = None,
        kind: SpanKind = SpanKind.INTERNAL,
        **attributes,
    ) -> Iterator[trace.Span]:
        with self.tracer.start_as_current_span(
            name, context=ctx, kind=kind, attributes=attributes or None
        ) as span:
            yield span

    def current_ids(self) -> tuple:
        ctx = trace.get_current_span().get_span_context()
        return format(ctx.trace_id, "032x"), format(ctx.span_id, "016x")

    def shutdown(self) -> None:
        self.tracer_provider.shutdown()
        if self.meter_provider is not None:
            self.meter_provider.shutdown()


def build_telemetry(
    settings,
    span_exporter: Optional[SpanExporter] = None,
    metric_reader: Optional[MetricReader] = None,
) -> Telemetry:
    resource = Resource.create({
        SERVICE_NAME: settings.SERVICE_NAME,
        SERVICE_VERSION: settings.SERVICE_VERSION,
    })

    # ===== TRACE =====
    tracer_provider = TracerProvider(resource=resource)

    if span_exporter is not None:
        tracer_provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    elif settings.otlp_traces_endpoint:
        # Batch export runs off the request path; export errors are only logged.
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_traces_endpoint))
        )
        logger.info(f"exporting spans to {settings.otlp_traces_endpoint}")

    # ===== METRICS (Prometheus) =====
    meter_provider = None
    if metric_reader is None and settings.METRICS_ENABLED:
        metric_reader = PrometheusMetricReader()
    if metric_reader is not None:
        meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])

    return Telemetry(tracer_provider, meter_provider)


def setup_otel(app, client, telemetry: Telemetry) -> None:
    # ===== Instrument =====
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=telemetry.tracer_provider,
        meter_provider=telemetry.meter_provider,
        excluded_urls="health,metrics",
    )
    HTTPXClientInstrumentor.instrument_client(client, tracer_provider=telemetry.tracer_provider)
