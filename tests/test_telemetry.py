"""Tests for the explicit Telemetry object and its W3C propagation."""

from __future__ import annotations

from opentelemetry import baggage
from opentelemetry import context as otel_context
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otel_setup import Telemetry, build_telemetry
from settings import weather_settings


class TestTelemetry:
    def test_inject_writes_traceparent_and_baggage(self, weather_telemetry: Telemetry) -> None:
        ctx = baggage.set_baggage("tenant", "acme")
        token = otel_context.attach(ctx)
        try:
            with weather_telemetry.span("outbound") as span:
                headers: dict[str, str] = {}
                weather_telemetry.inject(headers)
                trace_id = format(span.get_span_context().trace_id, "032x")
        finally:
            otel_context.detach(token)

        assert headers["traceparent"].startswith(f"00-{trace_id}-")
        assert headers["baggage"] == "tenant=acme"

    def test_request_context_falls_back_to_headers(
        self,
        weather_telemetry: Telemetry,
        span_exporter: InMemorySpanExporter,
    ) -> None:
        trace_id = "4bf92f3577b34da6a3ce929d0e0e4736"
        ctx = weather_telemetry.request_context(
            {"traceparent": f"00-{trace_id}-00f067aa0ba902b7-01"}
        )

        with weather_telemetry.span("handler", ctx=ctx):
            pass

        (span,) = span_exporter.get_finished_spans()
        assert format(span.context.trace_id, "032x") == trace_id
        assert format(span.parent.span_id, "016x") == "00f067aa0ba902b7"

    def test_providers_are_not_global(self, weather_telemetry: Telemetry) -> None:
        from opentelemetry import trace

        assert trace.get_tracer_provider() is not weather_telemetry.tracer_provider

    def test_no_exporter_without_endpoint(self) -> None:
        settings = weather_settings(OTEL_EXPORTER_OTLP_ENDPOINT="", METRICS_ENABLED=False)

        telemetry = build_telemetry(settings)

        assert telemetry.meter_provider is None
        with telemetry.span("unexported"):
            pass
        telemetry.shutdown()
