"""End-to-end: one trace from the gateway through the weather service to the APIs."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

import gateway
import weather
from otel_setup import Telemetry
from settings import Settings

from .conftest import FakeApis

INBOUND_TRACE_ID = "0af7651916cd43dd8448eb211c80319c"


@pytest.fixture
def client(
    gateway_config: Settings,
    gateway_telemetry: Telemetry,
    weather_config: Settings,
    weather_telemetry: Telemetry,
    fake_apis: FakeApis,
):
    weather_app = weather.create_app(weather_config, weather_telemetry, transport=fake_apis.transport())
    gateway_app = gateway.create_app(
        gateway_config,
        gateway_telemetry,
        transport=httpx.ASGITransport(app=weather_app),
    )
    with TestClient(gateway_app) as c:
        yield c


def _hex(trace_id: int) -> str:
    return format(trace_id, "032x")


class TestTracePropagation:
    def test_full_chain(self, client: TestClient, fake_apis: FakeApis) -> None:
        response = client.post("/cep", json={"cep": "01310100"})

        assert response.status_code == 200
        assert response.json() == {"city": "São Paulo", "temp_C": 25.0, "temp_F": 77.0, "temp_K": 298.0}
        assert len(fake_apis.requests) == 3

    def test_single_trace_id_across_services(
        self,
        client: TestClient,
        span_exporter: InMemorySpanExporter,
        fake_apis: FakeApis,
    ) -> None:
        client.post(
            "/cep",
            json={"cep": "01310100"},
            headers={"traceparent": f"00-{INBOUND_TRACE_ID}-b7ad6b7169203331-01"},
        )

        spans = span_exporter.get_finished_spans()
        by_name = {s.name: s for s in spans}
        for name in (
            "handle postal lookup",
            "forward to orchestrator",
            "handle weather by postal code",
            "resolve location",
            "resolve coordinates",
            "resolve weather",
        ):
            assert _hex(by_name[name].context.trace_id) == INBOUND_TRACE_ID, name

        services = {s.resource.attributes["service.name"] for s in spans}
        assert services == {"cep-gateway", "cep-weather"}

        for request in fake_apis.requests:
            assert request.headers["traceparent"].split("-")[1] == INBOUND_TRACE_ID

    def test_new_trace_started_at_gateway(
        self,
        client: TestClient,
        span_exporter: InMemorySpanExporter,
    ) -> None:
        client.post("/cep", json={"cep": "01310100"})

        spans = span_exporter.get_finished_spans()
        assert len({s.context.trace_id for s in spans}) == 1
        handler = next(s for s in spans if s.name == "handle weather by postal code")
        forward = next(s for s in spans if s.name == "forward to orchestrator")
        assert handler.start_time >= forward.start_time
        assert handler.end_time <= forward.end_time

    def test_errors_relayed_through_both_hops(self, client: TestClient, fake_apis: FakeApis) -> None:
        fake_apis.location = {"erro": True}

        response = client.post("/cep", json={"cep": "00000000"})

        assert response.status_code == 404
        assert response.text == "can not find zipcode"
