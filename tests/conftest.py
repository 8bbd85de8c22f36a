"""Pytest configuration and fixtures for the CEP weather pipeline tests."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otel_setup import Telemetry, build_telemetry
from settings import Settings, gateway_settings, weather_settings

VIACEP_HOST = "viacep.test"
GEOCODING_HOST = "geocoding.test"
FORECAST_HOST = "forecast.test"


def _test_overrides() -> dict[str, Any]:
    return {
        "METRICS_ENABLED": False,
        "OTEL_EXPORTER_OTLP_ENDPOINT": "",
        "VIACEP_URL": f"https://{VIACEP_HOST}",
        "GEOCODING_URL": f"https://{GEOCODING_HOST}",
        "FORECAST_URL": f"https://{FORECAST_HOST}",
        "ORCHESTRATOR_URL": "http://orchestrator.test",
    }


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def weather_config() -> Settings:
    return weather_settings(**_test_overrides())


@pytest.fixture
def gateway_config() -> Settings:
    return gateway_settings(**_test_overrides())


@pytest.fixture
def weather_telemetry(weather_config: Settings, span_exporter: InMemorySpanExporter) -> Telemetry:
    return build_telemetry(weather_config, span_exporter=span_exporter)


@pytest.fixture
def gateway_telemetry(gateway_config: Settings, span_exporter: InMemorySpanExporter) -> Telemetry:
    return build_telemetry(gateway_config, span_exporter=span_exporter)


class FakeApis:
    """Stand-in for ViaCEP and the two Open-Meteo endpoints.

    Each attribute holds either a JSON-able payload, an ``httpx.Response`` or an
    exception instance to raise. Every request seen is kept in ``requests``.
    """

    def __init__(self) -> None:
        self.location: Any = {"localidade": "São Paulo", "uf": "SP"}
        self.geocoding: Any = {"results": [{"latitude": -23.5475, "longitude": -46.63611}]}
        self.forecast: Any = {"current_weather": {"temperature": 25.0}}
        self.requests: list[httpx.Request] = []

    def _answer(self, request: httpx.Request, outcome: Any) -> httpx.Response:
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        return httpx.Response(200, json=outcome)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == VIACEP_HOST:
            return self._answer(request, self.location)
        if host == GEOCODING_HOST:
            return self._answer(request, self.geocoding)
        if host == FORECAST_HOST:
            return self._answer(request, self.forecast)
        return httpx.Response(404, text="unknown host")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]


@pytest.fixture
def fake_apis() -> FakeApis:
    return FakeApis()


def connect_error(message: str = "connection refused") -> httpx.ConnectError:
    return httpx.ConnectError(message)
