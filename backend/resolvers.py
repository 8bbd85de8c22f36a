"""Clients for the three third-party APIs the weather service depends on.

Each resolver performs exactly one GET, inside its own span, carrying the
caller's trace context in the outbound headers. Transport failures surface as
``UpstreamUnavailable``; bodies that cannot be decoded as ``InternalError``.
The orchestrator decides how each of those maps to a status code.
"""
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from domain import Coordinates, CurrentTemperature, LocationResult
from errors import CoordinatesNotFound, InternalError, UpstreamUnavailable
from otel_setup import Telemetry


class _Resolver:
    span_name = "resolve"

    def __init__(self, client: httpx.AsyncClient, base_url: str, telemetry: Telemetry):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.telemetry = telemetry

    async def _get_json(self, url: str, params: Optional[dict] = None):
        headers = {}
        self.telemetry.inject(headers)
        try:
            response = await self.client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"{self.span_name}: {type(e).__name__}: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise InternalError(
                f"{self.span_name}: undecodable body (HTTP {response.status_code})"
            ) from e


class LocationResolver(_Resolver):
    """Postal code -> city/state through ViaCEP."""

    span_name = "resolve location"

    async def resolve(self, cep: str) -> LocationResult:
        with self.telemetry.span(self.span_name, cep=cep) as span:
            data = await self._get_json(f"{self.base_url}/ws/{cep}/json/")
            # ViaCEP answers unknown codes with 200 and {"erro": true}
            if not isinstance(data, dict):
                raise InternalError(f"{self.span_name}: unexpected payload")
            try:
                location = LocationResult.model_validate(data)
            except ValidationError as e:
                raise InternalError(f"{self.span_name}: {e}") from e
            span.set_attribute("city", location.city_name)
            span.set_attribute("state", location.state_code)
            return location


class CoordinateResolver(_Resolver):
    """City name -> first geocoding match through Open-Meteo."""

    span_name = "resolve coordinates"

    async def resolve(self, city: str) -> Coordinates:
        with self.telemetry.span(self.span_name, city=city) as span:
            url = (
                f"{self.base_url}/v1/search?name={quote(city, safe='')}"
                "&count=1&language=pt&format=json"
            )
            data = await self._get_json(url)
            results = data.get("results") if isinstance(data, dict) else None
            if not results:
                raise CoordinatesNotFound(city)
            if not isinstance(results, list):
                raise InternalError(f"{self.span_name}: unexpected results payload")
            try:
                coords = Coordinates.model_validate(results[0])
            except ValidationError as e:
                raise InternalError(f"{self.span_name}: {e}") from e
            span.set_attribute("latitude", coords.latitude)
            span.set_attribute("longitude", coords.longitude)
            return coords


class WeatherResolver(_Resolver):
    """Coordinates -> current temperature (Celsius) through Open-Meteo."""

    span_name = "resolve weather"

    async def resolve(self, coords: Coordinates) -> CurrentTemperature:
        with self.telemetry.span(
            self.span_name, latitude=coords.latitude, longitude=coords.longitude
        ) as span:
            params = {
                "latitude": f"{coords.latitude:.6f}",
                "longitude": f"{coords.longitude:.6f}",
                "current_weather": "true",
            }
            data = await self._get_json(f"{self.base_url}/v1/forecast", params=params)
            try:
                celsius = data["current_weather"]["temperature"]
                current = CurrentTemperature(celsius=celsius)
            except (KeyError, TypeError, ValidationError) as e:
                raise InternalError(f"{self.span_name}: no current temperature in payload") from e
            span.set_attribute("temperature.celsius", current.celsius)
            return current
