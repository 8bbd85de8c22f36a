from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from domain import convert_temperature, validate_cep
from errors import (
    InternalError,
    NotFound,
    UpstreamUnavailable,
    ValidationFailed,
    setup_exception_handlers,
)
from log_setup import configure_logging, logger
from otel_setup import Telemetry, build_telemetry, setup_otel
from resolvers import CoordinateResolver, LocationResolver, WeatherResolver
from settings import Settings, weather_settings


FETCH_TEMPERATURE_FAILED = "failed to fetch temperature"


def create_app(
    settings: Optional[Settings] = None,
    telemetry: Optional[Telemetry] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the weather service (CEP -> city -> coordinates -> temperature)."""
    settings = settings or weather_settings()
    configure_logging(settings.LOG_LEVEL)
    telemetry = telemetry or build_telemetry(settings)
    client = httpx.AsyncClient(transport=transport, timeout=settings.HTTP_TIMEOUT_SECONDS)

    locations = LocationResolver(client, settings.VIACEP_URL, telemetry)
    coordinates = CoordinateResolver(client, settings.GEOCODING_URL, telemetry)
    forecasts = WeatherResolver(client, settings.FORECAST_URL, telemetry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{settings.SERVICE_NAME} starting on port {settings.PORT}")
        yield
        await client.aclose()
        telemetry.shutdown()
        logger.info(f"{settings.SERVICE_NAME} shutting down")

    app = FastAPI(title=settings.SERVICE_NAME, version=settings.SERVICE_VERSION, lifespan=lifespan)
    setup_exception_handlers(app)
    setup_otel(app, client, telemetry)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": settings.SERVICE_NAME}

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/tempo")
    async def weather_by_postal_code(request: Request, cep: str = ""):
        ctx = telemetry.request_context(request.headers)
        with telemetry.span("handle weather by postal code", ctx=ctx, cep=cep) as span:
            trace_id, span_id = telemetry.current_ids()
            logger.info(f"TraceID: {trace_id}, SpanID: {span_id}")

            if not validate_cep(cep):
                raise ValidationFailed()

            try:
                location = await locations.resolve(cep)
            except (UpstreamUnavailable, InternalError) as e:
                logger.info(f"zipcode {cep} not found: {e}")
                raise NotFound() from e
            if not location.city_name:
                logger.info(f"zipcode {cep} not found: empty locality")
                raise NotFound()

            try:
                coords = await coordinates.resolve(location.city_name)
                current = await forecasts.resolve(coords)
            except (UpstreamUnavailable, InternalError) as e:
                logger.error(f"failed to fetch temperature for {location.city_name}: {e}")
                raise InternalError(FETCH_TEMPERATURE_FAILED) from e

            report = convert_temperature(current.celsius, location.city_name)
            span.set_attribute("city", report.city)
            return JSONResponse(report.model_dump(by_alias=True))

    return app


def main() -> None:
    settings = weather_settings()
    uvicorn.run(
        "weather:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
