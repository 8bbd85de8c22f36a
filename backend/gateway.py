from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError

from domain import PostalCodeRequest, validate_cep
from errors import BadRequest, UpstreamUnavailable, ValidationFailed, setup_exception_handlers
from log_setup import configure_logging, logger
from otel_setup import Telemetry, build_telemetry, setup_otel
from settings import Settings, gateway_settings


def create_app(
    settings: Optional[Settings] = None,
    telemetry: Optional[Telemetry] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the gateway: validates the CEP and relays the weather service's answer."""
    settings = settings or gateway_settings()
    configure_logging(settings.LOG_LEVEL)
    telemetry = telemetry or build_telemetry(settings)
    client = httpx.AsyncClient(transport=transport, timeout=settings.HTTP_TIMEOUT_SECONDS)
    orchestrator_url = settings.ORCHESTRATOR_URL.rstrip("/")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{settings.SERVICE_NAME} starting on port {settings.PORT}")
        logger.info(f"Orchestrator URL: {orchestrator_url}")
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

    @app.post("/cep")
    async def postal_lookup(request: Request):
        ctx = telemetry.request_context(request.headers)
        with telemetry.span("handle postal lookup", ctx=ctx):
            try:
                payload = PostalCodeRequest.model_validate_json(await request.body())
            except ValidationError as e:
                raise BadRequest() from e

            if not validate_cep(payload.cep):
                raise ValidationFailed()

            with telemetry.span("forward to orchestrator", cep=payload.cep) as span:
                headers = {}
                telemetry.inject(headers)
                try:
                    downstream = await client.get(
                        f"{orchestrator_url}/tempo",
                        params={"cep": payload.cep},
                        headers=headers,
                    )
                except httpx.HTTPError as e:
                    logger.error(f"failed to reach {orchestrator_url}: {type(e).__name__}: {e}")
                    raise UpstreamUnavailable("failed to reach weather service") from e
                span.set_attribute("http.response.status_code", downstream.status_code)

            return Response(
                content=downstream.content,
                status_code=downstream.status_code,
                media_type="application/json",
            )

    return app


def main() -> None:
    settings = gateway_settings()
    uvicorn.run(
        "gateway:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
