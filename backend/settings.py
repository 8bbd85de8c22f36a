import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from log_setup import logger


class Settings:
    """Service configuration, read from environment variables (and .env if present)."""

    def __init__(self, service_name: str = "cep-gateway", port: int = 8081, **overrides):
        if not load_dotenv(find_dotenv(usecwd=True)):
            logger.debug("no .env file found, using environment variables and defaults")

        self.SERVICE_NAME: str = os.getenv("SERVICE_NAME", service_name)
        self.SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "1.0.0")

        # Listener
        self.HOST: str = os.getenv("HOST", "0.0.0.0")
        self.PORT: int = int(os.getenv("PORT", str(port)))

        # Tracing / metrics
        self.OTEL_EXPORTER_OTLP_ENDPOINT: str = os.getenv(
            "OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318"
        )
        self.METRICS_ENABLED: bool = os.getenv("METRICS_ENABLED", "true").lower() == "true"
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Downstream service and third-party APIs
        self.ORCHESTRATOR_URL: str = os.getenv("ORCHESTRATOR_URL", "http://localhost:8080")
        self.VIACEP_URL: str = os.getenv("VIACEP_URL", "https://viacep.com.br")
        self.GEOCODING_URL: str = os.getenv(
            "GEOCODING_URL", "https://geocoding-api.open-meteo.com"
        )
        self.FORECAST_URL: str = os.getenv("FORECAST_URL", "https://api.open-meteo.com")
        self.HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"unknown setting: {key}")
            setattr(self, key, value)

        self._validate()

    def _validate(self) -> None:
        if self.HTTP_TIMEOUT_SECONDS <= 0:
            raise ValueError("HTTP_TIMEOUT_SECONDS must be positive")
        if not self.OTEL_EXPORTER_OTLP_ENDPOINT:
            logger.warning("OTEL_EXPORTER_OTLP_ENDPOINT is empty, spans will not be exported")

    @property
    def otlp_traces_endpoint(self) -> Optional[str]:
        if not self.OTEL_EXPORTER_OTLP_ENDPOINT:
            return None
        return self.OTEL_EXPORTER_OTLP_ENDPOINT.rstrip("/") + "/v1/traces"


def gateway_settings(**overrides) -> Settings:
    return Settings(service_name="cep-gateway", port=8081, **overrides)


def weather_settings(**overrides) -> Settings:
    return Settings(service_name="cep-weather", port=8080, **overrides)
