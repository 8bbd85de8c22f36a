import re

from pydantic import BaseModel, ConfigDict, Field


CEP_PATTERN = re.compile(r"[0-9]{8}")

# Kelvin offset kept at 273 (not 273.15) for compatibility with existing clients.
KELVIN_OFFSET = 273


class PostalCodeRequest(BaseModel):
    model_config = ConfigDict(strict=True)

    cep: str = ""


class LocationResult(BaseModel):
    city_name: str = Field("", alias="localidade")
    state_code: str = Field("", alias="uf")


class Coordinates(BaseModel):
    model_config = ConfigDict(strict=True)

    latitude: float
    longitude: float


class CurrentTemperature(BaseModel):
    model_config = ConfigDict(strict=True)

    celsius: float


class TemperatureReport(BaseModel):
    """Final response body of the weather service."""

    model_config = ConfigDict(populate_by_name=True)

    city: str
    temp_c: float = Field(alias="temp_C")
    temp_f: float = Field(alias="temp_F")
    temp_k: float = Field(alias="temp_K")


def validate_cep(code: str) -> bool:
    """True when *code* is exactly eight ASCII digits."""
    return isinstance(code, str) and CEP_PATTERN.fullmatch(code) is not None


def convert_temperature(celsius: float, city: str) -> TemperatureReport:
    return TemperatureReport(
        city=city,
        temp_c=celsius,
        temp_f=celsius * 1.8 + 32,
        temp_k=celsius + KELVIN_OFFSET,
    )
