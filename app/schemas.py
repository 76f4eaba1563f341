"""Pydantic schemas for the config file and structured payloads."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MqttConfig(BaseModel):
    """Broker connection settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    server: str = Field(default="", description="Broker address as host:port.")
    ca_path: str = Field(default="", alias="caPath")
    user: str = ""
    passwd: str = ""


class InfluxConfig(BaseModel):
    """Time-series database connection settings."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    server: str = Field(default="", description="InfluxDB base URL.")
    token: str = ""
    org: str = ""


class DeviceDescriptor(BaseModel):
    """Metadata attached to every reading of a registered device."""

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    location: str


class BridgeConfig(BaseModel):
    """Top-level config file layout."""

    model_config = ConfigDict(frozen=True)

    mqtt: MqttConfig
    influx: InfluxConfig
    devices: Dict[int, DeviceDescriptor] = Field(default_factory=dict)

    @field_validator("devices", mode="before")
    @classmethod
    def _empty_devices(cls, value: object) -> object:
        # a bare "devices:" key decodes to None
        return {} if value is None else value


class StructuredPayload(BaseModel):
    """JSON sensor message with single-letter field tags."""

    # no string-to-number or bool coercion; an integer still fills a float field
    model_config = ConfigDict(strict=True)

    client: str = Field(..., alias="C")
    time: int = Field(..., alias="T")
    pressure: float = Field(..., alias="p")
    humidity: float = Field(..., alias="h")
    temperature: float = Field(..., alias="t")
    co2: int = Field(..., alias="c")
