"""Decoding of raw bus payloads into measurements."""

from __future__ import annotations

import re
import time
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from app.schemas import StructuredPayload
from datastore.device_registry import DeviceNotFoundError, DeviceRegistry
from models.records import Measurement

TEXT_FIELD_COUNT = 7

Clock = Callable[[], float]


class DecodeError(ValueError):
    """A payload could not be turned into a Measurement."""

    def __init__(self, reason: str, field: Optional[str] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.field = field


class UnknownDeviceError(DecodeError):
    """The payload names a device that is not in the registry."""

    def __init__(self, device_id: int) -> None:
        super().__init__(f"device {device_id} not found", field="device_id")
        self.device_id = device_id


class Decoder(Protocol):
    def decode(self, payload: bytes) -> Measurement:
        ...


# int() and float() alone would accept underscores and non-ASCII digits
_INT_TOKEN = re.compile(r"[+-]?[0-9]+", re.ASCII)
_FLOAT_TOKEN = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?", re.ASCII)


def _parse_int(token: str, field: str) -> int:
    if not _INT_TOKEN.fullmatch(token):
        raise DecodeError(f"invalid integer {token!r} for {field}", field=field)
    return int(token)


def _parse_float(token: str, field: str) -> float:
    if not _FLOAT_TOKEN.fullmatch(token):
        raise DecodeError(f"invalid number {token!r} for {field}", field=field)
    return float(token)


class TextDecoder:
    """Comma separated payloads keyed by a registered device ID.

    Layout: ``deviceId,reportedUnixTime,uptimeSeconds,pressure,humidity,temperatureKelvin,co2``.
    Tokens past the seventh are ignored.
    """

    identity_tag = "location"

    def __init__(self, registry: DeviceRegistry, clock: Clock = time.time) -> None:
        self.registry = registry
        self._clock = clock

    def decode(self, payload: bytes) -> Measurement:
        received_at = int(self._clock())
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("payload is not valid UTF-8") from exc

        tokens = text.rstrip("\r\n").split(",")
        if len(tokens) < TEXT_FIELD_COUNT:
            raise DecodeError(
                f"expected {TEXT_FIELD_COUNT} fields, got {len(tokens)}"
            )

        device_id = _parse_int(tokens[0], "device_id")
        try:
            location = self.registry.resolve(device_id)
        except DeviceNotFoundError as exc:
            raise UnknownDeviceError(device_id) from exc

        reported_at = _parse_int(tokens[1], "time")
        uptime = _parse_int(tokens[2], "uptime")
        pressure = _parse_float(tokens[3], "pressure")
        humidity = _parse_float(tokens[4], "humidity")
        temperature = _parse_float(tokens[5], "temperature")
        co2 = _parse_int(tokens[6], "co2")

        return Measurement(
            identity=location,
            identity_tag=self.identity_tag,
            reported_at=reported_at,
            pressure=pressure,
            humidity=humidity,
            temperature=temperature,
            co2=co2,
            uptime=uptime,
            clock_drift=received_at - reported_at,
            temperature_kelvin=True,
        )


class StructuredDecoder:
    """JSON payloads that carry the client identity themselves."""

    identity_tag = "client"

    def decode(self, payload: bytes) -> Measurement:
        try:
            message = StructuredPayload.model_validate_json(payload)
        except ValidationError as exc:
            fields = sorted(
                {str(error["loc"][0]) for error in exc.errors() if error.get("loc")}
            )
            raise DecodeError(
                f"invalid structured payload: {exc.error_count()} error(s)",
                field=",".join(fields) or None,
            ) from exc

        return Measurement(
            identity=message.client,
            identity_tag=self.identity_tag,
            reported_at=message.time,
            pressure=message.pressure,
            humidity=message.humidity,
            temperature=message.temperature,
            co2=message.co2,
        )


def build_decoder(
    wire_format: str,
    registry: DeviceRegistry,
    clock: Clock = time.time,
) -> Decoder:
    """Pick the decoder for the deployment's wire format."""
    if wire_format == "text":
        return TextDecoder(registry, clock=clock)
    if wire_format == "json":
        return StructuredDecoder()
    raise ValueError(f"Unsupported wire format {wire_format!r}.")
