"""Per-message decode and write orchestration."""

from __future__ import annotations

import logging

from services.decoder import Decoder, DecodeError, UnknownDeviceError
from services.writer import MeasurementWriter

logger = logging.getLogger(__name__)


class MessagePipeline:
    """Runs one inbound payload through the decoder and the writer.

    Decode failures drop the message and never propagate, so the bus
    subscription keeps going.
    """

    def __init__(self, decoder: Decoder, writer: MeasurementWriter) -> None:
        self.decoder = decoder
        self.writer = writer

    def handle(self, topic: str, payload: bytes) -> bool:
        logger.debug("MQTT message: %s", payload.decode("utf-8", errors="replace"), extra={"topic": topic})
        try:
            measurement = self.decoder.decode(payload)
        except UnknownDeviceError as exc:
            logger.warning(
                "Skipping message: %s",
                exc.reason,
                extra={"topic": topic, "device_id": exc.device_id, "reason": "device not found"},
            )
            return False
        except DecodeError as exc:
            logger.warning(
                "Skipping message: %s",
                exc.reason,
                extra={"topic": topic, "field": exc.field, "reason": "decode error"},
            )
            return False
        return self.writer.write(measurement)
