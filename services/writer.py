"""Turns measurements into data points and persists them."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Protocol, Union

from models.records import DataPoint, Measurement

logger = logging.getLogger(__name__)

MEASUREMENT_NAME = "measurements"
KELVIN_OFFSET = 273.15


class PointStore(Protocol):
    def write(self, point: DataPoint) -> None:
        ...


class MeasurementWriter:
    """Builds one data point per measurement and writes it straight away.

    Every field except ``clockDrift`` is only written when strictly positive, so
    a genuine zero reading is dropped along with missing ones.
    """

    def __init__(self, store: PointStore, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self._clock = clock

    def build_point(self, measurement: Measurement) -> DataPoint:
        now = int(self._clock())
        clock_drift = measurement.clock_drift
        if clock_drift is None:
            clock_drift = now - measurement.reported_at

        fields: Dict[str, Union[int, float]] = {"clockDrift": clock_drift}
        if measurement.uptime is not None and measurement.uptime > 0:
            fields["uptime"] = measurement.uptime
        if measurement.pressure > 0:
            fields["pressure"] = measurement.pressure
        if measurement.humidity > 0:
            fields["humidity"] = measurement.humidity
        if measurement.temperature > 0:
            temperature = measurement.temperature
            if measurement.temperature_kelvin:
                temperature -= KELVIN_OFFSET
            fields["temperature"] = temperature
        if measurement.co2 > 0:
            fields["co2"] = measurement.co2

        return DataPoint(
            measurement=MEASUREMENT_NAME,
            timestamp=now,
            tags={measurement.identity_tag: measurement.identity},
            fields=fields,
        )

    def write(self, measurement: Measurement) -> bool:
        """Write the measurement; failures are logged and reported as ``False``."""
        point = self.build_point(measurement)
        try:
            self.store.write(point)
        except Exception as exc:  # noqa: BLE001 - any client failure drops the point
            logger.error(
                "Write failed: %s",
                exc,
                extra={
                    measurement.identity_tag: measurement.identity,
                    "reason": exc.__class__.__name__,
                },
            )
            return False
        logger.debug(
            "Wrote point with %d field(s)",
            len(point.fields),
            extra={
                measurement.identity_tag: measurement.identity,
                "clock_drift": point.fields["clockDrift"],
            },
        )
        return True
