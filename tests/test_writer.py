"""Unit tests for point building and writing."""

from __future__ import annotations

import logging

import pytest

from models.records import DataPoint, Measurement
from services.writer import MEASUREMENT_NAME, MeasurementWriter

NOW = 1_700_000_500


class RecordingStore:
    def __init__(self, error: Exception | None = None) -> None:
        self.points: list[DataPoint] = []
        self.error = error

    def write(self, point: DataPoint) -> None:
        if self.error is not None:
            raise self.error
        self.points.append(point)


def _text_measurement(**overrides) -> Measurement:
    values = dict(
        identity="office",
        identity_tag="location",
        reported_at=1_700_000_000,
        pressure=1013.0,
        humidity=40.0,
        temperature=300.0,
        co2=450,
        uptime=120,
        clock_drift=7,
        temperature_kelvin=True,
    )
    values.update(overrides)
    return Measurement(**values)


def _json_measurement(**overrides) -> Measurement:
    values = dict(
        identity="box-1",
        identity_tag="client",
        reported_at=1_700_000_490,
        pressure=1013.0,
        humidity=40.0,
        temperature=300.0,
        co2=450,
    )
    values.update(overrides)
    return Measurement(**values)


@pytest.fixture()
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture()
def writer(store: RecordingStore) -> MeasurementWriter:
    return MeasurementWriter(store, clock=lambda: NOW + 0.4)


def test_text_point_converts_kelvin(writer: MeasurementWriter) -> None:
    point = writer.build_point(_text_measurement())

    assert point.measurement == MEASUREMENT_NAME
    assert point.timestamp == NOW
    assert point.tags == {"location": "office"}
    assert point.fields["temperature"] == pytest.approx(26.85)
    assert point.fields == {
        "clockDrift": 7,
        "uptime": 120,
        "pressure": 1013.0,
        "humidity": 40.0,
        "temperature": pytest.approx(26.85),
        "co2": 450,
    }


def test_json_point_keeps_temperature_and_computes_drift(writer: MeasurementWriter) -> None:
    point = writer.build_point(_json_measurement())

    assert point.tags == {"client": "box-1"}
    assert point.fields["temperature"] == 300.0
    assert point.fields["clockDrift"] == NOW - 1_700_000_490
    assert "uptime" not in point.fields


def test_zero_fields_are_dropped(writer: MeasurementWriter) -> None:
    point = writer.build_point(
        _text_measurement(pressure=0.0, humidity=0.0, temperature=0.0, co2=0, uptime=0)
    )

    assert point.fields == {"clockDrift": 7}


def test_negative_values_are_dropped(writer: MeasurementWriter) -> None:
    point = writer.build_point(_json_measurement(humidity=-1.0, co2=-5))

    assert "humidity" not in point.fields
    assert "co2" not in point.fields
    assert point.fields["pressure"] == 1013.0


def test_zero_clock_drift_is_still_written(writer: MeasurementWriter) -> None:
    point = writer.build_point(_text_measurement(clock_drift=0))

    assert point.fields["clockDrift"] == 0


def test_write_sends_one_point(writer: MeasurementWriter, store: RecordingStore) -> None:
    assert writer.write(_text_measurement()) is True
    assert writer.write(_json_measurement()) is True

    assert len(store.points) == 2
    assert store.points[0].tags == {"location": "office"}
    assert store.points[1].tags == {"client": "box-1"}


def test_write_failure_is_logged_and_dropped(caplog) -> None:
    store = RecordingStore(error=ConnectionError("influx down"))
    writer = MeasurementWriter(store, clock=lambda: NOW)

    with caplog.at_level(logging.ERROR):
        assert writer.write(_text_measurement()) is False

    records = [record for record in caplog.records if record.name == "services.writer"]
    assert records
    assert "influx down" in records[0].getMessage()
    assert getattr(records[0], "location", None) == "office"
    assert store.points == []
