from __future__ import annotations

from typing import Any, Optional

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from app.schemas import InfluxConfig
from models.records import DataPoint

DEFAULT_BUCKET = "sensors"


def to_influx_point(point: DataPoint) -> Point:
    record = Point(point.measurement)
    for key, value in point.tags.items():
        record = record.tag(key, value)
    for key, value in point.fields.items():
        record = record.field(key, value)
    return record.time(point.timestamp, WritePrecision.S)


class InfluxPointStore:
    """Synchronous single-point writer over an InfluxDB client."""

    def __init__(self, client: Any, bucket: str = DEFAULT_BUCKET, org: Optional[str] = None) -> None:
        self.client = client
        self.bucket = bucket
        self.org = org
        self._write_api = client.write_api(write_options=SYNCHRONOUS)

    def write(self, point: DataPoint) -> None:
        self._write_api.write(
            bucket=self.bucket,
            org=self.org,
            record=to_influx_point(point),
            write_precision=WritePrecision.S,
        )

    def close(self) -> None:
        self.client.close()


def build_point_store(config: InfluxConfig, bucket: str = DEFAULT_BUCKET) -> InfluxPointStore:
    org = config.org or None
    client = InfluxDBClient(url=config.server, token=config.token, org=org)
    return InfluxPointStore(client=client, bucket=bucket, org=org)
