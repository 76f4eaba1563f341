import os
import signal
from pathlib import Path
from typing import Any, List

import pytest

from app.main import EXIT_FAILURE, EXIT_OK, BridgeSupervisor
from models.records import DataPoint
from services.bus import TOPIC, BusConnectError, BusSubscribeError
from settings import Settings

_CONFIG = """
mqtt:
  server: broker.local:8883
  caPath: ""
  user: bridge
  passwd: secret
influx:
  server: http://influx:8086
  token: tok
devices:
  1:
    location: lab
"""


class FakeStore:
    bucket = "sensors"

    def __init__(self, events: List[str], close_error: Exception | None = None) -> None:
        self.events = events
        self.points: List[DataPoint] = []
        self.close_error = close_error

    def write(self, point: DataPoint) -> None:
        self.points.append(point)

    def close(self) -> None:
        self.events.append("store.close")
        if self.close_error is not None:
            raise self.close_error


class FakeBus:
    topic = TOPIC

    def __init__(self, events: List[str], config, handler, on_fatal, **kwargs: Any) -> None:
        self.events = events
        self.config = config
        self.handler = handler
        self.on_fatal = on_fatal
        self.kwargs = kwargs
        self.connect_error: Exception | None = None
        self.subscribe_error: Exception | None = None
        self.disconnect_error: Exception | None = None
        self.after_subscribe = lambda bus: None

    def connect(self) -> None:
        self.events.append("bus.connect")
        if self.connect_error is not None:
            raise self.connect_error

    def subscribe(self) -> None:
        self.events.append("bus.subscribe")
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.after_subscribe(self)

    def disconnect(self) -> None:
        self.events.append("bus.disconnect")
        if self.disconnect_error is not None:
            raise self.disconnect_error


class Fixture:
    def __init__(self, tmp_path: Path, wire_format: str = "text") -> None:
        self.events: List[str] = []
        self.config_path = tmp_path / "config.yaml"
        self.config_path.write_text(_CONFIG)
        self.store = FakeStore(self.events)
        self.bus: FakeBus | None = None
        self.bus_setup = lambda bus: None
        self.store_error: Exception | None = None
        settings = Settings(log_level="INFO", wire_format=wire_format, tls_verify=False, connect_timeout=None)
        self.supervisor = BridgeSupervisor(
            settings=settings,
            store_factory=self._build_store,
            bus_factory=self._build_bus,
        )

    def _build_store(self, config) -> FakeStore:
        if self.store_error is not None:
            raise self.store_error
        self.events.append("store.create")
        return self.store

    def _build_bus(self, config, handler, on_fatal, **kwargs) -> FakeBus:
        self.bus = FakeBus(self.events, config, handler, on_fatal, **kwargs)
        self.bus_setup(self.bus)
        return self.bus


@pytest.fixture
def bridge(tmp_path) -> Fixture:
    return Fixture(tmp_path)


def test_signal_triggers_ordered_teardown(bridge: Fixture) -> None:
    def subscribed(bus: FakeBus) -> None:
        bus.after_subscribe = lambda _bus: os.kill(os.getpid(), signal.SIGTERM)

    bridge.bus_setup = subscribed

    status = bridge.supervisor.run(bridge.config_path)

    assert status == EXIT_OK
    assert bridge.events == [
        "store.create",
        "bus.connect",
        "bus.subscribe",
        "bus.disconnect",
        "store.close",
    ]
    assert bridge.bus is not None
    assert bridge.bus.config.user == "bridge"
    assert bridge.bus.kwargs == {"tls_verify": False, "connect_timeout": None}


def test_signal_handlers_are_restored(bridge: Fixture) -> None:
    before = signal.getsignal(signal.SIGTERM)
    bridge.bus_setup = lambda bus: setattr(bus, "after_subscribe", lambda _b: bridge.supervisor.request_shutdown())

    bridge.supervisor.run(bridge.config_path)

    assert signal.getsignal(signal.SIGTERM) is before


def test_handler_runs_messages_through_pipeline(bridge: Fixture) -> None:
    def deliver_then_stop(bus: FakeBus) -> None:
        bus.handler(TOPIC, b"1,1700000000,10,1000.0,50.0,300.0,400")
        bus.handler(TOPIC, b"99,1700000000,10,1000.0,50.0,300.0,400")
        bridge.supervisor.request_shutdown()

    bridge.bus_setup = lambda bus: setattr(bus, "after_subscribe", deliver_then_stop)

    assert bridge.supervisor.run(bridge.config_path) == EXIT_OK
    assert len(bridge.store.points) == 1
    assert bridge.store.points[0].tags == {"location": "lab"}


def test_unreadable_config_is_fatal(bridge: Fixture, tmp_path) -> None:
    status = bridge.supervisor.run(tmp_path / "missing.yaml")

    assert status == EXIT_FAILURE
    assert bridge.events == []


def test_database_client_failure_stops_startup_without_failure(bridge: Fixture) -> None:
    bridge.store_error = ValueError("bad url")

    status = bridge.supervisor.run(bridge.config_path)

    assert status == EXIT_OK
    assert bridge.bus is None


def test_bus_connect_failure_is_fatal(bridge: Fixture) -> None:
    bridge.bus_setup = lambda bus: setattr(bus, "connect_error", BusConnectError("unable to load CA"))

    status = bridge.supervisor.run(bridge.config_path)

    assert status == EXIT_FAILURE
    assert bridge.events == ["store.create", "bus.connect"]


def test_subscribe_failure_is_fatal(bridge: Fixture) -> None:
    bridge.bus_setup = lambda bus: setattr(bus, "subscribe_error", BusSubscribeError("rejected"))

    status = bridge.supervisor.run(bridge.config_path)

    assert status == EXIT_FAILURE
    assert "bus.disconnect" not in bridge.events


def test_fatal_reconnect_failure_exits_without_teardown(bridge: Fixture) -> None:
    bridge.bus_setup = lambda bus: setattr(
        bus, "after_subscribe", lambda b: b.on_fatal(BusConnectError("reconnect failed"))
    )

    status = bridge.supervisor.run(bridge.config_path)

    assert status == EXIT_FAILURE
    assert "bus.disconnect" not in bridge.events
    assert "store.close" not in bridge.events


def test_teardown_errors_are_logged_not_raised(bridge: Fixture, caplog) -> None:
    def setup(bus: FakeBus) -> None:
        bus.disconnect_error = RuntimeError("socket gone")
        bus.after_subscribe = lambda _b: bridge.supervisor.request_shutdown()

    bridge.bus_setup = setup
    bridge.store.close_error = RuntimeError("already closed")

    status = bridge.supervisor.run(bridge.config_path)

    assert status == EXIT_OK
    assert bridge.events[-2:] == ["bus.disconnect", "store.close"]
    messages = [record.getMessage() for record in caplog.records]
    assert any("socket gone" in message for message in messages)
    assert any("already closed" in message for message in messages)
