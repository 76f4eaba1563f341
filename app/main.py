from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Union

from app.config import ConfigError, load_config
from app.schemas import InfluxConfig
from datastore.device_registry import build_registry
from services.bus import BusAdapter, BusError
from services.decoder import build_decoder
from services.pipeline import MessagePipeline
from services.writer import MeasurementWriter
from settings import Settings, get_settings
from storage.influx import InfluxPointStore, build_point_store

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class BridgeSupervisor:
    """Wires config, database and bus together and blocks until shutdown."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store_factory: Callable[[InfluxConfig], InfluxPointStore] = build_point_store,
        bus_factory: Callable[..., BusAdapter] = BusAdapter,
    ) -> None:
        self.settings = settings or get_settings()
        self._store_factory = store_factory
        self._bus_factory = bus_factory
        self._shutdown = threading.Event()
        self._fatal: Optional[BaseException] = None

    def request_shutdown(self, signum: Optional[int] = None, _frame: Any = None) -> None:
        if signum is not None:
            logger.info("Received %s, shutting down", signal.Signals(signum).name)
        self._shutdown.set()

    def on_fatal(self, exc: BaseException) -> None:
        self._fatal = exc
        self._shutdown.set()

    def run(self, config_path: Union[str, Path]) -> int:
        previous = {signum: signal.signal(signum, self.request_shutdown) for signum in _SHUTDOWN_SIGNALS}
        try:
            return self._run(config_path)
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def _run(self, config_path: Union[str, Path]) -> int:
        try:
            config = load_config(config_path)
        except ConfigError as exc:
            logger.critical("Loading config failed: %s", exc, extra={"config_path": config_path})
            return EXIT_FAILURE

        try:
            store = self._store_factory(config.influx)
        except Exception as exc:  # noqa: BLE001 - startup stops here without a failure status
            logger.error("Error creating InfluxDB client: %s", exc)
            return EXIT_OK

        registry = build_registry(config)
        if self.settings.wire_format == "text" and len(registry) == 0:
            logger.warning("No devices configured; every text payload will be dropped")
        decoder = build_decoder(self.settings.wire_format, registry)
        pipeline = MessagePipeline(decoder, MeasurementWriter(store))

        bus = self._bus_factory(
            config.mqtt,
            pipeline.handle,
            self.on_fatal,
            tls_verify=self.settings.tls_verify,
            connect_timeout=self.settings.connect_timeout,
        )
        try:
            bus.connect()
        except BusError as exc:
            logger.critical("Creating MQTT client failed: %s", exc)
            return EXIT_FAILURE
        try:
            bus.subscribe()
        except BusError as exc:
            logger.critical("MQTT subscribe failed: %s", exc, extra={"topic": bus.topic})
            return EXIT_FAILURE

        logger.info("Bridge running", extra={"bucket": store.bucket, "topic": bus.topic})
        self._shutdown.wait()

        if self._fatal is not None:
            return EXIT_FAILURE
        self._teardown(bus, store)
        return EXIT_OK

    @staticmethod
    def _teardown(bus: BusAdapter, store: InfluxPointStore) -> None:
        try:
            bus.disconnect()
        except Exception as exc:  # noqa: BLE001 - teardown keeps going
            logger.warning("MQTT disconnect: %s", exc)
        try:
            store.close()
        except Exception as exc:  # noqa: BLE001 - teardown keeps going
            logger.warning("InfluxDB close: %s", exc)


def run_bridge(config_path: Union[str, Path], settings: Optional[Settings] = None) -> int:
    return BridgeSupervisor(settings=settings).run(config_path)
