"""MQTT connection that feeds inbound payloads to the pipeline."""

from __future__ import annotations

import logging
import ssl
import threading
import time
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from app.schemas import MqttConfig

logger = logging.getLogger(__name__)

TOPIC = "sensorbox/measurements"
KEEPALIVE_SECONDS = 60

_SUCCESS = mqtt.MQTTErrorCode.MQTT_ERR_SUCCESS
# the broker closed the stream or the socket is already gone
_END_OF_STREAM = frozenset(
    {mqtt.MQTTErrorCode.MQTT_ERR_CONN_LOST, mqtt.MQTTErrorCode.MQTT_ERR_NO_CONN}
)

MessageHandler = Callable[[str, bytes], Any]
FatalHandler = Callable[[BaseException], None]
ClientFactory = Callable[[str], Any]


class BusError(Exception):
    """Base class for message bus failures."""


class BusConnectError(BusError):
    """Connecting or reconnecting to the broker failed."""


class BusSubscribeError(BusError):
    """The broker rejected the topic subscription."""


def parse_host_port(server: str) -> tuple[str, int]:
    host, sep, port = server.strip().rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not sep or not host:
        raise ValueError(f"Broker address {server!r} must be host:port.")
    try:
        return host, int(port)
    except ValueError as exc:
        raise ValueError(f"Broker address {server!r} has an invalid port.") from exc


def build_tls_context(ca_path: str, verify: bool = False) -> ssl.SSLContext:
    try:
        context = ssl.create_default_context(cafile=ca_path or None)
    except (OSError, ssl.SSLError) as exc:
        raise BusConnectError(f"unable to load CA: {exc}") from exc
    if not verify:
        # FIXME: peer verification is off to match the deployed brokers
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        reconnect_on_failure=False,
    )


class BusAdapter:
    """Owns the broker connection and the single topic subscription.

    Messages are handed to ``handler`` one at a time on the network thread. When
    the stream ends the adapter reconnects once; if that fails ``on_fatal`` is
    called and the network thread stops.
    """

    def __init__(
        self,
        config: MqttConfig,
        handler: MessageHandler,
        on_fatal: FatalHandler,
        tls_verify: bool = False,
        connect_timeout: Optional[float] = None,
        client_factory: ClientFactory = _default_client_factory,
        loop_timeout: float = 1.0,
    ) -> None:
        self.config = config
        self.topic = TOPIC
        self.tls_verify = tls_verify
        self.connect_timeout = connect_timeout
        self.reconnect_attempts = 0
        self._handler = handler
        self._on_fatal = on_fatal
        self._loop_timeout = loop_timeout
        self._connack: Any = None
        self._subscribed = False
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._client = client_factory(config.user)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

    @property
    def client(self) -> Any:
        return self._client

    def connect(self) -> None:
        try:
            host, port = parse_host_port(self.config.server)
        except ValueError as exc:
            raise BusConnectError(f"MQTT connect: {exc}") from exc

        context = build_tls_context(self.config.ca_path, verify=self.tls_verify)
        self._client.tls_set_context(context)
        if not self.tls_verify:
            self._client.tls_insecure_set(True)
        self._client.username_pw_set(self.config.user, self.config.passwd)

        self._connack = None
        try:
            self._client.connect(host, port, keepalive=KEEPALIVE_SECONDS)
        except (OSError, ValueError) as exc:
            raise BusConnectError(f"MQTT connect: {exc}") from exc
        self._await_connack()
        logger.info("Connected to MQTT broker %s:%d", host, port)

        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="mqtt-network", daemon=True)
        self._thread.start()

    def subscribe(self) -> None:
        result, _mid = self._client.subscribe(self.topic, qos=0)
        if result != _SUCCESS:
            raise BusSubscribeError(f"MQTT subscribe: {mqtt.error_string(result)}")
        self._subscribed = True
        logger.info("Subscribed", extra={"topic": self.topic})

    def disconnect(self) -> None:
        """Stop the network thread and close the broker connection."""
        self._stopping.set()
        rc = self._client.disconnect()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None
        if rc not in (_SUCCESS, *_END_OF_STREAM):
            raise BusError(f"MQTT disconnect: {mqtt.error_string(rc)}")

    def handle_transport_error(self, rc: Any) -> None:
        logger.error("MQTT error: %s", mqtt.error_string(rc), extra={"rc": int(rc)})
        if rc not in _END_OF_STREAM:
            return

        logger.warning("Trying to reconnect...")
        self.reconnect_attempts += 1
        try:
            self._reconnect()
        except BusConnectError as exc:
            logger.critical("Reconnect failed: %s", exc)
            self._stopping.set()
            self._on_fatal(exc)

    def _reconnect(self) -> None:
        self._connack = None
        try:
            self._client.reconnect()
        except (OSError, ValueError) as exc:
            raise BusConnectError(f"MQTT reconnect: {exc}") from exc
        self._await_connack()
        logger.info("Reconnected to MQTT broker")

    def _await_connack(self) -> None:
        deadline = None
        if self.connect_timeout is not None:
            deadline = time.monotonic() + self.connect_timeout

        while self._connack is None:
            if deadline is not None and time.monotonic() > deadline:
                raise BusConnectError("MQTT connect: timed out waiting for CONNACK")
            rc = self._client.loop(timeout=self._loop_timeout)
            if rc != _SUCCESS and self._connack is None:
                raise BusConnectError(f"MQTT connect: {mqtt.error_string(rc)}")

        if self._connack.is_failure:
            raise BusConnectError(f"MQTT connect refused: {self._connack}")

    def _run(self) -> None:
        while not self._stopping.is_set():
            rc = self._client.loop(timeout=self._loop_timeout)
            if rc == _SUCCESS or self._stopping.is_set():
                continue
            self.handle_transport_error(rc)

    def _on_connect(self, client: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any = None) -> None:
        self._connack = reason_code
        if reason_code.is_failure:
            logger.error("Broker refused connection: %s", reason_code)
            return
        if self._subscribed:
            client.subscribe(self.topic, qos=0)

    def _on_disconnect(
        self,
        _client: Any,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any = None,
    ) -> None:
        if self._stopping.is_set():
            logger.info("Disconnected from MQTT broker")
        else:
            logger.warning("Unexpected MQTT disconnect: %s", reason_code)

    def _on_message(self, _client: Any, _userdata: Any, message: Any) -> None:
        try:
            self._handler(message.topic, message.payload)
        except Exception:  # noqa: BLE001 - keep the network thread alive
            logger.exception("Message handler failed", extra={"topic": message.topic})
