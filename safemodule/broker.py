"""MQTT connection with topic routing and request/response over correlation data."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import paho.mqtt.client as mqtt
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties

DEFAULT_HOST = "192.168.0.6"
DEFAULT_PORT = 1883
CONTENT_TYPE = "application/json"

_console = logging.getLogger(__name__)


class BrokerError(Exception):
    """The broker could not be reached or refused a request."""


class ResponseTimeout(BrokerError):
    """No response arrived for a published request in time."""


@dataclass
class Message:
    """An MQTT message as seen by the service's handlers."""

    topic: str
    payload: bytes = b""
    qos: int = 0
    correlation_data: bytes | None = None
    response_topic: str = ""
    content_type: str = ""

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


Handler = Callable[[Message], Any]


def _new_client(client_id: str) -> Any:
    if hasattr(mqtt, "CallbackAPIVersion"):
        return mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
    return mqtt.Client(client_id=client_id, protocol=mqtt.MQTTv5)


class MqttBroker:
    """Routes incoming messages to handlers and pairs requests with responses."""

    def __init__(self, client: Any = None) -> None:
        self._client = client
        self._routes: dict[str, list[Handler]] = {}
        self._routes_lock = threading.Lock()
        self._waiters: dict[str, queue.Queue[Message]] = {}
        self._waiters_lock = threading.Lock()
        if client is not None:
            client.on_message = self._on_message

    def connect(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        client_id: str | None = None,
    ) -> None:
        """Connect to the broker and start the network loop."""
        if self._client is None:
            self._client = _new_client(client_id or f"safemodule-{time.time_ns()}")
        self._client.on_message = self._on_message
        try:
            self._client.connect(host, port)
        except (OSError, ValueError) as exc:
            raise BrokerError(f"failed to connect to broker: {exc}") from exc
        self._client.loop_start()

    def subscribe(self, topic: str, qos: int, handler: Handler) -> None:
        """Route messages on ``topic`` to ``handler`` and subscribe to it."""
        if self._client is None:
            raise BrokerError("router not initialized")
        with self._routes_lock:
            self._routes.setdefault(topic, []).append(handler)
        try:
            result = self._client.subscribe(topic, qos=qos)
        except (OSError, ValueError) as exc:
            raise BrokerError(f"failed to subscribe: {exc}") from exc
        rc = result[0]
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerError(f"failed to subscribe: {mqtt.error_string(rc)}")
        _console.info("Subscribed to topic: %s", topic)

    def dispatch(self, message: Message) -> int:
        """Call every handler whose topic filter matches; return how many ran."""
        with self._routes_lock:
            handlers = [
                handler
                for pattern, registered in self._routes.items()
                if mqtt.topic_matches_sub(pattern, message.topic)
                for handler in registered
            ]
        for handler in handlers:
            try:
                handler(message)
            except Exception:
                _console.exception("Handler failed for topic %s", message.topic)
        return len(handlers)

    def publish(
        self,
        topic: str,
        qos: int,
        payload: str | bytes,
        correlation_data: str | bytes = "",
        response_topic: str = "",
    ) -> None:
        """Publish a JSON payload with correlation data and a response topic."""
        if isinstance(payload, str):
            body = payload.encode("utf-8")
        elif isinstance(payload, (bytes, bytearray, memoryview)):
            body = bytes(payload)
        else:
            raise BrokerError("unsupported payload type")
        if self._client is None:
            raise BrokerError("client not connected")

        properties = Properties(PacketTypes.PUBLISH)
        correlation = (
            correlation_data.encode("utf-8")
            if isinstance(correlation_data, str)
            else bytes(correlation_data)
        )
        if correlation:
            properties.CorrelationData = correlation
        if response_topic:
            properties.ResponseTopic = response_topic
        properties.ContentType = CONTENT_TYPE

        try:
            info = self._client.publish(topic, body, qos=qos, properties=properties)
        except (OSError, ValueError) as exc:
            raise BrokerError(f"failed to publish: {exc}") from exc
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise BrokerError(f"failed to publish: {mqtt.error_string(info.rc)}")
        _console.info("Published to topic: %s", topic)

    def publish_and_wait(
        self,
        topic: str,
        qos: int,
        payload: str | bytes,
        correlation_id: str,
        response_topic: str,
        timeout: float,
    ) -> Message:
        """Publish a request and block until its response arrives or ``timeout`` passes."""
        waiter: queue.Queue[Message] = queue.Queue(maxsize=1)
        with self._waiters_lock:
            self._waiters[correlation_id] = waiter
        try:
            self.publish(topic, qos, payload, correlation_id, response_topic)
            try:
                return waiter.get(timeout=timeout)
            except queue.Empty:
                raise ResponseTimeout("timeout waiting for response") from None
        finally:
            with self._waiters_lock:
                self._waiters.pop(correlation_id, None)

    def deliver_response(self, message: Message) -> bool:
        """Hand a response to the request waiting on its correlation data."""
        _console.info("Response on %s: %s", message.topic, message.text)
        if message.correlation_data is None:
            return False
        key = message.correlation_data.decode("utf-8", errors="replace")
        with self._waiters_lock:
            waiter = self._waiters.get(key)
        if waiter is None:
            return False
        try:
            waiter.put_nowait(message)
        except queue.Full:
            return False
        return True

    def close(self) -> None:
        """Disconnect from the broker."""
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        properties = getattr(msg, "properties", None)
        correlation = getattr(properties, "CorrelationData", None) if properties else None
        self.dispatch(
            Message(
                topic=msg.topic,
                payload=bytes(msg.payload),
                qos=msg.qos,
                correlation_data=bytes(correlation) if correlation is not None else None,
                response_topic=getattr(properties, "ResponseTopic", "") if properties else "",
                content_type=getattr(properties, "ContentType", "") if properties else "",
            )
        )