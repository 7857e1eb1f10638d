"""MQTT-fed sensor provider.

A wearable (or a phone bridge) publishes its step sensor readings as JSON on
a topic; this provider decodes them and hands them to the reconciler on a
single asyncio loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Iterable
from datetime import datetime
from typing import Any, cast

import paho.mqtt.client as mqtt

from pypedometer._constants import from_epoch
from pypedometer.config import PedometerConfig
from pypedometer.exceptions import PedometerConfigError, SensorPayloadError
from pypedometer.sensors import SensorCallback
from pypedometer.state.events import AccuracyChange, SensorEvent, SensorKind, SensorReading

_SENSOR_TYPES: dict[str, SensorKind] = {
    "step_counter": SensorKind.CUMULATIVE,
    "step_detector": SensorKind.PULSE,
}


def _parse_kind(value: Any) -> SensorKind:
    kind = _SENSOR_TYPES.get(str(value or "").strip().lower())
    if kind is None:
        raise SensorPayloadError(f"Unknown sensor type: {value!r}")
    return kind


def decode_sensor_payload(payload: bytes) -> SensorEvent:
    """Decode one MQTT message body into a sensor event.

    Accepted shapes::

        {"type": "step_counter", "value": 10234, "timestamp": 1767225600000}
        {"type": "step_detector", "value": 1.0}
        {"type": "accuracy", "sensor": "step_counter", "accuracy": 3}
    """
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SensorPayloadError(f"Payload is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise SensorPayloadError("Payload is not a JSON object")

    if parsed.get("type") == "accuracy":
        accuracy = parsed.get("accuracy")
        if not isinstance(accuracy, int) or isinstance(accuracy, bool):
            raise SensorPayloadError("Accuracy payload missing integer 'accuracy'")
        return AccuracyChange(kind=_parse_kind(parsed.get("sensor")), accuracy=accuracy)

    kind = _parse_kind(parsed.get("type"))
    value = parsed.get("value")
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise SensorPayloadError("Reading payload missing numeric 'value'")
    if not math.isfinite(value):
        raise SensorPayloadError(f"Reading value is not finite: {value!r}")

    observed_at: datetime | None = None
    timestamp = parsed.get("timestamp")
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool) and timestamp > 0:
        observed_at = from_epoch(timestamp)
    return SensorReading(kind=kind, value=float(value), observed_at=observed_at)


class MqttSensorProvider:
    """Threaded paho-mqtt subscriber that delivers events onto an asyncio loop.

    paho runs its network loop on a background thread; every decoded event
    is forwarded with ``call_soon_threadsafe`` so the reconciler only ever
    runs on *loop*.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        host: str,
        topic: str,
        capabilities: Iterable[SensorKind] = (SensorKind.CUMULATIVE,),
        port: int = 1883,
        keepalive: int = 60,
        tls: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._host = host
        self._port = port
        self._topic = topic
        self._capabilities = frozenset(capabilities)
        self._keepalive = keepalive
        self._tls = tls
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._kind: SensorKind | None = None
        self._callback: SensorCallback | None = None
        self._running = False

    @classmethod
    def from_config(
        cls,
        config: PedometerConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        capabilities: Iterable[SensorKind] = (SensorKind.CUMULATIVE,),
    ) -> MqttSensorProvider:
        if not config.mqtt_host:
            raise PedometerConfigError("mqtt_host is required for the MQTT sensor provider")
        return cls(
            loop=loop,
            host=config.mqtt_host,
            topic=config.mqtt_topic,
            capabilities=capabilities,
            port=config.mqtt_port,
            keepalive=config.mqtt_keepalive,
            tls=config.mqtt_tls,
        )

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is running."""
        return self._running

    def has_capability(self, kind: SensorKind) -> bool:
        return kind in self._capabilities

    def subscribe(self, kind: SensorKind, callback: SensorCallback) -> bool:
        """Connect to the broker and start forwarding *kind* events."""
        self.unsubscribe()
        if kind not in self._capabilities:
            return False
        self._logger.debug(
            "MQTT sensor subscribe requested host=%s port=%s topic=%s kind=%s",
            self._host,
            self._port,
            self._topic,
            kind,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if self._tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected, subscribing topic=%s", self._topic)
            c.subscribe(self._topic, qos=0)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._handle_message(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(self._host, self._port, keepalive=self._keepalive)
        except (OSError, ValueError) as exc:
            self._logger.warning("MQTT broker %s:%s unreachable: %s", self._host, self._port, exc)
            return False
        client.loop_start()

        self._client = client
        self._kind = kind
        self._callback = callback
        self._running = True
        self._logger.debug("MQTT network loop started")
        return True

    def unsubscribe(self) -> None:
        """Stop and disconnect the current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._kind = None
        self._callback = None

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def _handle_message(self, topic: str, payload: bytes) -> None:
        # Runs on the paho network thread.
        try:
            event = decode_sensor_payload(payload)
        except SensorPayloadError:
            self._logger.debug("MQTT sensor payload dropped topic=%s", topic, exc_info=True)
            return
        self._loop.call_soon_threadsafe(self._dispatch, event)

    def _dispatch(self, event: SensorEvent) -> None:
        callback = self._callback
        if callback is None or event.kind != self._kind:
            return
        callback(event)
