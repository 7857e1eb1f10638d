from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest
from pydantic import ValidationError

from pypedometer import _mqtt
from pypedometer._mqtt import MqttSensorProvider, decode_sensor_payload
from pypedometer.clock import FixedClock
from pypedometer.config import PedometerConfig
from pypedometer.exceptions import PedometerConfigError, SensorPayloadError
from pypedometer.observer import RecordingObserver
from pypedometer.reconciler import StepReconciler
from pypedometer.state.events import AccuracyChange, SensorEvent, SensorKind, SensorMode, SensorReading
from pypedometer.state.store import MemoryStore


class _FakeClient:
    """Stands in for paho's client; never touches the network."""

    refuse_connect = False
    instances: list[_FakeClient] = []

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.connected_to: tuple[str, int] | None = None
        self.loop_running = False
        self.disconnected = False
        _FakeClient.instances.append(self)

    def enable_logger(self, _logger: Any) -> None:
        return None

    def tls_set(self) -> None:
        return None

    def connect(self, host: str, port: int, keepalive: int = 60) -> None:
        if self.refuse_connect:
            raise ConnectionRefusedError("connection refused")
        self.connected_to = (host, port)

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.disconnected = True


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> type[_FakeClient]:
    _FakeClient.instances = []
    _FakeClient.refuse_connect = False
    monkeypatch.setattr(_mqtt.mqtt, "Client", _FakeClient)
    return _FakeClient


# ------------------------------------------------------------------
# Payload decoding
# ------------------------------------------------------------------


def test_decode_step_counter_with_millisecond_timestamp() -> None:
    event = decode_sensor_payload(b'{"type": "step_counter", "value": 10234, "timestamp": 1767268800000}')

    assert isinstance(event, SensorReading)
    assert event.kind is SensorKind.CUMULATIVE
    assert event.value == 10234.0
    assert event.observed_at == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_decode_step_detector_without_timestamp() -> None:
    event = decode_sensor_payload(b'{"type": "step_detector", "value": 1.0}')

    assert isinstance(event, SensorReading)
    assert event.kind is SensorKind.PULSE
    assert event.observed_at is None


def test_decode_accuracy() -> None:
    event = decode_sensor_payload(b'{"type": "accuracy", "sensor": "step_counter", "accuracy": 3}')

    assert event == AccuracyChange(kind=SensorKind.CUMULATIVE, accuracy=3)


@pytest.mark.parametrize(
    "payload",
    [
        b"\xff\xfe",
        b"not json",
        b"[1, 2]",
        b'{"type": "heart_rate", "value": 70}',
        b'{"type": "step_counter"}',
        b'{"type": "step_counter", "value": true}',
        b'{"type": "step_counter", "value": NaN}',
        b'{"type": "step_counter", "value": Infinity}',
        b'{"type": "step_detector", "value": -Infinity}',
        b'{"type": "accuracy", "sensor": "step_counter"}',
    ],
)
def test_decode_rejects_malformed_payloads(payload: bytes) -> None:
    with pytest.raises(SensorPayloadError):
        decode_sensor_payload(payload)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_sensor_reading_rejects_non_finite_values(value: float) -> None:
    with pytest.raises(ValidationError):
        SensorReading(kind=SensorKind.CUMULATIVE, value=value)


# ------------------------------------------------------------------
# Provider
# ------------------------------------------------------------------


def test_from_config_requires_host() -> None:
    loop = asyncio.new_event_loop()
    try:
        with pytest.raises(PedometerConfigError):
            MqttSensorProvider.from_config(PedometerConfig(), loop=loop)
    finally:
        loop.close()


@pytest.mark.asyncio
async def test_subscribe_refuses_kind_without_capability(fake_client: type[_FakeClient]) -> None:
    provider = MqttSensorProvider(loop=asyncio.get_running_loop(), host="broker.local", topic="steps")

    assert provider.subscribe(SensorKind.PULSE, lambda _event: None) is False
    assert fake_client.instances == []


@pytest.mark.asyncio
async def test_messages_are_delivered_on_the_loop(fake_client: type[_FakeClient]) -> None:
    provider = MqttSensorProvider(loop=asyncio.get_running_loop(), host="broker.local", topic="steps")
    received: list[SensorEvent] = []

    assert provider.subscribe(SensorKind.CUMULATIVE, received.append) is True
    assert fake_client.instances[0].connected_to == ("broker.local", 1883)
    assert provider.is_running

    provider._handle_message("steps", b'{"type": "step_counter", "value": 12}')  # noqa: SLF001
    provider._handle_message("steps", b'{"type": "step_detector", "value": 1}')  # noqa: SLF001
    provider._handle_message("steps", b"garbage")  # noqa: SLF001
    provider._handle_message("steps", b'{"type": "step_counter", "value": NaN}')  # noqa: SLF001
    assert received == []

    await asyncio.sleep(0)

    assert len(received) == 1
    assert isinstance(received[0], SensorReading)
    assert received[0].value == 12.0


@pytest.mark.asyncio
async def test_unsubscribe_stops_client_and_delivery(fake_client: type[_FakeClient]) -> None:
    provider = MqttSensorProvider(loop=asyncio.get_running_loop(), host="broker.local", topic="steps")
    received: list[SensorEvent] = []
    provider.subscribe(SensorKind.CUMULATIVE, received.append)
    provider._handle_message("steps", b'{"type": "step_counter", "value": 12}')  # noqa: SLF001

    provider.unsubscribe()
    await asyncio.sleep(0)

    client = fake_client.instances[0]
    assert client.disconnected is True
    assert client.loop_running is False
    assert provider.is_running is False
    assert received == []


@pytest.mark.asyncio
async def test_reconciler_over_mqtt(fake_client: type[_FakeClient]) -> None:
    clock = FixedClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC))
    observer = RecordingObserver()
    reconciler = StepReconciler(
        MemoryStore(),
        clock=clock,
        observer=observer,
        config=PedometerConfig(time_zone="UTC"),
    )
    provider = MqttSensorProvider.from_config(
        PedometerConfig(mqtt_host="broker.local", mqtt_topic="wearable/steps"),
        loop=asyncio.get_running_loop(),
    )

    assert reconciler.start(provider) is SensorMode.CUMULATIVE
    provider._handle_message("wearable/steps", b'{"type": "step_counter", "value": 300}')  # noqa: SLF001
    provider._handle_message("wearable/steps", b'{"type": "step_counter", "value": 320}')  # noqa: SLF001
    await asyncio.sleep(0)

    assert observer.steps == [300, 320]
    reconciler.stop()
    assert provider.is_running is False


@pytest.mark.asyncio
async def test_unreachable_broker_reports_unsupported(fake_client: type[_FakeClient]) -> None:
    fake_client.refuse_connect = True
    observer = RecordingObserver()
    reconciler = StepReconciler(
        MemoryStore(),
        clock=FixedClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC)),
        observer=observer,
        config=PedometerConfig(time_zone="UTC"),
    )
    provider = MqttSensorProvider(loop=asyncio.get_running_loop(), host="broker.local", topic="steps")

    assert reconciler.start(provider) is SensorMode.UNSUPPORTED
    assert observer.unsupported_calls == 1
    assert provider.is_running is False
