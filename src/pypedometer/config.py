"""Library configuration for pypedometer."""

from __future__ import annotations

import dataclasses
import os
from datetime import tzinfo as TzInfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pypedometer._constants import DEFAULT_BOOT_TIME_TOLERANCE_SECONDS, DEFAULT_MIDNIGHT_WINDOW_SECONDS
from pypedometer.exceptions import PedometerConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, raw: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(raw)
    except ValueError as exc:
        raise PedometerConfigError(f"{env_key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class PedometerConfig:
    """Reconciler and provider configuration.

    Parameters
    ----------
    time_zone : str or None
        IANA time zone used to decide calendar days. ``None`` uses the
        system local zone.
    midnight_window_seconds : float
        Length of the window after local midnight during which every
        cumulative reading is treated as the start of a new day.
    boot_time_tolerance_seconds : float
        Maximum drift between the persisted and the current device boot
        time before a reboot is inferred at construction.
    store_path : str or None
        Path of the JSON file backing :class:`~pypedometer.state.store.JsonFileStore`.
    key_prefix : str
        Prefix prepended to every persisted key.
    mqtt_host : str or None
        Broker host for :class:`~pypedometer._mqtt.MqttSensorProvider`.
    mqtt_port : int
        Broker port.
    mqtt_topic : str
        Topic on which the wearable publishes sensor readings.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Enable TLS for the broker connection.
    """

    time_zone: str | None = None
    midnight_window_seconds: float = DEFAULT_MIDNIGHT_WINDOW_SECONDS
    boot_time_tolerance_seconds: float = DEFAULT_BOOT_TIME_TOLERANCE_SECONDS
    store_path: str | None = None
    key_prefix: str = ""
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_topic: str = "pedometer/sensor"
    mqtt_keepalive: int = 60
    mqtt_tls: bool = False

    def __post_init__(self) -> None:
        if self.midnight_window_seconds < 0:
            raise PedometerConfigError("midnight_window_seconds must be >= 0")
        if self.boot_time_tolerance_seconds < 0:
            raise PedometerConfigError("boot_time_tolerance_seconds must be >= 0")

    def tzinfo(self) -> TzInfo | None:
        """Resolve :attr:`time_zone`; ``None`` means system local time."""
        if not self.time_zone:
            return None
        try:
            return ZoneInfo(self.time_zone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise PedometerConfigError(f"Unknown time zone: {self.time_zone!r}") from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> PedometerConfig:
        """Create configuration from ``PEDOMETER_*`` environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        PedometerConfigError
            A numeric variable could not be parsed.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "PEDOMETER_TIME_ZONE": "time_zone",
            "PEDOMETER_STORE_PATH": "store_path",
            "PEDOMETER_KEY_PREFIX": "key_prefix",
            "PEDOMETER_MQTT_HOST": "mqtt_host",
            "PEDOMETER_MQTT_TOPIC": "mqtt_topic",
        }
        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "PEDOMETER_MIDNIGHT_WINDOW_SECONDS": ("midnight_window_seconds", float),
            "PEDOMETER_BOOT_TIME_TOLERANCE_SECONDS": ("boot_time_tolerance_seconds", float),
            "PEDOMETER_MQTT_PORT": ("mqtt_port", int),
            "PEDOMETER_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, (field_name, cast) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("PEDOMETER_MQTT_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
