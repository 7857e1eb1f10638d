"""Custom exception hierarchy for pypedometer."""

from __future__ import annotations


class PedometerError(Exception):
    """Base exception for all pypedometer errors."""


class PedometerConfigError(PedometerError):
    """Invalid or missing configuration."""


class PedometerStoreError(PedometerError):
    """Persistent store could not be read or written."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class SensorError(PedometerError):
    """Base for sensor-layer failures."""


class SensorSubscriptionError(SensorError):
    """The platform refused to register a sensor listener.

    The reconciler catches this and reports the device as unsupported
    instead of propagating it.
    """

    def __init__(self, message: str, *, kind: str = "") -> None:
        self.kind = kind
        super().__init__(message)


class SensorPayloadError(SensorError):
    """A raw sensor payload could not be decoded into an event."""
