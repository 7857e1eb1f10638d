"""pypedometer - Daily step reconciliation for hardware step sensors."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pypedometer")
except PackageNotFoundError:
    __version__ = "0+local"
from pypedometer.clock import Clock, FixedClock, SystemClock
from pypedometer.config import PedometerConfig
from pypedometer.exceptions import (
    PedometerConfigError,
    PedometerError,
    PedometerStoreError,
    SensorError,
    SensorPayloadError,
    SensorSubscriptionError,
)
from pypedometer.observer import CallbackObserver, RecordingObserver, StepObserver
from pypedometer.reconciler import StepReconciler
from pypedometer.sensors import SensorHub, SensorProvider
from pypedometer.state.events import AccuracyChange, SensorEvent, SensorKind, SensorMode, SensorReading
from pypedometer.state.store import JsonFileStore, KeyValueStore, MemoryStore, StepState

__all__ = [
    "__version__",
    "AccuracyChange",
    "CallbackObserver",
    "Clock",
    "FixedClock",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "PedometerConfig",
    "PedometerConfigError",
    "PedometerError",
    "PedometerStoreError",
    "RecordingObserver",
    "SensorError",
    "SensorEvent",
    "SensorHub",
    "SensorKind",
    "SensorMode",
    "SensorPayloadError",
    "SensorProvider",
    "SensorReading",
    "SensorSubscriptionError",
    "StepObserver",
    "StepReconciler",
    "StepState",
    "SystemClock",
]
