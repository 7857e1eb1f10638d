"""Durable key-value stores and the persisted step snapshot.

The reconciler writes each persisted scalar back through a
:class:`KeyValueStore` as soon as it changes. Stores are synchronous.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

from pypedometer._constants import (
    EPOCH,
    KEY_CURRENT_APP_STEP,
    KEY_LAST_OFFSET_STEP,
    KEY_LAST_SENSOR_STEP,
    KEY_LAST_SENSOR_TIME,
    KEY_SYSTEM_BOOT_TIME,
    KEY_SYSTEM_REBOOT_STATUS,
    from_epoch_ms,
    to_epoch_ms,
)
from pypedometer.exceptions import PedometerStoreError

_logger = logging.getLogger(__name__)

Scalar = int | float | bool | str


class KeyValueStore(Protocol):
    """Synchronous, durable scalar storage."""

    def get(self, key: str, default: Scalar) -> Scalar: ...

    def set(self, key: str, value: Scalar) -> None: ...


class MemoryStore:
    """Dict-backed store. Durable only for the lifetime of the object."""

    def __init__(self, initial: dict[str, Scalar] | None = None) -> None:
        self._data: dict[str, Scalar] = dict(initial or {})

    def get(self, key: str, default: Scalar) -> Scalar:
        return self._data.get(key, default)

    def set(self, key: str, value: Scalar) -> None:
        self._data[key] = value

    def as_dict(self) -> dict[str, Scalar]:
        return dict(self._data)


class JsonFileStore:
    """Store backed by a single JSON object on disk.

    Every :meth:`set` rewrites the file through a temporary sibling and
    ``os.replace`` so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._data: dict[str, Scalar] = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Scalar]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                loaded = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise PedometerStoreError(f"Cannot read store {self._path}: {exc}", path=str(self._path)) from exc
        if not isinstance(loaded, dict):
            raise PedometerStoreError(f"Store {self._path} does not contain a JSON object", path=str(self._path))
        return loaded

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._data, handle, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise PedometerStoreError(f"Cannot write store {self._path}: {exc}", path=str(self._path)) from exc

    def get(self, key: str, default: Scalar) -> Scalar:
        return self._data.get(key, default)

    def set(self, key: str, value: Scalar) -> None:
        if key in self._data and self._data[key] == value:
            return
        self._data[key] = value
        self._write()
        _logger.debug("Persisted %s=%s to %s", key, value, self._path)


class StepState(BaseModel):
    """The six persisted scalars, decoded."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    current_app_step: NonNegativeInt = 0
    last_sensor_step: int = 0
    last_offset_step: int = 0
    last_sensor_time: datetime = Field(default=EPOCH)
    system_boot_time: datetime = Field(default=EPOCH)
    system_reboot_status: bool = False


#: Field name -> persistence key.
FIELD_KEYS: dict[str, str] = {
    "current_app_step": KEY_CURRENT_APP_STEP,
    "last_sensor_step": KEY_LAST_SENSOR_STEP,
    "last_offset_step": KEY_LAST_OFFSET_STEP,
    "last_sensor_time": KEY_LAST_SENSOR_TIME,
    "system_boot_time": KEY_SYSTEM_BOOT_TIME,
    "system_reboot_status": KEY_SYSTEM_REBOOT_STATUS,
}


def _encode(value: int | bool | datetime) -> Scalar:
    if isinstance(value, datetime):
        return to_epoch_ms(value)
    return value


def load_state(store: KeyValueStore, *, key_prefix: str = "") -> StepState:
    """Read every persisted field, defaulting absent ones to zero/false/epoch."""

    def read(name: str, default: Scalar) -> Scalar:
        return store.get(f"{key_prefix}{FIELD_KEYS[name]}", default)

    return StepState(
        current_app_step=max(0, int(read("current_app_step", 0))),
        last_sensor_step=int(read("last_sensor_step", 0)),
        last_offset_step=int(read("last_offset_step", 0)),
        last_sensor_time=from_epoch_ms(int(read("last_sensor_time", 0))),
        system_boot_time=from_epoch_ms(int(read("system_boot_time", 0))),
        system_reboot_status=bool(read("system_reboot_status", False)),
    )


def save_fields(store: KeyValueStore, state: StepState, *names: str, key_prefix: str = "") -> None:
    """Write the named fields of *state* back to *store*, one ``set`` each."""
    for name in names:
        store.set(f"{key_prefix}{FIELD_KEYS[name]}", _encode(getattr(state, name)))
