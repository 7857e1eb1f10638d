"""Normalized sensor events.

Every sensor provider (in-process hub, MQTT, platform bridges) converts its
inputs into these events. Only the reconciler is allowed to act on them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SensorKind(StrEnum):
    CUMULATIVE = "cumulative"
    PULSE = "pulse"


class SensorMode(StrEnum):
    """Mode the reconciler entered at start."""

    IDLE = "idle"
    CUMULATIVE = "cumulative"
    PULSE = "pulse"
    UNSUPPORTED = "unsupported"


class SensorReading(BaseModel):
    """A raw value delivered by the hardware sensor layer.

    For :attr:`SensorKind.CUMULATIVE` the value is the lifetime counter,
    for :attr:`SensorKind.PULSE` it is the pulse magnitude.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    kind: SensorKind
    value: float
    observed_at: datetime | None = Field(
        default=None,
        description="Wall-clock time of the reading; the reconciler clock is used when absent.",
    )

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class AccuracyChange(BaseModel):
    """Sensor accuracy notification. Informational only."""

    model_config = ConfigDict(frozen=True)

    kind: SensorKind
    accuracy: int


SensorEvent = SensorReading | AccuracyChange
