"""Internal constants shared across the library."""

from datetime import UTC, datetime, timedelta

# ------------------------------------------------------------------
# Persistence keys (one per persisted scalar)
# ------------------------------------------------------------------

KEY_CURRENT_APP_STEP = "current_app_step"
KEY_LAST_SENSOR_STEP = "last_sensor_step"
KEY_LAST_OFFSET_STEP = "last_offset_step"
KEY_LAST_SENSOR_TIME = "last_sensor_time"
KEY_SYSTEM_BOOT_TIME = "system_boot_time"
KEY_SYSTEM_REBOOT_STATUS = "system_reboot_status"

#: Timestamp used when nothing has been persisted yet.
EPOCH = datetime.fromtimestamp(0, tz=UTC)

# ------------------------------------------------------------------
# Sensor values
# ------------------------------------------------------------------

#: Step detectors report exactly 1.0 for a detected step.
STEP_PULSE_MAGNITUDE = 1.0

DEFAULT_MIDNIGHT_WINDOW_SECONDS = 60.0
DEFAULT_BOOT_TIME_TOLERANCE_SECONDS = 30.0

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds (naive means UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int | float | None) -> datetime:
    """Convert epoch milliseconds written by :func:`to_epoch_ms` back to UTC.

    ``None`` and zero map to :data:`EPOCH`.
    """
    if not value:
        return EPOCH
    return EPOCH + timedelta(milliseconds=value)


def from_epoch(value: int | float | None) -> datetime:
    """Convert external epoch seconds **or** milliseconds to a UTC datetime.

    The unit is guessed from the magnitude, so this is only meant for
    inbound sensor timestamps. Persisted values go through :func:`from_epoch_ms`.
    ``None`` and non-positive values map to :data:`EPOCH`.
    """
    if value is None or value <= 0:
        return EPOCH
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)
