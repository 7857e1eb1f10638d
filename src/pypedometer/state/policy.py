"""Day-rollover and reboot predicates.

These functions are pure: they take every timestamp they compare as an
argument so the reconciler can be driven by an injected clock.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo

from pypedometer._constants import EPOCH


def local_date(value: datetime, tz: tzinfo | None) -> date:
    """Calendar date of *value* in *tz* (``None`` = system local time)."""
    return value.astimezone(tz).date()


def is_later_day(last: datetime, now: datetime, tz: tzinfo | None) -> bool:
    """True when *now* falls on a calendar day after the day of *last*.

    A clock moved backwards across midnight does not count as a new day.
    """
    return local_date(now, tz) > local_date(last, tz)


def is_midnight_window(now: datetime, tz: tzinfo | None, window_seconds: float) -> bool:
    """True when *now* is within ``window_seconds`` after local midnight."""
    if window_seconds <= 0:
        return False
    local = now.astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return local - midnight < timedelta(seconds=window_seconds)


def should_reset(
    *,
    last_sensor_time: datetime,
    now: datetime,
    tz: tzinfo | None,
    midnight_window_seconds: float,
) -> bool:
    """Decide whether the day's step count must start over.

    Policy:
    - a later calendar day than the last accepted reading resets;
    - so does any time inside the window right after local midnight, which
      catches readings that arrived just before midnight without being
      reconciled.
    """
    if is_later_day(last_sensor_time, now, tz):
        return True
    return is_midnight_window(now, tz, midnight_window_seconds)


def is_reboot(
    *,
    recorded_boot_time: datetime,
    current_boot_time: datetime,
    tolerance_seconds: float,
) -> bool:
    """True when the device boot time moved since it was recorded.

    An unrecorded (epoch) boot time never counts as a reboot.
    """
    if recorded_boot_time == EPOCH:
        return False
    drift = abs((current_boot_time - recorded_boot_time).total_seconds())
    return drift > tolerance_seconds
