"""Wall-clock and boot-time providers."""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def device_boot_time(self) -> datetime: ...


def _uptime_seconds() -> float:
    # CLOCK_BOOTTIME keeps counting through suspend; monotonic does not.
    boottime = getattr(time, "CLOCK_BOOTTIME", None)
    if boottime is not None:
        return time.clock_gettime(boottime)
    return time.monotonic()


class SystemClock:
    """Real clock. Boot time is derived as ``now - uptime``.

    The derived value jitters by a few milliseconds between calls, which is
    why reboot detection compares boot times with a tolerance.
    """

    def now(self) -> datetime:
        return datetime.now(UTC)

    def device_boot_time(self) -> datetime:
        return datetime.now(UTC) - timedelta(seconds=_uptime_seconds())


class FixedClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, now: datetime, *, boot_time: datetime | None = None) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        self._now = now
        self._boot_time = boot_time if boot_time is not None else now - timedelta(hours=1)

    def now(self) -> datetime:
        return self._now

    def device_boot_time(self) -> datetime:
        return self._boot_time

    def set(self, now: datetime) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        self._now = now

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by ``timedelta(**kwargs)``."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def reboot(self) -> None:
        """Simulate a device reboot happening right now."""
        self._boot_time = self._now
