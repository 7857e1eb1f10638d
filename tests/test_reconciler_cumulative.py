from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pypedometer._constants import (
    KEY_CURRENT_APP_STEP,
    KEY_LAST_OFFSET_STEP,
    KEY_LAST_SENSOR_STEP,
    KEY_LAST_SENSOR_TIME,
    KEY_SYSTEM_BOOT_TIME,
    KEY_SYSTEM_REBOOT_STATUS,
    to_epoch_ms,
)
from pypedometer.clock import FixedClock
from pypedometer.config import PedometerConfig
from pypedometer.observer import RecordingObserver
from pypedometer.reconciler import StepReconciler
from pypedometer.state.store import MemoryStore

_CONFIG = PedometerConfig(time_zone="UTC")


def _dt(day: int = 1, hour: int = 12, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2026, 1, day, hour, minute, second, tzinfo=UTC)


def _seeded_store(
    clock: FixedClock,
    *,
    app: int,
    offset: int,
    sensor: int = 0,
    reboot: bool = False,
    last_time: datetime | None = None,
) -> MemoryStore:
    return MemoryStore(
        {
            KEY_CURRENT_APP_STEP: app,
            KEY_LAST_OFFSET_STEP: offset,
            KEY_LAST_SENSOR_STEP: sensor,
            KEY_LAST_SENSOR_TIME: to_epoch_ms(last_time or clock.now() - timedelta(hours=1)),
            KEY_SYSTEM_BOOT_TIME: to_epoch_ms(clock.device_boot_time()),
            KEY_SYSTEM_REBOOT_STATUS: reboot,
        }
    )


def test_reboot_recovery_keeps_count_and_reanchors_offset() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=50, offset=100, sensor=150, reboot=True)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)

    assert reconciler.process_cumulative_reading(5) == 50

    state = reconciler.snapshot()
    assert state.last_offset_step == -45
    assert state.current_app_step == 50
    assert state.system_reboot_status is False
    assert store.get(KEY_LAST_OFFSET_STEP, 0) == -45
    assert store.get(KEY_SYSTEM_REBOOT_STATUS, True) is False


def test_reboot_flag_cleared_only_once() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=50, offset=100, sensor=150, reboot=True)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)

    reconciler.process_cumulative_reading(5)
    reconciler.process_cumulative_reading(25)

    state = reconciler.snapshot()
    # Second reading is a normal increment against the re-anchored offset.
    assert state.last_offset_step == -45
    assert state.current_app_step == 70


def test_regression_guard_keeps_count_and_moves_offset() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)

    assert reconciler.process_cumulative_reading(20) == 30

    state = reconciler.snapshot()
    assert state.current_app_step == 30
    assert state.last_offset_step == -10
    assert state.last_sensor_step == 20
    assert store.get(KEY_LAST_OFFSET_STEP, 0) == -10


def test_counter_increments_are_accepted() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    observer = RecordingObserver()
    reconciler = StepReconciler(store, clock=clock, observer=observer, config=_CONFIG)

    reconciler.process_cumulative_reading(45)
    reconciler.process_cumulative_reading(60)

    assert observer.steps == [35, 50]
    state = reconciler.snapshot()
    assert state.current_app_step == state.last_sensor_step - state.last_offset_step
    assert store.get(KEY_CURRENT_APP_STEP, 0) == 50
    assert store.get(KEY_LAST_SENSOR_STEP, 0) == 60


def test_day_rollover_restarts_count_from_current_counter() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)
    reconciler.process_cumulative_reading(90)
    assert reconciler.current_step == 80

    clock.set(_dt(day=2, hour=8))
    assert reconciler.process_cumulative_reading(150) == 0
    assert reconciler.snapshot().last_offset_step == 150

    assert reconciler.process_cumulative_reading(170) == 20


def test_day_rollover_refreshes_boot_time() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)

    clock.set(_dt(day=2, hour=8))
    clock.reboot()
    reconciler.process_cumulative_reading(150)

    assert reconciler.snapshot().system_boot_time == _dt(day=2, hour=8)
    assert store.get(KEY_SYSTEM_BOOT_TIME, 0) == to_epoch_ms(_dt(day=2, hour=8))


def test_rollover_and_reboot_on_same_reading() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)
    reconciler.notify_device_rebooted()

    clock.set(_dt(day=2, hour=8))
    assert reconciler.process_cumulative_reading(12) == 0

    state = reconciler.snapshot()
    assert state.last_offset_step == 12
    assert state.system_reboot_status is False


def test_readings_inside_midnight_window_reset_the_day() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)

    clock.set(_dt(day=2, hour=0, minute=0, second=20))
    assert reconciler.process_cumulative_reading(100) == 0
    clock.set(_dt(day=2, hour=0, minute=0, second=40))
    assert reconciler.process_cumulative_reading(104) == 0

    clock.set(_dt(day=2, hour=0, minute=5))
    assert reconciler.process_cumulative_reading(110) == 6


def test_first_reading_on_fresh_store() -> None:
    clock = FixedClock(_dt())
    observer = RecordingObserver()
    reconciler = StepReconciler(MemoryStore(), clock=clock, observer=observer, config=_CONFIG)

    reconciler.process_cumulative_reading(0)
    reconciler.process_cumulative_reading(12)

    assert observer.steps == [0, 12]


def test_negative_raw_value_never_produces_negative_count() -> None:
    clock = FixedClock(_dt())
    reconciler = StepReconciler(MemoryStore(), clock=clock, config=_CONFIG)

    assert reconciler.process_cumulative_reading(-25) == 0
    assert reconciler.process_cumulative_reading(-10) == 15


def test_fractional_raw_value_is_truncated() -> None:
    clock = FixedClock(_dt())
    reconciler = StepReconciler(MemoryStore(), clock=clock, config=_CONFIG)

    assert reconciler.process_cumulative_reading(41.9) == 41
    assert reconciler.snapshot().last_sensor_step == 41


def test_non_finite_raw_value_is_ignored() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    observer = RecordingObserver()
    reconciler = StepReconciler(store, clock=clock, observer=observer, config=_CONFIG)
    before = reconciler.snapshot()

    assert reconciler.process_cumulative_reading(float("nan")) == 30
    assert reconciler.process_cumulative_reading(float("inf")) == 30
    assert reconciler.process_cumulative_reading(float("-inf")) == 30

    assert reconciler.snapshot() == before
    assert observer.steps == []
    assert reconciler.process_cumulative_reading(45) == 35


def test_reading_timestamp_overrides_clock() -> None:
    clock = FixedClock(_dt())
    store = _seeded_store(clock, app=30, offset=10, sensor=40)
    reconciler = StepReconciler(store, clock=clock, config=_CONFIG)

    reconciler.process_cumulative_reading(50, _dt(hour=13))

    assert reconciler.snapshot().last_sensor_time == _dt(hour=13)
    assert store.get(KEY_LAST_SENSOR_TIME, 0) == to_epoch_ms(_dt(hour=13))
