"""Step reconciliation state machine.

Converts raw step-sensor readings into a day-scoped step count that stays
monotonic within a day and survives counter resets, device reboots and
process restarts.

Two input modes exist. In cumulative mode the hardware reports a lifetime
counter that only resets on reboot, and the day's count is derived as
``counter - offset``. In pulse mode every detected step arrives as a unit
pulse and the count is accumulated here.

The reconciler is not thread-safe. All calls (construction, readings,
start/stop) must be serialized on one execution context.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime

from pypedometer._constants import EPOCH, STEP_PULSE_MAGNITUDE
from pypedometer.clock import Clock, SystemClock
from pypedometer.config import PedometerConfig
from pypedometer.exceptions import SensorSubscriptionError
from pypedometer.observer import StepObserver
from pypedometer.sensors import SensorProvider
from pypedometer.state.events import AccuracyChange, SensorEvent, SensorKind, SensorMode
from pypedometer.state.policy import is_later_day, is_reboot, should_reset
from pypedometer.state.store import JsonFileStore, KeyValueStore, MemoryStore, StepState, load_state, save_fields

_logger = logging.getLogger(__name__)


class StepReconciler:
    """Reconcile raw sensor readings into the current day's step count.

    Usage::

        reconciler = StepReconciler(JsonFileStore("steps.json"), observer=ui)
        reconciler.start(provider)
        ...
        reconciler.stop()

    Parameters
    ----------
    store : KeyValueStore or None
        Durable storage for the six persisted scalars. When omitted, a
        :class:`JsonFileStore` at ``config.store_path`` is used, or an
        in-memory store if no path is configured.
    clock : Clock or None
        Wall-clock and boot-time provider. Defaults to :class:`SystemClock`.
    observer : StepObserver or None
        Receives ``on_step`` / ``on_unsupported`` signals.
    config : PedometerConfig or None
        Rollover window, time zone and persistence key prefix.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        clock: Clock | None = None,
        observer: StepObserver | None = None,
        config: PedometerConfig | None = None,
    ) -> None:
        self._config = config or PedometerConfig()
        if store is None:
            store = JsonFileStore(self._config.store_path) if self._config.store_path else MemoryStore()
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._observer = observer
        self._tz = self._config.tzinfo()
        self._mode = SensorMode.IDLE
        self._provider: SensorProvider | None = None
        self._is_reset = False

        self._state: StepState = load_state(store, key_prefix=self._config.key_prefix)
        _logger.debug("Loaded step state %s", self._state)
        self._check_boot_time()
        self._reset_if_stale()

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def mode(self) -> SensorMode:
        return self._mode

    @property
    def current_step(self) -> int:
        return self._state.current_app_step

    @property
    def is_running(self) -> bool:
        """Whether a sensor subscription is active."""
        return self._provider is not None

    def snapshot(self) -> StepState:
        """Copy of the persisted fields as currently held in memory."""
        return self._state.model_copy()

    def set_observer(self, observer: StepObserver | None) -> None:
        """Replace the observer. Only one observer is kept."""
        self._observer = observer

    # ------------------------------------------------------------------
    # Construction-time checks
    # ------------------------------------------------------------------

    def _check_boot_time(self) -> None:
        state = self._state
        current_boot = self._clock.device_boot_time()
        if state.system_boot_time == EPOCH:
            state.system_boot_time = current_boot
            self._persist("system_boot_time")
            return
        if state.system_reboot_status:
            return
        if is_reboot(
            recorded_boot_time=state.system_boot_time,
            current_boot_time=current_boot,
            tolerance_seconds=self._config.boot_time_tolerance_seconds,
        ):
            _logger.info(
                "Device reboot detected since last run (boot time %s -> %s)",
                state.system_boot_time.isoformat(),
                current_boot.isoformat(),
            )
            state.system_reboot_status = True
            self._persist("system_reboot_status")

    def _reset_if_stale(self) -> None:
        """Start the day over if the app was closed across a day boundary."""
        now = self._now()
        if not self._should_reset(now):
            return
        state = self._state
        _logger.info(
            "Resetting step count on load (last reading %s, now %s)",
            state.last_sensor_time.isoformat(),
            now.isoformat(),
        )
        state.current_app_step = 0
        state.last_sensor_time = now
        state.system_reboot_status = False
        self._persist("current_app_step", "last_sensor_time", "system_reboot_status")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, provider: SensorProvider) -> SensorMode:
        """Pick a sensor mode from *provider* capabilities and subscribe.

        Cumulative counters win over pulse detectors. In pulse mode the last
        known count is emitted immediately. When neither kind is available,
        or the subscription is refused, the observer's ``on_unsupported`` is
        called once and no subscription is kept.
        """
        if self._provider is not None:
            self.stop()

        if provider.has_capability(SensorKind.CUMULATIVE):
            kind = SensorKind.CUMULATIVE
        elif provider.has_capability(SensorKind.PULSE):
            kind = SensorKind.PULSE
        else:
            _logger.info("The device does not support step sensors")
            return self._enter_unsupported()

        _logger.info("Starting step sensor kind=%s", kind)
        self._mode = SensorMode(kind.value)
        self._provider = provider
        if not self._subscribe(provider, kind):
            self._provider = None
            return self._enter_unsupported()

        if kind is SensorKind.PULSE:
            self._emit()
        return self._mode

    def stop(self) -> None:
        """Tear down the subscription. State is left as of the last reading."""
        provider = self._provider
        self._provider = None
        if self._mode is not SensorMode.UNSUPPORTED:
            self._mode = SensorMode.IDLE
        if provider is None:
            return
        provider.unsubscribe()
        _logger.debug("Step sensor unsubscribed")

    def _subscribe(self, provider: SensorProvider, kind: SensorKind) -> bool:
        try:
            accepted = provider.subscribe(kind, self.handle_event)
        except SensorSubscriptionError as exc:
            _logger.warning("Step sensor subscription failed kind=%s: %s", kind, exc)
            return False
        if not accepted:
            _logger.warning("Step sensor kind=%s unavailable", kind)
        return accepted

    def _enter_unsupported(self) -> SensorMode:
        self._mode = SensorMode.UNSUPPORTED
        if self._observer is not None:
            self._observer.on_unsupported()
        return self._mode

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def handle_event(self, event: SensorEvent) -> None:
        """Subscription callback. Routes an event to the matching algorithm."""
        if isinstance(event, AccuracyChange):
            self.on_accuracy_changed(event.accuracy, kind=event.kind)
            return
        if self._provider is None or event.kind.value != self._mode.value:
            _logger.debug("Dropping %s reading while mode=%s", event.kind, self._mode)
            return
        if event.kind is SensorKind.CUMULATIVE:
            self.process_cumulative_reading(event.value, event.observed_at)
        else:
            self.process_pulse(event.value, event.observed_at)

    def on_accuracy_changed(self, accuracy: int, *, kind: SensorKind | None = None) -> None:
        _logger.debug("Sensor accuracy changed kind=%s accuracy=%s", kind, accuracy)

    def mark_day_boundary(self) -> None:
        """Make the next step pulse start a new day."""
        _logger.debug("Day boundary marked")
        self._is_reset = True

    def notify_device_rebooted(self) -> None:
        """Flag a reboot so the next cumulative reading re-anchors the offset."""
        self._state.system_reboot_status = True
        self._persist("system_reboot_status")

    # ------------------------------------------------------------------
    # Cumulative mode
    # ------------------------------------------------------------------

    def process_cumulative_reading(self, value: float, now: datetime | None = None) -> int:
        """Apply one lifetime-counter reading and return the day's step count.

        Rules run in a fixed order on every reading: day rollover, reboot
        re-anchoring, regression guard, negative guard. Rollover and reboot
        may both fire on the same reading. A non-finite value leaves the
        state untouched and returns the current count.
        """
        if not math.isfinite(value):
            _logger.debug("Ignoring non-finite counter value %s", value)
            return self._state.current_app_step
        now = self._now(now)
        temp_step = int(value)
        state = self._state
        _logger.debug("System step counter: %s", temp_step)

        if self._should_reset(now):
            state.current_app_step = 0
            state.last_offset_step = temp_step
            state.system_boot_time = self._clock.device_boot_time()
            self._persist("last_offset_step", "current_app_step", "system_boot_time")
            _logger.info("Day rollover, offset re-anchored to %s", temp_step)

        if state.system_reboot_status:
            state.last_offset_step = temp_step - state.current_app_step
            state.system_reboot_status = False
            state.system_boot_time = self._clock.device_boot_time()
            self._persist("last_offset_step", "system_boot_time", "system_reboot_status")
            _logger.info("Reboot re-anchoring, offset now %s", state.last_offset_step)

        app_step = state.current_app_step
        current_step = temp_step - state.last_offset_step
        if current_step < app_step:
            state.last_offset_step = temp_step - app_step
            self._persist("last_offset_step")
            _logger.debug(
                "Counter regression (%s < %s), offset now %s",
                current_step,
                app_step,
                state.last_offset_step,
            )
        else:
            app_step = current_step

        state.last_sensor_step = temp_step
        state.last_sensor_time = now

        if app_step < 0:
            app_step = 0
            state.last_offset_step = 0
            self._persist("last_offset_step")

        state.current_app_step = app_step
        self._persist("current_app_step", "last_sensor_step", "last_sensor_time")
        self._emit()
        return app_step

    # ------------------------------------------------------------------
    # Pulse mode
    # ------------------------------------------------------------------

    def process_pulse(self, magnitude: float, now: datetime | None = None) -> int | None:
        """Apply one step-detector pulse.

        Only a magnitude of exactly 1 is a step; anything else is ignored and
        ``None`` is returned. Non-step pulses do not re-emit the unchanged
        count to the observer.
        """
        if magnitude != STEP_PULSE_MAGNITUDE:
            _logger.debug("Ignoring pulse of magnitude %s", magnitude)
            return None
        now = self._now(now)
        state = self._state

        if is_later_day(state.last_sensor_time, now, self._tz):
            self._is_reset = True

        if self._is_reset:
            self._is_reset = False
            state.last_sensor_time = now
            state.current_app_step = 0
            _logger.info("Pulse step count reset for new day")

        state.current_app_step += 1
        state.last_sensor_time = now
        self._persist("current_app_step", "last_sensor_time")
        self._emit()
        return state.current_app_step

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _now(self, now: datetime | None = None) -> datetime:
        value = now if now is not None else self._clock.now()
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value

    def _should_reset(self, now: datetime) -> bool:
        return should_reset(
            last_sensor_time=self._state.last_sensor_time,
            now=now,
            tz=self._tz,
            midnight_window_seconds=self._config.midnight_window_seconds,
        )

    def _persist(self, *names: str) -> None:
        save_fields(self._store, self._state, *names, key_prefix=self._config.key_prefix)

    def _emit(self) -> None:
        if self._observer is not None:
            self._observer.on_step(self._state.current_app_step)
