"""Sensor subscription contract and an in-process provider."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Protocol

from pypedometer.state.events import AccuracyChange, SensorEvent, SensorKind, SensorReading

_logger = logging.getLogger(__name__)

SensorCallback = Callable[[SensorEvent], None]


class SensorProvider(Protocol):
    """What the reconciler needs from the sensor layer.

    ``subscribe`` returns ``False`` when the platform refuses the
    registration; providers may raise
    :class:`~pypedometer.exceptions.SensorSubscriptionError` instead.
    """

    def has_capability(self, kind: SensorKind) -> bool: ...

    def subscribe(self, kind: SensorKind, callback: SensorCallback) -> bool: ...

    def unsubscribe(self) -> None: ...


class SensorHub:
    """Provider driven by direct calls; used by tests, replays and bridges.

    Events pushed while nothing is subscribed, or for another kind than the
    subscribed one, are dropped.
    """

    def __init__(self, capabilities: Iterable[SensorKind] = (), *, accept_subscriptions: bool = True) -> None:
        self._capabilities = frozenset(capabilities)
        self._accept_subscriptions = accept_subscriptions
        self._kind: SensorKind | None = None
        self._callback: SensorCallback | None = None

    @property
    def subscribed_kind(self) -> SensorKind | None:
        return self._kind

    def has_capability(self, kind: SensorKind) -> bool:
        return kind in self._capabilities

    def subscribe(self, kind: SensorKind, callback: SensorCallback) -> bool:
        if kind not in self._capabilities or not self._accept_subscriptions:
            _logger.debug("Subscription refused kind=%s", kind)
            return False
        self._kind = kind
        self._callback = callback
        return True

    def unsubscribe(self) -> None:
        self._kind = None
        self._callback = None

    def push(self, event: SensorEvent) -> bool:
        """Deliver *event* to the subscriber. Returns whether it was delivered."""
        if self._callback is None or event.kind != self._kind:
            return False
        self._callback(event)
        return True

    def push_value(self, value: float, *, observed_at: datetime | None = None) -> bool:
        if self._kind is None:
            return False
        return self.push(SensorReading(kind=self._kind, value=value, observed_at=observed_at))

    def push_accuracy(self, accuracy: int) -> bool:
        if self._kind is None:
            return False
        return self.push(AccuracyChange(kind=self._kind, accuracy=accuracy))
