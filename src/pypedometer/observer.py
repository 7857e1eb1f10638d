"""Step observers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol


class StepObserver(Protocol):
    def on_step(self, count: int) -> None: ...

    def on_unsupported(self) -> None: ...


@dataclass(slots=True)
class CallbackObserver:
    """Adapt plain callables to :class:`StepObserver`. Missing callbacks are no-ops."""

    step: Callable[[int], None] | None = None
    unsupported: Callable[[], None] | None = None

    def on_step(self, count: int) -> None:
        if self.step is not None:
            self.step(count)

    def on_unsupported(self) -> None:
        if self.unsupported is not None:
            self.unsupported()


@dataclass(slots=True)
class RecordingObserver:
    """Keep every signal in memory."""

    steps: list[int] = field(default_factory=list)
    unsupported_calls: int = 0

    def on_step(self, count: int) -> None:
        self.steps.append(count)

    def on_unsupported(self) -> None:
        self.unsupported_calls += 1

    @property
    def last_step(self) -> int | None:
        return self.steps[-1] if self.steps else None
