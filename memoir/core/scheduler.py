from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol


class Timer(Protocol):
    def arm(self, delay_ms: int, callback: Callable[[], None]) -> None: ...

    def cancel(self) -> None: ...

    def is_armed(self) -> bool: ...


class Runtime(Protocol):
    """The single-threaded event loop the controller runs on."""

    def create_timer(self) -> Timer: ...

    def monotonic_ms(self) -> float: ...

    def wall_clock(self) -> datetime: ...

    def wait_until(self, predicate: Callable[[], bool], timeout_ms: int) -> bool: ...


class DebounceScheduler:
    """Turns a burst of edits into one delayed trigger.

    Every ``notify_edit`` re-arms the same timer, so the trigger fires ``delay_ms``
    after the last edit and never more than one is pending.
    """

    def __init__(self, timer: Timer, delay_ms: int, on_expire: Callable[[], None]) -> None:
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be non-negative, got {delay_ms}")
        self._timer = timer
        self._delay_ms = delay_ms
        self._on_expire = on_expire

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    @property
    def pending(self) -> bool:
        return self._timer.is_armed()

    def notify_edit(self) -> None:
        self._timer.cancel()
        self._timer.arm(self._delay_ms, self._on_expire)

    def cancel(self) -> None:
        self._timer.cancel()
