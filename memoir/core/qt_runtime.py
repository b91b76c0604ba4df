from __future__ import annotations

from datetime import datetime
from typing import Callable

from PySide6.QtCore import QElapsedTimer, QEventLoop, QObject, Qt, QTimer


class QtTimer:
    def __init__(self, parent: QObject | None = None) -> None:
        self._callback: Callable[[], None] | None = None
        self._timer = QTimer(parent)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._fire)

    def arm(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self._timer.stop()
        self._callback = callback
        self._timer.start(max(0, int(delay_ms)))

    def cancel(self) -> None:
        self._timer.stop()
        self._callback = None

    def is_armed(self) -> bool:
        return self._timer.isActive()

    def _fire(self) -> None:
        callback = self._callback
        self._callback = None
        if callback is not None:
            callback()


class QtRuntime(QObject):
    """Runtime backed by the Qt event loop of the running application."""

    def __init__(self, poll_ms: int = 25, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._poll_ms = max(1, poll_ms)
        self._clock = QElapsedTimer()
        self._clock.start()

    def create_timer(self) -> QtTimer:
        return QtTimer(self)

    def monotonic_ms(self) -> float:
        return float(self._clock.elapsed())

    def wall_clock(self) -> datetime:
        return datetime.now()

    def wait_until(self, predicate: Callable[[], bool], timeout_ms: int) -> bool:
        if predicate():
            return True

        loop = QEventLoop()

        def check() -> None:
            if predicate():
                loop.quit()

        poll = QTimer()
        poll.setInterval(self._poll_ms)
        poll.timeout.connect(check)

        deadline = QTimer()
        deadline.setSingleShot(True)
        deadline.setTimerType(Qt.TimerType.PreciseTimer)
        deadline.timeout.connect(loop.quit)

        poll.start()
        deadline.start(max(0, int(timeout_ms)))
        try:
            loop.exec()
        finally:
            poll.stop()
            deadline.stop()
        return predicate()
