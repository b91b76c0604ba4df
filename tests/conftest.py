from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

import pytest

from memoir.core.backend import Result, ResultCallback
from memoir.settings import AppSettings


class FakeTimer:
    def __init__(self, runtime: "FakeRuntime") -> None:
        self._runtime = runtime
        self.due_ms: float | None = None
        self._callback: Callable[[], None] | None = None
        self.order = 0

    def arm(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self.due_ms = self._runtime.now_ms + max(0, delay_ms)
        self._callback = callback
        self.order = self._runtime.next_order()

    def cancel(self) -> None:
        self.due_ms = None
        self._callback = None

    def is_armed(self) -> bool:
        return self.due_ms is not None

    def fire(self) -> None:
        callback = self._callback
        self.cancel()
        if callback is not None:
            callback()


class FakeRuntime:
    """Virtual-time runtime: nothing happens until time is advanced."""

    def __init__(self) -> None:
        self.now_ms = 0.0
        self.start = datetime(2024, 5, 1, 12, 0, 0)
        self.timers: list[FakeTimer] = []
        self._order = 0

    def next_order(self) -> int:
        self._order += 1
        return self._order

    def create_timer(self) -> FakeTimer:
        timer = FakeTimer(self)
        self.timers.append(timer)
        return timer

    def monotonic_ms(self) -> float:
        return self.now_ms

    def wall_clock(self) -> datetime:
        return self.start + timedelta(milliseconds=self.now_ms)

    def _next_due(self) -> FakeTimer | None:
        armed = [timer for timer in self.timers if timer.due_ms is not None]
        if not armed:
            return None
        return min(armed, key=lambda timer: (timer.due_ms, timer.order))

    def advance(self, ms: float) -> None:
        target = self.now_ms + ms
        while True:
            timer = self._next_due()
            if timer is None or timer.due_ms > target:
                break
            self.now_ms = max(self.now_ms, timer.due_ms)
            timer.fire()
        self.now_ms = target

    def wait_until(self, predicate: Callable[[], bool], timeout_ms: int) -> bool:
        deadline = self.now_ms + timeout_ms
        while not predicate():
            timer = self._next_due()
            if timer is None or timer.due_ms > deadline:
                self.now_ms = deadline
                return predicate()
            self.now_ms = max(self.now_ms, timer.due_ms)
            timer.fire()
        return True


class ScriptedBackend:
    """Backend double recording every call.

    ``latency_ms`` of ``None`` means calls never resolve; ``0`` resolves before
    returning. Queued outcomes are consumed one per persist call.
    """

    def __init__(self, runtime: FakeRuntime, latency_ms: int | None = 0) -> None:
        self.runtime = runtime
        self.latency_ms = latency_ms
        self.persist_calls: list[tuple[str, dict[str, Any]]] = []
        self.upload_calls: list[bytes] = []
        self.persist_outcomes: list[Result] = []
        self.upload_outcomes: list[Result] = []
        self.active = 0
        self.max_active = 0

    def fail_next(self, count: int = 1, message: str = "backend unavailable") -> None:
        self.persist_outcomes.extend(Result.failure(message) for _ in range(count))

    def persist(self, entity_id: str, fields: Mapping[str, Any], on_result: ResultCallback) -> None:
        self.persist_calls.append((entity_id, dict(fields)))
        outcome = self.persist_outcomes.pop(0) if self.persist_outcomes else Result.success(dict(fields))
        self._deliver(outcome, on_result)

    def upload_attachment(self, data: bytes, on_result: ResultCallback) -> None:
        self.upload_calls.append(data)
        outcome = (
            self.upload_outcomes.pop(0)
            if self.upload_outcomes
            else Result.success(f"attachments/{len(self.upload_calls)}.bin")
        )
        self._deliver(outcome, on_result)

    def _deliver(self, outcome: Result, on_result: ResultCallback) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)

        def done() -> None:
            self.active -= 1
            on_result(outcome)

        if self.latency_ms is None:
            return
        if self.latency_ms == 0:
            done()
            return
        self.runtime.create_timer().arm(self.latency_ms, done)


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def backend(runtime: FakeRuntime) -> ScriptedBackend:
    return ScriptedBackend(runtime)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        autosave_debounce_ms=2000,
        suppression_ms=500,
        close_timeout_ms=5000,
        flush_timeout_ms=5000,
        saved_hold_ms=3000,
    )
