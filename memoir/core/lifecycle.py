from __future__ import annotations

import logging

from ..logging_setup import log_context
from .draft_store import DraftStore
from .entity import Entity
from .scheduler import Runtime
from .sequencer import SaveSequencer
from .status import FailureKind, FlushResult, StatusKind

logger = logging.getLogger(__name__)


class LifecycleGuard:
    """Opens and closes an edit session around a sequencer.

    Right after ``begin_session`` edits are treated as the form populating itself
    and go into the baseline. ``end_session`` blocks, within bounds, until the
    draft is flushed.
    """

    def __init__(self, store: DraftStore, sequencer: SaveSequencer, runtime: Runtime, suppression_ms: int = 500) -> None:
        if suppression_ms < 0:
            raise ValueError(f"suppression_ms must be non-negative, got {suppression_ms}")
        self._store = store
        self._sequencer = sequencer
        self._runtime = runtime
        self._suppression_ms = suppression_ms
        self._started_ms: float | None = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def begin_session(self, initial: Entity) -> None:
        self._store.reset(initial)
        self._started_ms = self._runtime.monotonic_ms()
        self._open = True

    def is_suppressed(self) -> bool:
        if not self._open or self._started_ms is None:
            return False
        return self._runtime.monotonic_ms() - self._started_ms < self._suppression_ms

    def end_session(self, timeout_ms: int, flush_timeout_ms: int | None = None) -> FlushResult:
        if flush_timeout_ms is None:
            flush_timeout_ms = timeout_ms
        sequencer = self._sequencer
        sequencer.suspend_auto()

        with log_context(entity_id=sequencer.entity_id):
            if sequencer.in_flight:
                logger.info("Close requested while saving, waiting up to %sms", timeout_ms)
                self._runtime.wait_until(lambda: not sequencer.in_flight, timeout_ms)

            if not sequencer.in_flight and self._store.is_dirty():
                logger.info("Flushing unsaved draft before close")
                sequencer.trigger_manual_save()
                self._runtime.wait_until(lambda: not sequencer.in_flight, flush_timeout_ms)

            failure = None
            if sequencer.in_flight:
                failure = FailureKind.TIMEOUT_ON_CLOSE
            elif sequencer.status.kind is StatusKind.ERROR:
                failure = sequencer.status.failure

            result = FlushResult(
                clean=not sequencer.in_flight and not self._store.is_dirty(),
                status=sequencer.status,
                draft=self._store.snapshot(),
                failure=failure,
            )
            if not result.clean:
                logger.warning("Closing with unsaved changes (%s)", failure.value if failure else "dirty")

        sequencer.shutdown()
        self._open = False
        return result
