from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from ..logging_setup import log_context
from .backend import PersistBackend, Result
from .draft_store import DraftStore
from .entity import Attachment, Entity
from .scheduler import DebounceScheduler, Runtime
from .status import FailureKind, SaveStatus, StatusKind

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SaveAttempt:
    seq: int
    reason: str
    snapshot: Entity
    changes: Entity
    uploaded: dict[str, str | None] = field(default_factory=dict)

    def pending_uploads(self) -> list[str]:
        return [
            name
            for name, value in self.changes.items()
            if isinstance(value, Attachment) and value.pending_upload and name not in self.uploaded
        ]

    def payload(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for name, value in self.changes.items():
            if isinstance(value, Attachment):
                fields[name] = value.payload_value(self.uploaded.get(name))
            else:
                fields[name] = value
        return fields

    def confirmed_snapshot(self) -> Entity:
        confirmed = dict(self.snapshot)
        for name, value in self.snapshot.items():
            if isinstance(value, Attachment):
                confirmed[name] = value.resolved(self.uploaded.get(name))
        return confirmed


class SaveSequencer:
    """Runs persist attempts for one draft, strictly one at a time.

    Owns the save status and the debounce timer. Automatic triggers come from the
    timer, manual ones from the form; a manual request made while an attempt is
    outstanding is queued and runs as soon as that attempt resolves.
    """

    def __init__(
        self,
        entity_id: str,
        store: DraftStore,
        backend: PersistBackend,
        runtime: Runtime,
        debounce_ms: int = 2000,
        saved_hold_ms: int = 3000,
    ) -> None:
        self.entity_id = entity_id
        self._store = store
        self._backend = backend
        self._runtime = runtime
        self._saved_hold_ms = saved_hold_ms
        self._saved_hold = runtime.create_timer()
        self.debounce = DebounceScheduler(runtime.create_timer(), debounce_ms, self.trigger_auto_save)

        self._status = SaveStatus.clean()
        self._in_flight: SaveAttempt | None = None
        self._manual_queued = False
        self._last_seq = 0
        # Refs uploaded for a REPLACE slot whose persist has not succeeded yet.
        self._upload_cache: dict[str, tuple[Attachment, str | None]] = {}
        self._auto_enabled = True
        self._accepting = True

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def accepting(self) -> bool:
        return self._accepting

    def on_edit(self) -> None:
        if not self._accepting or self._in_flight is not None:
            return
        if self._store.is_dirty():
            self._set_status(SaveStatus.dirty())
            if self._auto_enabled:
                self.debounce.notify_edit()
            return
        self.debounce.cancel()
        if self._status.kind in (StatusKind.DIRTY, StatusKind.ERROR):
            self._set_status(SaveStatus.clean())

    def trigger_auto_save(self) -> None:
        if not self._accepting or not self._auto_enabled:
            return
        if self._in_flight is not None or self._status.kind is not StatusKind.DIRTY:
            return
        self._start("auto")

    def trigger_manual_save(self) -> None:
        self.debounce.cancel()
        if not self._accepting:
            return
        if self._in_flight is not None:
            self._manual_queued = True
            return
        if not self._store.is_dirty():
            if self._status.kind in (StatusKind.DIRTY, StatusKind.ERROR):
                self._set_status(SaveStatus.clean())
            return
        self._start("manual")

    def suspend_auto(self) -> None:
        """Stop automatic saves; manual saves keep working."""
        self._auto_enabled = False
        self.debounce.cancel()

    def shutdown(self) -> None:
        """Stop everything. Results still outstanding are discarded when they arrive."""
        self._accepting = False
        self._auto_enabled = False
        self._manual_queued = False
        self.debounce.cancel()
        self._saved_hold.cancel()

    def _start(self, reason: str) -> None:
        self._last_seq += 1
        snapshot = self._store.snapshot()
        attempt = SaveAttempt(
            seq=self._last_seq,
            reason=reason,
            snapshot=snapshot,
            changes=self._store.changed_fields(snapshot),
        )
        for name, value in attempt.changes.items():
            cached = self._upload_cache.get(name)
            if cached is not None and cached[0] is value:
                attempt.uploaded[name] = cached[1]
        self._in_flight = attempt
        self._set_status(SaveStatus.saving())
        with log_context(entity_id=self.entity_id):
            logger.info("Save #%s started (%s): %s", attempt.seq, reason, sorted(attempt.changes))
        self._continue(attempt)

    def _continue(self, attempt: SaveAttempt) -> None:
        pending = attempt.pending_uploads()
        if pending:
            name = pending[0]
            data = attempt.changes[name].data or b""
            try:
                self._backend.upload_attachment(
                    data, lambda result: self._on_uploaded(attempt, name, result)
                )
            except Exception as exc:
                with log_context(entity_id=self.entity_id):
                    logger.exception("Attachment upload for %r raised", name)
                self._fail(attempt, FailureKind.ATTACHMENT_UPLOAD_FAILURE, str(exc))
            return

        try:
            self._backend.persist(self.entity_id, attempt.payload(), lambda result: self._on_persisted(attempt, result))
        except Exception as exc:
            with log_context(entity_id=self.entity_id):
                logger.exception("Persist raised")
            self._fail(attempt, FailureKind.PERSIST_FAILURE, str(exc))

    def _on_uploaded(self, attempt: SaveAttempt, name: str, result: Result) -> None:
        if not self._is_current(attempt):
            return
        if not result.ok:
            self._fail(attempt, FailureKind.ATTACHMENT_UPLOAD_FAILURE, result.error or "")
            return
        ref = None if result.value is None else str(result.value)
        attempt.uploaded[name] = ref
        self._upload_cache[name] = (attempt.changes[name], ref)
        self._continue(attempt)

    def _on_persisted(self, attempt: SaveAttempt, result: Result) -> None:
        if not self._is_current(attempt):
            return
        if not result.ok:
            self._fail(attempt, FailureKind.PERSIST_FAILURE, result.error or "")
            return

        self._in_flight = None
        for name in attempt.uploaded:
            self._upload_cache.pop(name, None)
        self._store.commit(attempt.confirmed_snapshot(), captured=attempt.snapshot)
        with log_context(entity_id=self.entity_id):
            logger.info("Save #%s confirmed", attempt.seq)

        if self._store.is_dirty():
            self._set_status(SaveStatus.dirty())
        else:
            self._set_status(SaveStatus.saved(self._runtime.wall_clock()))
        self._after_resolution()

    def _fail(self, attempt: SaveAttempt, failure: FailureKind, message: str) -> None:
        if not self._is_current(attempt):
            return
        self._in_flight = None
        with log_context(entity_id=self.entity_id):
            logger.warning("Save #%s failed (%s): %s", attempt.seq, failure.value, message)
        self._set_status(SaveStatus.error(message or failure.value, failure))
        self._after_resolution()

    def _after_resolution(self) -> None:
        if self._manual_queued:
            self._manual_queued = False
            if self._store.is_dirty():
                self._start("queued")
                return
        if self._status.kind is StatusKind.DIRTY and self._auto_enabled:
            self.debounce.notify_edit()

    def _is_current(self, attempt: SaveAttempt) -> bool:
        if self._accepting and attempt is self._in_flight:
            return True
        with log_context(entity_id=self.entity_id):
            logger.info("Discarding stale result for save #%s", attempt.seq)
        return False

    def _set_status(self, status: SaveStatus) -> None:
        self._status = status
        if status.kind is StatusKind.SAVED:
            self._saved_hold.arm(self._saved_hold_ms, self._settle)
        else:
            self._saved_hold.cancel()

    def _settle(self) -> None:
        if self._status.kind is StatusKind.SAVED:
            self._status = SaveStatus.clean()
