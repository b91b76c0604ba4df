from __future__ import annotations

import logging
from typing import Any

from ..logging_setup import log_context
from ..settings import AppSettings
from .backend import PersistBackend
from .draft_store import DraftStore
from .entity import Attachment, Entity
from .lifecycle import LifecycleGuard
from .scheduler import Runtime
from .sequencer import SaveSequencer
from .status import FlushResult, SaveStatus

logger = logging.getLogger(__name__)


class DraftSyncController:
    """Keeps one entity's in-progress edit synchronized with the backend.

    The form layer calls ``edit`` on every change, reads ``get_status`` to render
    feedback, and calls ``request_manual_save`` / ``request_close`` for the
    explicit actions. Failures never raise out of the controller; they show up in
    the status.
    """

    def __init__(
        self,
        entity_id: str,
        initial: Entity,
        backend: PersistBackend,
        runtime: Runtime,
        settings: AppSettings | None = None,
    ) -> None:
        entity_id = (entity_id or "").strip()
        if not entity_id:
            raise ValueError("entity_id must be non-empty")
        self.settings = settings or AppSettings()
        self.entity_id = entity_id
        self._store = DraftStore()
        self._sequencer = SaveSequencer(
            entity_id,
            self._store,
            backend,
            runtime,
            debounce_ms=self.settings.autosave_debounce_ms,
            saved_hold_ms=self.settings.saved_hold_ms,
        )
        self._guard = LifecycleGuard(self._store, self._sequencer, runtime, suppression_ms=self.settings.suppression_ms)
        self._guard.begin_session(initial)

    @property
    def is_open(self) -> bool:
        return self._guard.is_open

    @property
    def debounce_pending(self) -> bool:
        return self._sequencer.debounce.pending

    @property
    def save_in_flight(self) -> bool:
        return self._sequencer.in_flight

    def edit(self, field: str, value: Any) -> None:
        if not self._guard.is_open:
            with log_context(entity_id=self.entity_id):
                logger.warning("Edit of %r after the session closed was ignored", field)
            return
        if self._guard.is_suppressed():
            self._store.seed(field, value)
            return
        self._store.edit(field, value)
        self._sequencer.on_edit()

    def replace_attachment(self, field: str, data: bytes) -> None:
        self.edit(field, Attachment.replace(data))

    def remove_attachment(self, field: str) -> None:
        self.edit(field, Attachment.remove())

    def get_status(self) -> SaveStatus:
        return self._sequencer.status

    def is_dirty(self) -> bool:
        return self._store.is_dirty()

    def snapshot(self) -> Entity:
        return self._store.snapshot()

    def baseline(self) -> Entity:
        return self._store.baseline

    def request_manual_save(self) -> None:
        if not self._guard.is_open:
            return
        self._sequencer.trigger_manual_save()

    def request_close(self, timeout_ms: int | None = None, flush_timeout_ms: int | None = None) -> FlushResult:
        if not self._guard.is_open:
            return FlushResult(
                clean=not self._store.is_dirty(),
                status=self._sequencer.status,
                draft=self._store.snapshot(),
            )
        if timeout_ms is None:
            timeout_ms = self.settings.close_timeout_ms
            if flush_timeout_ms is None:
                flush_timeout_ms = self.settings.flush_timeout_ms
        # An explicit timeout without a flush bound applies to both waits.
        return self._guard.end_session(timeout_ms, flush_timeout_ms)
