from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .entity import Entity


class StatusKind(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class FailureKind(str, Enum):
    PERSIST_FAILURE = "persist_failure"
    ATTACHMENT_UPLOAD_FAILURE = "attachment_upload_failure"
    TIMEOUT_ON_CLOSE = "timeout_on_close"


@dataclass(frozen=True, slots=True)
class SaveStatus:
    kind: StatusKind = StatusKind.CLEAN
    saved_at: datetime | None = None
    message: str = ""
    failure: FailureKind | None = None

    @classmethod
    def clean(cls) -> "SaveStatus":
        return cls(kind=StatusKind.CLEAN)

    @classmethod
    def dirty(cls) -> "SaveStatus":
        return cls(kind=StatusKind.DIRTY)

    @classmethod
    def saving(cls) -> "SaveStatus":
        return cls(kind=StatusKind.SAVING)

    @classmethod
    def saved(cls, at: datetime) -> "SaveStatus":
        return cls(kind=StatusKind.SAVED, saved_at=at)

    @classmethod
    def error(cls, message: str, failure: FailureKind = FailureKind.PERSIST_FAILURE) -> "SaveStatus":
        return cls(kind=StatusKind.ERROR, message=message, failure=failure)

    @property
    def is_settled(self) -> bool:
        """True for ``clean`` and ``saved``: draft and baseline are equal."""
        return self.kind in (StatusKind.CLEAN, StatusKind.SAVED)

    def label(self) -> str:
        if self.kind is StatusKind.DIRTY:
            return "Autosave: pending..."
        if self.kind is StatusKind.SAVING:
            return "Autosave..."
        if self.kind is StatusKind.SAVED:
            if self.saved_at is None:
                return "Saved"
            return f"Saved at {self.saved_at.strftime('%H:%M:%S')}"
        if self.kind is StatusKind.ERROR:
            return f"Autosave: error ({self.message})" if self.message else "Autosave: error"
        if self.kind is StatusKind.CLEAN:
            return "Autosave: ✓"
        return self.kind.value


@dataclass(slots=True)
class FlushResult:
    """Outcome of closing an edit session.

    ``draft`` is a copy of the draft at close time, so a caller that decides to
    warn the user still has the unsaved values.
    """

    clean: bool
    status: SaveStatus
    draft: Entity = field(default_factory=dict)
    failure: FailureKind | None = None

    @property
    def timed_out(self) -> bool:
        return self.failure is FailureKind.TIMEOUT_ON_CLOSE
