from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol


@dataclass(frozen=True, slots=True)
class Result:
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> "Result":
        return cls(error=message or "unknown error")

    @property
    def ok(self) -> bool:
        return self.error is None


ResultCallback = Callable[[Result], None]


class PersistBackend(Protocol):
    """Remote store the drafts are written to.

    Both calls report through ``on_result`` exactly once, either before returning
    or later from the event loop. ``persist`` receives only the changed fields and
    must be idempotent for an identical payload.
    """

    def persist(self, entity_id: str, fields: Mapping[str, Any], on_result: ResultCallback) -> None: ...

    def upload_attachment(self, data: bytes, on_result: ResultCallback) -> None: ...
