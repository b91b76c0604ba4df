from __future__ import annotations

import copy
from typing import Any

from .entity import Entity, changed_fields, copy_entity, entities_equal, values_equal


class DraftStore:
    """Editable draft of one entity next to its last confirmed baseline."""

    def __init__(self, initial: Entity | None = None) -> None:
        self._baseline: Entity = {}
        self._draft: Entity = {}
        self._dirty = False
        self.reset(initial or {})

    @property
    def baseline(self) -> Entity:
        return copy_entity(self._baseline)

    def reset(self, entity: Entity) -> None:
        self._baseline = copy_entity(entity)
        self._draft = copy_entity(entity)
        self._dirty = False

    def edit(self, field: str, value: Any) -> None:
        self._draft[field] = value
        self._recompute()

    def seed(self, field: str, value: Any) -> None:
        """Apply a programmatic value to both draft and baseline."""
        self._draft[field] = value
        self._baseline[field] = copy.deepcopy(value)
        self._recompute()

    def is_dirty(self) -> bool:
        return self._dirty

    def snapshot(self) -> Entity:
        return copy_entity(self._draft)

    def changed_fields(self, snapshot: Entity | None = None) -> Entity:
        return changed_fields(self._draft if snapshot is None else snapshot, self._baseline)

    def commit(self, new_baseline: Entity, captured: Entity | None = None) -> None:
        """Replace the baseline after a confirmed persist.

        With ``captured`` (the snapshot that was persisted), fields edited after the
        capture stay in the draft; the rest follow the new baseline.
        """
        self._baseline = copy_entity(new_baseline)
        if captured is None:
            self._draft = copy_entity(self._baseline)
        else:
            for key, value in self._baseline.items():
                if key not in self._draft:
                    self._draft[key] = copy.deepcopy(value)
                elif key in captured and values_equal(self._draft[key], captured[key]):
                    self._draft[key] = copy.deepcopy(value)
        self._recompute()

    def _recompute(self) -> None:
        self._dirty = not entities_equal(self._draft, self._baseline)
