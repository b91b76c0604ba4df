from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any

Entity = dict[str, Any]


class AttachmentState(str, Enum):
    UNCHANGED = "unchanged"
    REPLACE = "replace"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class Attachment:
    """One attachment slot of a draft.

    Baseline slots are always ``UNCHANGED`` and carry the stored ref (or ``None``
    when the slot is empty). ``REPLACE`` holds the new binary until it is uploaded.
    """

    state: AttachmentState = AttachmentState.UNCHANGED
    ref: str | None = None
    data: bytes | None = None

    @classmethod
    def stored(cls, ref: str | None) -> "Attachment":
        return cls(state=AttachmentState.UNCHANGED, ref=ref)

    @classmethod
    def replace(cls, data: bytes) -> "Attachment":
        return cls(state=AttachmentState.REPLACE, data=bytes(data))

    @classmethod
    def remove(cls) -> "Attachment":
        return cls(state=AttachmentState.REMOVE)

    def __copy__(self) -> "Attachment":
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> "Attachment":
        # Immutable; keeping identity lets a rebase tell two REPLACE slots apart.
        return self

    @property
    def pending_upload(self) -> bool:
        return self.state is AttachmentState.REPLACE

    def same_slot(self, other: object) -> bool:
        # Binary content is never compared, only the tag and the stored ref.
        if not isinstance(other, Attachment):
            return False
        if self.state is not other.state:
            return False
        if self.state is AttachmentState.UNCHANGED:
            return self.ref == other.ref
        if self.state is AttachmentState.REPLACE:
            return self.data is other.data
        return True

    def resolved(self, uploaded_ref: str | None = None) -> "Attachment":
        if self.state is AttachmentState.REPLACE:
            return Attachment.stored(uploaded_ref)
        if self.state is AttachmentState.REMOVE:
            return Attachment.stored(None)
        return self

    def payload_value(self, uploaded_ref: str | None = None) -> str | None:
        if self.state is AttachmentState.REPLACE:
            return uploaded_ref
        if self.state is AttachmentState.REMOVE:
            return None
        return self.ref


def values_equal(left: Any, right: Any) -> bool:
    if isinstance(left, Attachment) or isinstance(right, Attachment):
        if isinstance(left, Attachment):
            return left.same_slot(right)
        return False
    return left == right


def entities_equal(left: Entity, right: Entity) -> bool:
    if left.keys() != right.keys():
        return False
    return all(values_equal(left[key], right[key]) for key in left)


def copy_entity(entity: Entity) -> Entity:
    return copy.deepcopy(dict(entity))


def changed_fields(draft: Entity, baseline: Entity) -> Entity:
    """Fields of ``draft`` that differ from ``baseline``, deep-copied."""
    changes: Entity = {}
    for key, value in draft.items():
        if key in baseline and values_equal(value, baseline[key]):
            continue
        changes[key] = copy.deepcopy(value)
    return changes
