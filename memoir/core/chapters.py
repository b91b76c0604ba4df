from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from ..settings import AppSettings
from .autosave import DraftSyncController
from .backend import PersistBackend
from .entity import Attachment, Entity
from .scheduler import Runtime

CHAPTER_FIELDS = ("title", "description", "start_date", "end_date", "location", "header_image")

_RECORD_ALIASES = {
    "startDate": "start_date",
    "endDate": "end_date",
    "headerImageUrl": "header_image",
    "header_image_url": "header_image",
}


def format_date_for_input(value: Any) -> str:
    """Normalize a stored date to ``YYYY-MM-DD``; anything unparseable becomes ``""``."""
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return ""

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return ""


@dataclass(slots=True)
class Chapter:
    id: str
    title: str
    description: str = ""
    start_date: str = ""
    end_date: str = ""
    location: str = ""
    header_image: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Chapter":
        data = {_RECORD_ALIASES.get(key, key): value for key, value in record.items()}
        chapter_id = str(data.get("id") or "").strip()
        if not chapter_id:
            raise ValueError("chapter record has no id")
        return cls(
            id=chapter_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            start_date=format_date_for_input(data.get("start_date")),
            end_date=format_date_for_input(data.get("end_date")),
            location=str(data.get("location") or ""),
            header_image=data.get("header_image") or None,
        )

    def to_entity(self) -> Entity:
        return {
            "title": self.title,
            "description": self.description,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "location": self.location,
            "header_image": Attachment.stored(self.header_image),
        }


def open_chapter_editor(
    chapter: Chapter,
    backend: PersistBackend,
    runtime: Runtime,
    settings: AppSettings | None = None,
) -> DraftSyncController:
    return DraftSyncController(chapter.id, chapter.to_entity(), backend, runtime, settings=settings)
