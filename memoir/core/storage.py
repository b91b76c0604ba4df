from __future__ import annotations

from datetime import date, datetime
from hashlib import sha1
import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

from .backend import Result, ResultCallback

logger = logging.getLogger(__name__)

ATTACHMENTS_DIRNAME = "attachments"
CHAPTERS_DIRNAME = "chapters"


def chapter_file_name(entity_id: str) -> str:
    if not (entity_id or "").strip():
        raise ValueError("entity_id must be non-empty")
    # Hashing keeps distinct ids in distinct files whatever characters they use.
    return f"{sha1(entity_id.encode('utf-8')).hexdigest()}.json"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_name = f".{path.name}.{os.getpid()}.{uuid4().hex}.tmp"
    temp_path = path.parent / temp_name

    try:
        with temp_path.open("wb") as file:
            file.write(data)
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_path, path)
    finally:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write(path, text.replace("\r\n", "\n").encode("utf-8"))


class LocalChapterStore:
    """Persist backend writing one JSON document per chapter under ``root``.

    Results are reported synchronously. Attachment refs are paths relative to
    ``root``. A chapter file that exists but cannot be read is never overwritten.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def chapter_path(self, entity_id: str) -> Path:
        return self.root / CHAPTERS_DIRNAME / chapter_file_name(entity_id)

    def load(self, entity_id: str) -> dict[str, Any] | None:
        path = self.chapter_path(entity_id)
        if not path.exists():
            return None
        try:
            return self._read_record(path)
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable chapter file %s: %s", path, exc)
            return None

    def list_chapter_ids(self) -> list[str]:
        directory = self.root / CHAPTERS_DIRNAME
        if not directory.is_dir():
            return []
        ids: list[str] = []
        for path in directory.glob("*.json"):
            if not path.is_file():
                continue
            try:
                record = self._read_record(path)
            except (OSError, ValueError):
                continue
            if isinstance(record.get("id"), str):
                ids.append(record["id"])
        return sorted(ids)

    def persist(self, entity_id: str, fields: Mapping[str, Any], on_result: ResultCallback) -> None:
        try:
            path = self.chapter_path(entity_id)
        except ValueError as exc:
            on_result(Result.failure(str(exc)))
            return

        record: dict[str, Any] = {"id": entity_id}
        if path.exists():
            try:
                record = self._read_record(path)
            except (OSError, ValueError) as exc:
                logger.warning("Refusing to overwrite unreadable chapter %s: %s", entity_id, exc)
                on_result(Result.failure(f"stored chapter is unreadable: {exc}"))
                return

        previous_refs = {key: record.get(key) for key in fields if self._is_attachment_ref(record.get(key))}
        record.update(fields)
        record["id"] = entity_id
        record["updated_at"] = datetime.now().isoformat(timespec="seconds")

        try:
            text = json.dumps(record, ensure_ascii=False, indent=2, default=_json_default)
            atomic_write_text(path, text)
        except (OSError, TypeError) as exc:
            logger.warning("Failed to write chapter %s: %s", entity_id, exc)
            on_result(Result.failure(str(exc)))
            return

        for key, old_ref in previous_refs.items():
            if record.get(key) != old_ref:
                self._release_attachment(old_ref)
        on_result(Result.success(record))

    def upload_attachment(self, data: bytes, on_result: ResultCallback) -> None:
        ref = f"{ATTACHMENTS_DIRNAME}/{uuid4().hex}.bin"
        try:
            atomic_write(self.root / ref, data)
        except OSError as exc:
            logger.warning("Failed to store attachment: %s", exc)
            on_result(Result.failure(str(exc)))
            return
        on_result(Result.success(ref))

    def read_attachment(self, ref: str) -> bytes:
        return (self.root / ref).read_bytes()

    def _read_record(self, path: Path) -> dict[str, Any]:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("chapter file does not hold an object")
        return data

    def _is_attachment_ref(self, value: Any) -> bool:
        return isinstance(value, str) and value.startswith(f"{ATTACHMENTS_DIRNAME}/")

    def _release_attachment(self, ref: str) -> None:
        try:
            (self.root / ref).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove attachment %s: %s", ref, exc)
