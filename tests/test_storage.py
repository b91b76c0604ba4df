from pathlib import Path
from typing import Any, Callable, Mapping

import pytest

from memoir.core.autosave import DraftSyncController
from memoir.core.backend import Result
from memoir.core.chapters import Chapter
from memoir.core.status import StatusKind
from memoir.core.storage import LocalChapterStore, atomic_write, atomic_write_text


def _collect() -> tuple[list[Result], Callable[[Result], None]]:
    results: list[Result] = []
    return results, results.append


def test_atomic_write_text_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "chapter.json"
    atomic_write_text(target, "{}")
    atomic_write_text(target, '{"title": "B"}')

    assert target.read_text(encoding="utf-8") == '{"title": "B"}'
    assert [path.name for path in target.parent.iterdir()] == ["chapter.json"]


def test_persist_merges_partial_fields(tmp_path: Path) -> None:
    store = LocalChapterStore(tmp_path)
    results, on_result = _collect()

    store.persist("tz/1", {"title": "A", "location": "Oslo"}, on_result)
    store.persist("tz/1", {"title": "B"}, on_result)

    assert all(result.ok for result in results)
    record = store.load("tz/1")
    assert record["title"] == "B"
    assert record["location"] == "Oslo"
    assert store.list_chapter_ids() == ["tz/1"]


def test_persist_rejects_empty_id(tmp_path: Path) -> None:
    store = LocalChapterStore(tmp_path)
    results, on_result = _collect()

    store.persist("  ", {"title": "A"}, on_result)

    assert len(results) == 1
    assert results[0].ok is False


def test_load_missing_or_corrupt_chapter_returns_none(tmp_path: Path) -> None:
    store = LocalChapterStore(tmp_path)
    assert store.load("missing") is None

    store.chapter_path("broken").parent.mkdir(parents=True)
    store.chapter_path("broken").write_text("{not json", encoding="utf-8")
    assert store.load("broken") is None


def test_replaced_attachment_releases_previous_file(tmp_path: Path) -> None:
    store = LocalChapterStore(tmp_path)
    results, on_result = _collect()

    store.upload_attachment(b"first", on_result)
    first_ref = results[-1].value
    store.persist("c1", {"header_image": first_ref}, on_result)
    store.upload_attachment(b"second", on_result)
    second_ref = results[-1].value
    store.persist("c1", {"header_image": second_ref}, on_result)

    assert not (tmp_path / first_ref).exists()
    assert store.read_attachment(second_ref) == b"second"


def test_controller_round_trip_through_local_store(tmp_path: Path, runtime, settings) -> None:
    store = LocalChapterStore(tmp_path)
    chapter = Chapter(id="c1", title="Before")
    controller = DraftSyncController(chapter.id, chapter.to_entity(), store, runtime, settings=settings)
    runtime.advance(settings.suppression_ms)

    controller.edit("title", "After")
    controller.replace_attachment("header_image", b"\xff\xd8jpeg")
    result = controller.request_close()

    assert result.clean is True
    assert controller.get_status().kind is StatusKind.SAVED
    record = store.load("c1")
    assert record["title"] == "After"
    assert store.read_attachment(record["header_image"]) == b"\xff\xd8jpeg"


def test_atomic_write_stores_binary_payload(tmp_path: Path) -> None:
    target = tmp_path / "blobs" / "a.bin"
    atomic_write(target, b"\x00\xff")
    assert target.read_bytes() == b"\x00\xff"
    assert [path.name for path in target.parent.iterdir()] == ["a.bin"]


def test_ids_differing_only_in_punctuation_use_separate_files(tmp_path: Path) -> None:
    store = LocalChapterStore(tmp_path)
    results, on_result = _collect()

    store.persist("a/b", {"title": "Chapter one"}, on_result)
    store.persist("a_b", {"title": "Chapter two"}, on_result)

    assert all(result.ok for result in results)
    assert store.chapter_path("a/b") != store.chapter_path("a_b")
    assert store.load("a/b")["title"] == "Chapter one"
    assert store.load("a_b")["title"] == "Chapter two"
    assert store.list_chapter_ids() == ["a/b", "a_b"]


def test_persist_refuses_to_overwrite_corrupt_chapter(tmp_path: Path) -> None:
    store = LocalChapterStore(tmp_path)
    path = store.chapter_path("c1")
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")
    results, on_result = _collect()

    store.persist("c1", {"title": "B"}, on_result)

    assert len(results) == 1
    assert results[0].ok is False
    assert path.read_text(encoding="utf-8") == "{not json"


def test_persist_keeps_fields_when_chapter_cannot_be_read(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = LocalChapterStore(tmp_path)
    results, on_result = _collect()
    store.persist("c1", {"title": "A", "location": "Oslo", "description": "Summer"}, on_result)

    def unreadable(self: Path, *args: Any, **kwargs: Any) -> str:
        raise OSError("permission denied")

    with monkeypatch.context() as patch:
        patch.setattr(Path, "read_text", unreadable)
        store.persist("c1", {"title": "B"}, on_result)

    assert results[-1].ok is False
    record = store.load("c1")
    assert record["title"] == "A"
    assert record["location"] == "Oslo"
    assert record["description"] == "Summer"


class FlakyChapterStore(LocalChapterStore):
    def __init__(self, root: Path, failures: int) -> None:
        super().__init__(root)
        self.failures = failures

    def persist(self, entity_id: str, fields: Mapping[str, Any], on_result: Callable[[Result], None]) -> None:
        if self.failures > 0:
            self.failures -= 1
            on_result(Result.failure("disk busy"))
            return
        super().persist(entity_id, fields, on_result)


def test_retried_save_reuses_uploaded_attachment(tmp_path: Path, runtime, settings) -> None:
    store = FlakyChapterStore(tmp_path, failures=2)
    chapter = Chapter(id="c1", title="Before")
    controller = DraftSyncController(chapter.id, chapter.to_entity(), store, runtime, settings=settings)
    runtime.advance(settings.suppression_ms)

    controller.replace_attachment("header_image", b"png")
    controller.request_manual_save()
    controller.request_manual_save()
    assert controller.get_status().kind is StatusKind.ERROR
    controller.request_manual_save()

    assert controller.get_status().kind is StatusKind.SAVED
    files = list((tmp_path / "attachments").glob("*.bin"))
    assert len(files) == 1
    assert store.read_attachment(store.load("c1")["header_image"]) == b"png"
