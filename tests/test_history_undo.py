from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from conftest import make_manifest_zip, make_store, sample_full_manifest, sample_full_media
from wordbundle.core.model import ImportResult, UndoPayload
from wordbundle.reconcile.history import (
    ImportHistory,
    UndoRecorder,
    undo_history_entry,
    undo_import_entry,
)
from wordbundle.reconcile.pipeline import process_import_archive
from wordbundle.store.base import (
    ITEM_ATTACHMENT,
    ITEM_TYPES,
    ITEM_WORD,
    ITEM_WORD_IMAGE,
    TAX_CATEGORY,
    TAX_WORDSET,
    TAXONOMIES,
)
from wordbundle.store.kv import MemoryKeyValueStore


def _snapshot(store) -> dict[str, int]:
    counts = {t: len(store.list_items(t)) for t in ITEM_TYPES}
    counts.update({t: len(store.list_terms(t)) for t in TAXONOMIES})
    counts["files"] = sum(1 for p in store.media_root.rglob("*") if p.is_file())
    return counts


def test_recorder_ignores_invalid_values_and_dedupes():
    rec = UndoRecorder()
    for v in (3, "3", 0, -1, "x", None, True, 4):
        rec.track_id("word_post_ids", v)
    rec.track_path("audio_paths", "uploads/a.mp3")
    rec.track_path("audio_paths", "  ")
    rec.track_path("audio_paths", "uploads/a.mp3")

    assert rec.payload.buckets["word_post_ids"] == [3, 4]
    assert rec.payload.buckets["audio_paths"] == ["uploads/a.mp3"]
    with pytest.raises(ValueError):
        rec.track_id("audio_paths", 1)
    with pytest.raises(ValueError):
        rec.track_path("word_post_ids", "x")


def test_history_is_newest_first_and_trimmed():
    history = ImportHistory(MemoryKeyValueStore(), limit=2)
    ids = []
    for i in range(3):
        result = ImportResult(ok=True, message=f"run {i}")
        ids.append(history.record(result, actor="alice", now=datetime(2026, 10, 19, 10, i)).id)
        assert result.history_id == ids[-1]

    entries = history.entries()
    assert [e.id for e in entries] == [ids[2], ids[1]]
    assert entries[0].message == "run 2"
    assert entries[0].actor == "alice"
    assert history.get(ids[0]) is None


def test_recent_keeps_today_and_yesterday():
    history = ImportHistory(MemoryKeyValueStore())
    for when in (datetime(2026, 10, 16, 9), datetime(2026, 10, 18, 0, 30), datetime(2026, 10, 19, 8)):
        history.record(ImportResult(ok=True), now=when)

    recent = history.recent(now=datetime(2026, 10, 19, 12))

    assert len(recent) == 2
    assert len(history.entries()) == 3


def test_undo_second_import_restores_first_import_counts(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    history = ImportHistory(MemoryKeyValueStore())
    zp = make_manifest_zip(tmp_path / "bundle.zip", sample_full_manifest(), sample_full_media())

    first = process_import_archive(zp, store, history=history)
    after_first = _snapshot(store)
    second = process_import_archive(zp, store, history=history)
    assert _snapshot(store) != after_first

    undo = undo_history_entry(store, history, second.history_id)

    assert undo.ok, undo.errors
    assert undo.message == "Import undone."
    assert undo.stats["attachments_deleted"] == 2
    assert undo.stats["audio_files_deleted"] == 2
    assert undo.stats["words_deleted"] == 0
    assert _snapshot(store) == after_first
    assert history.get(second.history_id).undone_at > 0
    assert history.get(first.history_id).undone_at == 0

    again = undo_history_entry(store, history, second.history_id)
    assert not again.ok
    assert again.message == "Undo failed: this import was already undone."
    missing = undo_history_entry(store, history, "nope")
    assert missing.message == "Undo failed: import history entry not found."


def test_undo_first_import_removes_created_content(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    zp = make_manifest_zip(tmp_path / "bundle.zip", sample_full_manifest(), sample_full_media())
    result = process_import_archive(zp, store)

    undo = undo_import_entry(store, result.undo)

    assert undo.ok, undo.errors
    assert undo.stats["words_deleted"] == 2
    assert undo.stats["word_audio_deleted"] == 2
    assert undo.stats["word_images_deleted"] == 2
    assert undo.stats["categories_deleted"] == 2
    assert undo.stats["wordsets_deleted"] == 1
    assert store.list_items(ITEM_WORD) == []
    assert store.list_items(ITEM_ATTACHMENT) == []
    assert store.list_terms(TAX_CATEGORY) == []
    assert [p for p in store.media_root.rglob("*") if p.is_file()] == []


def test_undo_skips_mismatched_and_missing_entities(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    wordset = store.create_term(TAX_WORDSET, slug="keep", name="Keep")
    image = store.create_item(ITEM_WORD_IMAGE, slug="w", title="W")
    payload = UndoPayload.from_dict(
        {
            "word_post_ids": [image.id, 999],
            "category_term_ids": [wordset.id],
            "audio_paths": ["../../outside.mp3", "uploads/gone.mp3"],
        }
    )

    undo = undo_import_entry(store, payload)

    assert not undo.ok
    assert undo.message == "Undo finished with some errors."
    assert len(undo.errors) == 3
    assert len(undo.warnings) == 2
    assert store.get_term(wordset.id) is not None
    assert store.get_item(image.id) is not None
