"""Undo tracking, capped import history, and undo apply.

`UndoRecorder` accumulates what an import created (ids per bucket plus stored
audio paths). `ImportHistory` keeps the most recent imports in a key-value
store, newest first and trimmed to a fixed length. `undo_import_entry()`
deletes exactly what an entry recorded, in dependency order:

    audio items, words, word images, attachments, wordsets, categories,
    then audio files

An entity whose current type no longer matches its bucket, and any audio path
outside managed storage, is skipped and reported rather than deleted.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from wordbundle.core.model import UNDO_BUCKETS, UNDO_PATH_BUCKETS, ImportResult, UndoPayload
from wordbundle.store.base import (
    ITEM_ATTACHMENT,
    ITEM_WORD,
    ITEM_WORD_AUDIO,
    ITEM_WORD_IMAGE,
    TAX_CATEGORY,
    TAX_WORDSET,
    ContentStore,
)
from wordbundle.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "import_history"

# bucket -> (entity kind, item type or taxonomy, stats key, label)
_ITEM_BUCKETS: tuple[tuple[str, str, str, str], ...] = (
    ("word_audio_post_ids", ITEM_WORD_AUDIO, "word_audio_deleted", "audio item"),
    ("word_post_ids", ITEM_WORD, "words_deleted", "word"),
    ("word_image_post_ids", ITEM_WORD_IMAGE, "word_images_deleted", "word image"),
    ("attachment_ids", ITEM_ATTACHMENT, "attachments_deleted", "attachment"),
)
_TERM_BUCKETS: tuple[tuple[str, str, str, str], ...] = (
    ("wordset_term_ids", TAX_WORDSET, "wordsets_deleted", "word set"),
    ("category_term_ids", TAX_CATEGORY, "categories_deleted", "category"),
)

UNDO_STAT_KEYS: tuple[str, ...] = (
    "word_audio_deleted",
    "words_deleted",
    "word_images_deleted",
    "attachments_deleted",
    "wordsets_deleted",
    "categories_deleted",
    "audio_files_deleted",
)


class UndoRecorder:
    def __init__(self, payload: UndoPayload | None = None):
        self.payload = payload if payload is not None else UndoPayload()

    def track_id(self, bucket: str, value: Any) -> None:
        if bucket not in UNDO_BUCKETS or bucket in UNDO_PATH_BUCKETS:
            raise ValueError(f"unknown id bucket '{bucket}'")
        if isinstance(value, bool):
            return
        try:
            n = int(value)
        except (TypeError, ValueError):
            return
        if n <= 0:
            return
        ids = self.payload.buckets.setdefault(bucket, [])
        if n not in ids:
            ids.append(n)

    def track_path(self, bucket: str, path: Any) -> None:
        if bucket not in UNDO_PATH_BUCKETS:
            raise ValueError(f"unknown path bucket '{bucket}'")
        p = str(path or "").strip()
        if not p:
            return
        paths = self.payload.buckets.setdefault(bucket, [])
        if p not in paths:
            paths.append(p)


@dataclass
class UndoResult:
    ok: bool = False
    message: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=lambda: {k: 0 for k in UNDO_STAT_KEYS})

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "message": self.message,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "stats": dict(self.stats),
        }


@dataclass
class HistoryEntry:
    id: str
    finished_at: int
    actor: str = ""
    ok: bool = False
    message: str = ""
    stats: dict[str, int] = field(default_factory=dict)
    undo: UndoPayload = field(default_factory=UndoPayload)
    undone_at: int = 0
    undo_result: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "finished_at": self.finished_at,
            "actor": self.actor,
            "ok": self.ok,
            "message": self.message,
            "stats": dict(self.stats),
            "undo": self.undo.as_dict(),
            "undone_at": self.undone_at,
            "undo_result": self.undo_result,
        }

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "HistoryEntry":
        stats = obj.get("stats") if isinstance(obj.get("stats"), dict) else {}
        return cls(
            id=str(obj.get("id") or ""),
            finished_at=int(obj.get("finished_at") or 0),
            actor=str(obj.get("actor") or ""),
            ok=bool(obj.get("ok", False)),
            message=str(obj.get("message") or ""),
            stats={str(k): int(v) for k, v in stats.items()},
            undo=UndoPayload.from_dict(obj.get("undo")),
            undone_at=int(obj.get("undone_at") or 0),
            undo_result=obj.get("undo_result") if isinstance(obj.get("undo_result"), dict) else None,
        )


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ImportHistory:
    def __init__(self, kv: KeyValueStore, *, limit: int = 20, key: str = HISTORY_KEY):
        self.kv = kv
        self.limit = max(1, int(limit))
        self.key = key

    def _read(self) -> list[dict[str, Any]]:
        raw = self.kv.get(self.key, [])
        return [e for e in raw if isinstance(e, dict) and e.get("id")] if isinstance(raw, list) else []

    def _write(self, raw: list[dict[str, Any]]) -> None:
        self.kv.set(self.key, raw[: self.limit])

    def entries(self) -> list[HistoryEntry]:
        return [HistoryEntry.from_dict(e) for e in self._read()]

    def get(self, entry_id: str) -> HistoryEntry | None:
        for e in self._read():
            if e.get("id") == entry_id:
                return HistoryEntry.from_dict(e)
        return None

    def record(self, result: ImportResult, *, actor: str = "", now: datetime | None = None) -> HistoryEntry:
        now = now or _local_now()
        entry = HistoryEntry(
            id=f"{now.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(4)}",
            finished_at=int(now.timestamp()),
            actor=actor,
            ok=result.ok,
            message=result.message,
            stats=dict(result.stats),
            undo=UndoPayload.from_dict(result.undo.as_dict()),
        )
        self._write([entry.as_dict(), *self._read()])
        result.history_id = entry.id
        return entry

    def recent(self, now: datetime | None = None) -> list[HistoryEntry]:
        """Entries finished today or yesterday (local calendar days of `now`)."""
        now = now or _local_now()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=1)
        cutoff = int(start.timestamp())
        return [e for e in self.entries() if e.finished_at >= cutoff]

    def mark_undone(self, entry_id: str, *, undo_result: UndoResult, now: datetime | None = None) -> HistoryEntry:
        now = now or _local_now()
        raw = self._read()
        for i, e in enumerate(raw):
            if e.get("id") == entry_id:
                entry = HistoryEntry.from_dict(e)
                entry.undone_at = int(now.timestamp())
                entry.undo_result = undo_result.as_dict()
                raw[i] = entry.as_dict()
                self._write(raw)
                return entry
        raise KeyError(entry_id)


def undo_import_entry(store: ContentStore, undo: UndoPayload) -> UndoResult:
    """Delete the entities and files recorded in `undo`."""
    result = UndoResult()
    buckets = undo.as_dict()

    for bucket, item_type, stat, label in _ITEM_BUCKETS:
        for item_id in buckets.get(bucket, []):
            item = store.get_item(item_id)
            if item is None:
                result.warnings.append(f"Skipped {label} {item_id}: it no longer exists.")
                continue
            if item.item_type != item_type:
                result.errors.append(f"Skipped {label} {item_id}: it is now a {item.item_type} item.")
                continue
            if store.delete_item(item_id):
                result.stats[stat] += 1

    for bucket, taxonomy, stat, label in _TERM_BUCKETS:
        for term_id in buckets.get(bucket, []):
            term = store.get_term(term_id)
            if term is None:
                result.warnings.append(f"Skipped {label} {term_id}: it no longer exists.")
                continue
            if term.taxonomy != taxonomy:
                result.errors.append(f"Skipped {label} {term_id}: it is now a {term.taxonomy} term.")
                continue
            if store.delete_term(term_id):
                result.stats[stat] += 1

    for stored in buckets.get("audio_paths", []):
        target = store.resolve_media_path(stored)
        if target is None:
            result.errors.append(f"Skipped audio file '{stored}': it is outside managed storage.")
            continue
        if not target.is_file():
            result.warnings.append(f"Skipped audio file '{stored}': it no longer exists.")
            continue
        if store.delete_media_file(stored):
            result.stats["audio_files_deleted"] += 1

    result.ok = not result.errors
    result.message = "Import undone." if result.ok else "Undo finished with some errors."
    logger.info("undo: %s", ", ".join(f"{k}={v}" for k, v in result.stats.items() if v) or "nothing deleted")
    return result


def undo_history_entry(
    store: ContentStore,
    history: ImportHistory,
    entry_id: str,
    *,
    now: datetime | None = None,
) -> UndoResult:
    """Undo one history entry; refuses unknown or already-undone entries."""
    entry = history.get(entry_id)
    if entry is None:
        return UndoResult(ok=False, message="Undo failed: import history entry not found.")
    if entry.undone_at:
        return UndoResult(ok=False, message="Undo failed: this import was already undone.")
    result = undo_import_entry(store, entry.undo)
    history.mark_undone(entry_id, undo_result=result, now=now)
    return result


__all__ = [
    "HistoryEntry",
    "ImportHistory",
    "UndoRecorder",
    "UndoResult",
    "undo_history_entry",
    "undo_import_entry",
]
