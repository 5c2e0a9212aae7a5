"""Applying bundles to a content store, with undo history."""

from __future__ import annotations

from .history import (
    HistoryEntry,
    ImportHistory,
    UndoRecorder,
    UndoResult,
    undo_history_entry,
    undo_import_entry,
)
from .meta import MetaPolicy
from .pipeline import build_preview_data, build_preview_default_options, process_import_archive, read_import_preview
from .reconciler import ImportOptions, Reconciler

__all__ = [
    "HistoryEntry",
    "ImportHistory",
    "ImportOptions",
    "MetaPolicy",
    "Reconciler",
    "UndoRecorder",
    "UndoResult",
    "build_preview_data",
    "build_preview_default_options",
    "process_import_archive",
    "read_import_preview",
    "undo_history_entry",
    "undo_import_entry",
]
