"""wordbundle core: data model, configuration, errors and text primitives.

This package is intentionally standalone and must not import
bundle/reconcile/export/cli to avoid circular dependencies.
"""

from __future__ import annotations

from .config import BundleConfig, config_from_mapping, read_config_json
from .errors import (
    ArchiveOpenError,
    ArchiveSafetyError,
    BundleError,
    ConfigError,
    ExportLimitError,
    PayloadError,
    StoreError,
)
from .model import (
    AudioRecord,
    BundlePayload,
    CategoryRecord,
    ImportResult,
    MediaEstimate,
    MediaRef,
    QuizMode,
    TabularSummary,
    UndoPayload,
    WordImageRecord,
    WordRecord,
    WordsetMode,
    WordsetRecord,
)
from .text import normalize_for_compare, sanitize_status, slugify

__all__ = [
    "ArchiveOpenError",
    "ArchiveSafetyError",
    "AudioRecord",
    "BundleConfig",
    "BundleError",
    "BundlePayload",
    "CategoryRecord",
    "ConfigError",
    "ExportLimitError",
    "ImportResult",
    "MediaEstimate",
    "MediaRef",
    "PayloadError",
    "QuizMode",
    "StoreError",
    "TabularSummary",
    "UndoPayload",
    "WordImageRecord",
    "WordRecord",
    "WordsetMode",
    "WordsetRecord",
    "config_from_mapping",
    "normalize_for_compare",
    "read_config_json",
    "sanitize_status",
    "slugify",
]
