"""Core data model for wordbundle.

The native manifest and the tabular intermediate model are both normalized
into the records below at the parse boundary; nothing downstream of the
payload loader sees raw JSON dicts or CSV rows.

Optional list fields use `None` for "absent in the source" and `[]` for
"present but empty". The reconciler relies on that distinction: an absent
`wordsets` list leaves memberships alone, an empty one clears them.

This module must not import bundle/reconcile/export/cli.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# meta values are always lists, mirroring multi-valued store metadata.
Meta = dict[str, list[Any]]

BUNDLE_TYPE_IMAGES = "images"
BUNDLE_TYPE_FULL = "category_full"
MANIFEST_VERSION = 2


class QuizMode(str, Enum):
    """Row format inferred for a tabular file."""

    IMAGE_PROMPT = "image-prompt"
    TEXT_TO_IMAGE = "text-to-image"
    AUDIO_PROMPT = "audio-prompt"
    TEXT_TO_TEXT = "text-to-text"

    @property
    def prompt_type(self) -> str:
        return _PROMPT_OPTION_TYPES[self][0]

    @property
    def option_type(self) -> str:
        return _PROMPT_OPTION_TYPES[self][1]

    @property
    def needs_image(self) -> bool:
        return self in (QuizMode.IMAGE_PROMPT, QuizMode.TEXT_TO_IMAGE)


_PROMPT_OPTION_TYPES: dict[QuizMode, tuple[str, str]] = {
    QuizMode.IMAGE_PROMPT: ("image", "text_title"),
    QuizMode.TEXT_TO_IMAGE: ("text_title", "image"),
    QuizMode.AUDIO_PROMPT: ("audio", "text_title"),
    QuizMode.TEXT_TO_TEXT: ("text_translation", "text_title"),
}


class WordsetMode(str, Enum):
    CREATE_FROM_EXPORT = "create_from_export"
    ASSIGN_EXISTING = "assign_existing"


@dataclass
class MediaRef:
    """Reference to a media file inside an extracted bundle."""

    file: str
    mime_type: str = ""
    title: str = ""
    alt: str = ""


@dataclass
class CategoryRecord:
    slug: str
    name: str
    description: str = ""
    parent_slug: str = ""
    meta: Meta = field(default_factory=dict)
    quiz_mode: QuizMode | None = None


@dataclass
class WordImageRecord:
    slug: str
    title: str
    status: str = "publish"
    meta: Meta = field(default_factory=dict)
    categories: list[str] = field(default_factory=list)
    featured_image: MediaRef | None = None


@dataclass
class WordsetRecord:
    slug: str
    name: str
    description: str = ""
    meta: Meta = field(default_factory=dict)


@dataclass
class AudioRecord:
    slug: str
    title: str = ""
    status: str = "draft"
    origin_id: int = 0
    meta: Meta = field(default_factory=dict)
    recording_types: list[str] | None = None
    audio_file: MediaRef | None = None


@dataclass
class WordRecord:
    slug: str
    title: str
    content: str = ""
    excerpt: str = ""
    status: str = "draft"
    origin_id: int = 0
    meta: Meta = field(default_factory=dict)
    categories: list[str] = field(default_factory=list)
    wordsets: list[str] | None = None
    linked_word_image_slug: str = ""
    languages: list[str] | None = None
    parts_of_speech: list[str] | None = None
    featured_image: MediaRef | None = None
    audio_entries: list[AudioRecord] = field(default_factory=list)
    # Tabular bundles only: distractor texts, resolved to word ids after import.
    wrong_answer_texts: list[str] = field(default_factory=list)


@dataclass
class MediaEstimate:
    attachment_count: int = 0
    attachment_bytes: int = 0


@dataclass
class BundlePayload:
    categories: list[CategoryRecord] = field(default_factory=list)
    word_images: list[WordImageRecord] = field(default_factory=list)
    wordsets: list[WordsetRecord] = field(default_factory=list)
    words: list[WordRecord] = field(default_factory=list)
    bundle_type: str = BUNDLE_TYPE_IMAGES
    version: int = MANIFEST_VERSION
    media_estimate: MediaEstimate = field(default_factory=MediaEstimate)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_full_content(self) -> bool:
        return bool(self.words) or self.bundle_type == BUNDLE_TYPE_FULL


@dataclass
class TabularSummary:
    """Counters and capped diagnostics produced by the tabular engine."""

    files_found: int = 0
    files_used: int = 0
    files_skipped: int = 0
    rows_nonempty: int = 0
    rows_used: int = 0
    rows_skipped: int = 0
    warnings: list[str] = field(default_factory=list)
    warnings_suppressed: int = 0
    max_warnings: int = 50

    def warn(self, message: str) -> None:
        if len(self.warnings) < self.max_warnings:
            self.warnings.append(message)
        else:
            self.warnings_suppressed += 1

    def all_warnings(self) -> list[str]:
        out = list(self.warnings)
        if self.warnings_suppressed:
            out.append(f"{self.warnings_suppressed} more warning(s) suppressed")
        return out

    def as_dict(self) -> dict[str, int]:
        return {
            "files_found": self.files_found,
            "files_used": self.files_used,
            "files_skipped": self.files_skipped,
            "rows_nonempty": self.rows_nonempty,
            "rows_used": self.rows_used,
            "rows_skipped": self.rows_skipped,
            "warnings_suppressed": self.warnings_suppressed,
        }


STAT_KEYS: tuple[str, ...] = (
    "categories_created",
    "categories_updated",
    "wordsets_created",
    "wordsets_updated",
    "word_images_created",
    "word_images_updated",
    "words_created",
    "words_updated",
    "word_audio_created",
    "word_audio_updated",
    "attachments_imported",
    "audio_files_imported",
)


def default_stats() -> dict[str, int]:
    return {k: 0 for k in STAT_KEYS}


UNDO_BUCKETS: tuple[str, ...] = (
    "category_term_ids",
    "wordset_term_ids",
    "word_image_post_ids",
    "word_post_ids",
    "word_audio_post_ids",
    "attachment_ids",
    "audio_paths",
)

UNDO_PATH_BUCKETS = frozenset({"audio_paths"})


@dataclass
class UndoPayload:
    buckets: dict[str, list[Any]] = field(default_factory=lambda: {b: [] for b in UNDO_BUCKETS})

    def as_dict(self) -> dict[str, list[Any]]:
        return {b: list(self.buckets.get(b, [])) for b in UNDO_BUCKETS}

    @classmethod
    def from_dict(cls, obj: Any) -> "UndoPayload":
        payload = cls()
        if not isinstance(obj, dict):
            return payload
        for bucket in UNDO_BUCKETS:
            raw = obj.get(bucket) or []
            if not isinstance(raw, list):
                continue
            if bucket in UNDO_PATH_BUCKETS:
                values = [str(v) for v in raw if isinstance(v, str) and v.strip()]
            else:
                values = [int(v) for v in raw if isinstance(v, int) and not isinstance(v, bool) and v > 0]
            payload.buckets[bucket] = list(dict.fromkeys(values))
        return payload

    def is_empty(self) -> bool:
        return not any(self.buckets.get(b) for b in UNDO_BUCKETS)


@dataclass
class ImportResult:
    ok: bool = False
    message: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=default_stats)
    undo: UndoPayload = field(default_factory=UndoPayload)
    summary: dict[str, int] = field(default_factory=dict)
    history_id: str = ""

    def bump(self, key: str, n: int = 1) -> None:
        self.stats[key] = self.stats.get(key, 0) + n

    def finalize(self) -> "ImportResult":
        self.ok = not self.errors
        self.message = "Import complete." if self.ok else "Import finished with some errors."
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "message": self.message,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "stats": dict(self.stats),
            "undo": self.undo.as_dict(),
            "summary": dict(self.summary),
            "history_id": self.history_id,
        }
