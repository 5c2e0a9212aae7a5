"""Build an export payload and media plan from a content store.

The plan is computed fully in memory before anything is written: every media
file is registered with a `MediaTracker`, which fails fast with
`ExportLimitError` once the file count or byte total would cross a hard
ceiling. The soft limit is a separate caller-side gate (`check_soft_limit`).

Zip paths inside the bundle:
- word image featured images: `media/<attachment id>-<basename>`
- word featured images: `media/words/<attachment id>-<basename>`
- audio files: `audio/<audio item id>-<basename>`
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from wordbundle.bundle.manifest import now_utc_iso
from wordbundle.bundle.media import sniff_media_type
from wordbundle.core.config import BundleConfig
from wordbundle.core.errors import BundleError, ExportLimitError
from wordbundle.core.model import (
    BUNDLE_TYPE_FULL,
    BUNDLE_TYPE_IMAGES,
    AudioRecord,
    BundlePayload,
    CategoryRecord,
    MediaEstimate,
    MediaRef,
    WordImageRecord,
    WordRecord,
    WordsetRecord,
)
from wordbundle.core.text import format_bytes
from wordbundle.reconcile.meta import MetaPolicy
from wordbundle.reconcile.reconciler import WORDSET_MANAGER_META_KEY
from wordbundle.store.base import (
    AUDIO_PATH_META_KEY,
    ITEM_WORD,
    ITEM_WORD_AUDIO,
    ITEM_WORD_IMAGE,
    LINKED_IMAGE_META_KEY,
    TAX_CATEGORY,
    TAX_LANGUAGE,
    TAX_PART_OF_SPEECH,
    TAX_RECORDING_TYPE,
    TAX_WORDSET,
    ContentStore,
    Item,
    Term,
)

logger = logging.getLogger(__name__)


class MediaTracker:
    """Collects `(source path, zip path)` pairs under the hard limits."""

    def __init__(self, config: BundleConfig):
        self.max_files = config.export_hard_limit_files
        self.max_bytes = config.export_hard_limit_bytes
        self.files: list[tuple[Path, str]] = []
        self.total_bytes = 0
        self._seen: set[str] = set()

    def __len__(self) -> int:
        return len(self.files)

    def register(self, source: Path, zip_path: str) -> bool:
        """Return False for a zip path already registered."""
        if zip_path in self._seen:
            return False
        size = source.stat().st_size
        next_count = len(self.files) + 1
        next_bytes = self.total_bytes + size
        if next_count > self.max_files:
            raise ExportLimitError(
                f"Export stopped: media file count ({next_count}) exceeds the hard limit ({self.max_files})."
            )
        if next_bytes > self.max_bytes:
            raise ExportLimitError(
                "Export stopped: estimated media size "
                f"({format_bytes(next_bytes)}) exceeds the hard limit ({format_bytes(self.max_bytes)})."
            )
        self._seen.add(zip_path)
        self.files.append((source, zip_path))
        self.total_bytes = next_bytes
        return True


@dataclass
class ExportPlan:
    payload: BundlePayload
    files: list[tuple[Path, str]] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def media_bytes(self) -> int:
        return self.payload.media_estimate.attachment_bytes


def _scope_term_ids(store: ContentStore, root_ids: Iterable[int]) -> tuple[list[Term], set[int]]:
    """Return the selected roots and the ids of every category in scope."""
    all_terms = store.list_terms(TAX_CATEGORY)
    children: dict[int, list[int]] = {}
    for t in all_terms:
        children.setdefault(t.parent_id, []).append(t.id)

    roots: list[Term] = []
    for rid in root_ids:
        term = store.get_term(int(rid))
        if term is None or term.taxonomy != TAX_CATEGORY:
            raise BundleError("Export failed: the selected category is invalid.")
        roots.append(term)
    if not roots:
        return [], {t.id for t in all_terms}

    scope: set[int] = set()
    stack = [r.id for r in roots]
    while stack:
        tid = stack.pop()
        if tid in scope:
            continue
        scope.add(tid)
        stack.extend(children.get(tid, []))
    return roots, scope


def _term_slugs(store: ContentStore, item_id: int, taxonomy: str, only: set[int] | None = None) -> list[str]:
    out: list[str] = []
    for tid in store.get_item_terms(item_id, taxonomy):
        if only is not None and tid not in only:
            continue
        term = store.get_term(tid)
        if term is not None and term.slug not in out:
            out.append(term.slug)
    return out


class _Builder:
    def __init__(self, store: ContentStore, config: BundleConfig):
        self.store = store
        self.policy = MetaPolicy.from_config(config)
        self.tracker = MediaTracker(config)

    def featured_ref(self, item: Item, prefix: str) -> MediaRef | None:
        att_id = self.store.get_featured_media(item.id)
        if not att_id:
            return None
        source = self.store.attachment_path(att_id)
        if source is None or not source.is_file():
            logger.warning("featured image of %s '%s' is missing on disk; skipped", item.item_type, item.slug)
            return None
        att = self.store.get_item(att_id)
        zip_path = f"{prefix}{att_id}-{source.name}"
        self.tracker.register(source, zip_path)
        return MediaRef(
            file=zip_path,
            mime_type=(att.mime_type if att else "") or sniff_media_type(source),
            title=att.title if att else "",
            alt=att.alt if att else "",
        )

    def audio_ref(self, audio: Item) -> MediaRef | None:
        stored = self.store.get_item_meta_value(audio.id, AUDIO_PATH_META_KEY)
        source = self.store.resolve_media_path(str(stored or ""))
        if source is None or not source.is_file():
            return None
        zip_path = f"audio/{audio.id}-{source.name}"
        self.tracker.register(source, zip_path)
        return MediaRef(file=zip_path, mime_type=sniff_media_type(source), title=audio.title)

    def category_records(self, scope: set[int]) -> list[CategoryRecord]:
        out: list[CategoryRecord] = []
        for term in self.store.list_terms(TAX_CATEGORY):
            if term.id not in scope:
                continue
            parent = self.store.get_term(term.parent_id) if term.parent_id in scope else None
            out.append(
                CategoryRecord(
                    slug=term.slug,
                    name=term.name,
                    description=term.description,
                    parent_slug=parent.slug if parent else "",
                    meta=self.policy.exportable(self.store.get_term_meta(term.id)),
                )
            )
        out.sort(key=lambda c: (c.name.lower(), c.slug))
        return out

    def word_image_records(self, scope: set[int], scoped: bool) -> list[WordImageRecord]:
        out: list[WordImageRecord] = []
        for item in sorted(self.store.list_items(ITEM_WORD_IMAGE), key=lambda i: i.id):
            term_ids = set(self.store.get_item_terms(item.id, TAX_CATEGORY))
            if scoped and not (term_ids & scope):
                continue
            out.append(
                WordImageRecord(
                    slug=item.slug,
                    title=item.title,
                    status=item.status,
                    meta=self.policy.exportable(self.store.get_item_meta(item.id)),
                    categories=_term_slugs(self.store, item.id, TAX_CATEGORY, scope),
                    featured_image=self.featured_ref(item, "media/"),
                )
            )
        return out

    def word_record(self, word: Item, scope: set[int], wordset: Term) -> WordRecord:
        linked_slug = ""
        linked_id = self.store.get_item_meta_value(word.id, LINKED_IMAGE_META_KEY)
        if linked_id:
            linked = self.store.get_item(int(linked_id))
            if linked is not None and linked.item_type == ITEM_WORD_IMAGE:
                linked_slug = linked.slug

        audio_entries: list[AudioRecord] = []
        for audio in sorted(self.store.list_items(ITEM_WORD_AUDIO, parent_id=word.id), key=lambda i: i.id):
            audio_entries.append(
                AudioRecord(
                    slug=audio.slug,
                    title=audio.title,
                    status=audio.status,
                    origin_id=audio.id,
                    meta=self.policy.exportable(self.store.get_item_meta(audio.id), extra_skip=(AUDIO_PATH_META_KEY,)),
                    recording_types=_term_slugs(self.store, audio.id, TAX_RECORDING_TYPE),
                    audio_file=self.audio_ref(audio),
                )
            )

        return WordRecord(
            slug=word.slug,
            title=word.title,
            content=word.content,
            excerpt=word.excerpt,
            status=word.status,
            origin_id=word.id,
            meta=self.policy.exportable(self.store.get_item_meta(word.id), extra_skip=(LINKED_IMAGE_META_KEY,)),
            categories=_term_slugs(self.store, word.id, TAX_CATEGORY, scope),
            wordsets=[wordset.slug],
            linked_word_image_slug=linked_slug,
            languages=_term_slugs(self.store, word.id, TAX_LANGUAGE),
            parts_of_speech=_term_slugs(self.store, word.id, TAX_PART_OF_SPEECH),
            featured_image=self.featured_ref(word, "media/words/"),
            audio_entries=audio_entries,
        )


def build_export_payload(
    store: ContentStore,
    *,
    root_category_ids: Iterable[int] = (),
    include_full_bundle: bool = False,
    full_wordset_id: int = 0,
    config: BundleConfig | None = None,
) -> ExportPlan:
    """Collect everything in scope into a payload plus the media to bundle."""
    config = config or BundleConfig()
    roots, scope = _scope_term_ids(store, root_category_ids)
    scoped = bool(roots)

    wordset: Term | None = None
    if include_full_bundle:
        if not full_wordset_id:
            raise BundleError("Select a word set when exporting a full category bundle.")
        wordset = store.get_term(int(full_wordset_id))
        if wordset is None or wordset.taxonomy != TAX_WORDSET:
            raise BundleError("The selected word set for full export is invalid.")

    builder = _Builder(store, config)
    payload = BundlePayload(
        categories=builder.category_records(scope),
        word_images=builder.word_image_records(scope, scoped),
        bundle_type=BUNDLE_TYPE_FULL if wordset is not None else BUNDLE_TYPE_IMAGES,
    )

    if wordset is not None:
        for word in sorted(store.list_items(ITEM_WORD), key=lambda i: i.id):
            if wordset.id not in store.get_item_terms(word.id, TAX_WORDSET):
                continue
            if scoped and not (set(store.get_item_terms(word.id, TAX_CATEGORY)) & scope):
                continue
            payload.words.append(builder.word_record(word, scope, wordset))
        payload.wordsets = [
            WordsetRecord(
                slug=wordset.slug,
                name=wordset.name,
                description=wordset.description,
                meta=builder.policy.exportable(
                    store.get_term_meta(wordset.id), extra_skip=(WORDSET_MANAGER_META_KEY,)
                ),
            )
        ]

    payload.media_estimate = MediaEstimate(
        attachment_count=len(builder.tracker),
        attachment_bytes=builder.tracker.total_bytes,
    )
    extra: dict[str, Any] = {
        "exported_at": now_utc_iso(),
        "category_scope": [r.slug for r in roots] if len(roots) > 1 else (roots[0].slug if roots else "all"),
    }
    if wordset is not None:
        extra["full_wordset"] = {"id": wordset.id, "slug": wordset.slug, "name": wordset.name}
    payload.extra = extra

    stats = {
        "categories": len(payload.categories),
        "word_images": len(payload.word_images),
        "words": len(payload.words),
        "word_audio": sum(len(w.audio_entries) for w in payload.words),
        "media_files": len(builder.tracker),
        "media_bytes": builder.tracker.total_bytes,
    }
    logger.info(
        "export plan: %d categor(y/ies), %d word image(s), %d word(s), %d media file(s) (%s)",
        stats["categories"],
        stats["word_images"],
        stats["words"],
        stats["media_files"],
        format_bytes(stats["media_bytes"]),
    )
    return ExportPlan(payload=payload, files=list(builder.tracker.files), stats=stats)


def check_soft_limit(plan: ExportPlan, config: BundleConfig | None = None, *, allow_large: bool = False) -> None:
    """Refuse exports above the soft limit unless explicitly allowed."""
    config = config or BundleConfig()
    if allow_large or plan.media_bytes <= config.export_soft_limit_bytes:
        return
    raise ExportLimitError(
        f"Export media is {format_bytes(plan.media_bytes)}, above the recommended "
        f"{format_bytes(config.export_soft_limit_bytes)}. Confirm the large export to continue."
    )


__all__ = [
    "ExportPlan",
    "MediaTracker",
    "build_export_payload",
    "check_soft_limit",
    "format_bytes",
]
