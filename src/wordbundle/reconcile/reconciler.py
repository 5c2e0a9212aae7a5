"""Create-or-update a parsed bundle payload into a content store.

The payload is applied in a fixed order so every reference points at
something that already exists:

a. categories, looked up or created by slug
b. category parents, once every slug is mapped
c. category metadata
d. word images (membership, metadata, featured image)
e. word sets, per the selected `WordsetMode` (full bundles only)
f. words (memberships, metadata, featured image, word-image link)
g. word audio under each word, with the audio file copied into the store
h. item-to-item id references in word metadata, remapped to imported ids
i. wrong-answer hints resolved to word ids: a match in a shared category wins;
   only text-to-text words fall back to a match anywhere in the import

A failure on one entity is recorded as an error and the run continues;
nothing is rolled back. What the run creates is tracked for undo.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wordbundle.bundle.archive import resolve_archive_path
from wordbundle.bundle.media import is_audio_type, is_image_type, sniff_media_type
from wordbundle.core.config import BundleConfig
from wordbundle.core.errors import StoreError
from wordbundle.core.model import (
    AudioRecord,
    BundlePayload,
    ImportResult,
    Meta,
    MediaRef,
    QuizMode,
    WordRecord,
    WordsetMode,
)
from wordbundle.core.text import normalize_for_compare, sanitize_status, slugify
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
)

from .history import UndoRecorder
from .meta import MetaPolicy

logger = logging.getLogger(__name__)

WRONG_IDS_META_KEY = "_ll_specific_wrong_answer_ids"
WRONG_TEXTS_META_KEY = "_ll_specific_wrong_answer_texts"
WORDSET_MANAGER_META_KEY = "manager_user_id"


@dataclass
class ImportOptions:
    wordset_mode: WordsetMode = WordsetMode.CREATE_FROM_EXPORT
    target_wordset_id: int = 0
    wordset_name_overrides: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, obj: dict[str, Any] | None) -> "ImportOptions":
        """Lenient parse; unknown modes fall back to `create_from_export`."""
        obj = obj or {}
        try:
            mode = WordsetMode(str(obj.get("wordset_mode") or WordsetMode.CREATE_FROM_EXPORT.value))
        except ValueError:
            mode = WordsetMode.CREATE_FROM_EXPORT
        try:
            target = int(obj.get("target_wordset_id") or 0)
        except (TypeError, ValueError):
            target = 0
        overrides_raw = obj.get("wordset_name_overrides") or {}
        overrides = {}
        if isinstance(overrides_raw, dict):
            for k, v in overrides_raw.items():
                slug, name = slugify(k), str(v or "").strip()
                if slug and name:
                    overrides[slug] = name
        return cls(wordset_mode=mode, target_wordset_id=max(0, target), wordset_name_overrides=overrides)

    def as_dict(self) -> dict[str, Any]:
        return {
            "wordset_mode": self.wordset_mode.value,
            "target_wordset_id": self.target_wordset_id,
            "wordset_name_overrides": dict(self.wordset_name_overrides),
        }


@dataclass
class _ImportedWord:
    id: int
    title: str
    category_ids: set[int]
    record: WordRecord
    quiz_mode: QuizMode | None = None


def _humanize_slug(slug: str) -> str:
    return " ".join(part.capitalize() for part in slug.replace("-", " ").split()) or slug


class Reconciler:
    def __init__(
        self,
        store: ContentStore,
        *,
        extract_root: Path,
        config: BundleConfig | None = None,
        recorder: UndoRecorder | None = None,
        actor: str = "",
    ):
        self.store = store
        self.extract_root = Path(extract_root)
        self.config = config or BundleConfig()
        self.policy = MetaPolicy.from_config(self.config)
        self.recorder = recorder or UndoRecorder()
        self.actor = actor
        self.result = ImportResult(undo=self.recorder.payload)

    # ---- helpers ----
    def _error(self, message: str) -> None:
        logger.warning(message)
        self.result.errors.append(message)

    def _warn(self, message: str) -> None:
        if message not in self.result.warnings:
            self.result.warnings.append(message)

    def _apply_meta(self, kind: str, entity_id: int, meta: Meta, label: str, *, extra_blocked: tuple[str, ...] = ()) -> None:
        if not meta:
            return
        accepted, rejected = self.policy.split(meta, extra_blocked=extra_blocked)
        for key in rejected:
            self._warn(f'Skipped reserved meta key "{key}" on {label}.')
        replace = self.store.replace_term_meta if kind == "term" else self.store.replace_item_meta
        for key, values in accepted.items():
            try:
                replace(entity_id, key, values)
            except StoreError as e:
                self._error(f'Failed to set meta "{key}" on {label}: {e}')

    def _resolve_bundle_file(self, ref: MediaRef, slug: str, kind: str) -> Path | None:
        path = resolve_archive_path(self.extract_root, ref.file)
        if path is None:
            if kind == "image":
                self._error(f'Skipped thumbnail for "{slug}" because the file path was invalid.')
            else:
                self._error(f'Skipped audio import for "{slug}" because the file path was invalid.')
            return None
        if not path.is_file():
            noun = "Image" if kind == "image" else "Audio"
            self._error(f'{noun} file for "{slug}" is missing from the zip.')
            return None
        return path

    def _apply_featured_image(self, item_id: int, ref: MediaRef | None, slug: str, label: str) -> None:
        if ref is None or not ref.file:
            return
        path = self._resolve_bundle_file(ref, slug, "image")
        if path is None:
            return
        mime = sniff_media_type(path)
        if not is_image_type(mime):
            self._error(f'Failed to import image for {label} "{slug}": Imported file is not a valid image.')
            return
        try:
            att = self.store.add_attachment(path, parent_id=item_id, title=ref.title, alt=ref.alt, mime_type=mime)
            self.recorder.track_id("attachment_ids", att.id)
            self.store.set_featured_media(item_id, att.id)
        except StoreError as e:
            self._error(f'Failed to import image for {label} "{slug}": {e}')
            return
        self.result.bump("attachments_imported")

    def _apply_audio_file(self, audio_id: int, ref: MediaRef | None, word_slug: str) -> None:
        if ref is None or not ref.file:
            return
        path = self._resolve_bundle_file(ref, word_slug, "audio")
        if path is None:
            return
        if not is_audio_type(sniff_media_type(path)):
            self._error(f'Failed to import audio for "{word_slug}": Imported file is not an audio recording.')
            return
        try:
            stored = self.store.store_media_file(path)
            self.recorder.track_path("audio_paths", stored)
            self.store.replace_item_meta(audio_id, AUDIO_PATH_META_KEY, [stored])
        except StoreError as e:
            self._error(f'Failed to import audio for "{word_slug}": {e}')
            return
        self.result.bump("audio_files_imported")

    def _term_ids_for_slugs(self, slugs: list[str], taxonomy: str) -> list[int]:
        """Look up terms by slug, creating missing ones."""
        ids: list[int] = []
        for slug in slugs:
            term = self.store.find_term(taxonomy, slug)
            if term is None:
                try:
                    term = self.store.create_term(taxonomy, slug=slug, name=_humanize_slug(slug))
                except StoreError as e:
                    self._error(f'Could not create {taxonomy} term "{slug}": {e}')
                    continue
            if term.id not in ids:
                ids.append(term.id)
        return ids

    def _set_terms(self, item_id: int, taxonomy: str, ids: list[int], label: str) -> None:
        try:
            self.store.set_item_terms(item_id, taxonomy, ids)
        except StoreError as e:
            self._error(f"Failed to set {taxonomy} terms on {label}: {e}")

    # ---- steps ----
    def _import_categories(self, payload: BundlePayload) -> dict[str, int]:
        slug_to_id: dict[str, int] = {}
        for cat in payload.categories:
            if not cat.slug:
                self._warn("Skipped a category without a slug.")
                continue
            existing = self.store.find_term(TAX_CATEGORY, cat.slug)
            if existing is not None:
                slug_to_id[cat.slug] = existing.id
                self.result.bump("categories_updated")
                continue
            try:
                term = self.store.create_term(
                    TAX_CATEGORY, slug=cat.slug, name=cat.name or cat.slug, description=cat.description
                )
            except StoreError as e:
                self._error(f'Category "{cat.slug}" could not be created: {e}')
                continue
            slug_to_id[cat.slug] = term.id
            self.recorder.track_id("category_term_ids", term.id)
            self.result.bump("categories_created")

        for cat in payload.categories:
            if not cat.parent_slug or cat.slug not in slug_to_id or cat.parent_slug not in slug_to_id:
                continue
            try:
                self.store.update_term(slug_to_id[cat.slug], parent_id=slug_to_id[cat.parent_slug])
            except StoreError as e:
                self._error(f'Category "{cat.slug}" could not be moved under "{cat.parent_slug}": {e}')

        for cat in payload.categories:
            if cat.slug in slug_to_id:
                self._apply_meta("term", slug_to_id[cat.slug], cat.meta, f'category "{cat.slug}"')
        return slug_to_id

    def _import_word_images(self, payload: BundlePayload, categories: dict[str, int]) -> dict[str, int]:
        slug_to_id: dict[str, int] = {}
        for item in payload.word_images:
            slug = item.slug
            if not slug:
                self._warn("Skipped a word image without a slug.")
                continue
            status = sanitize_status(item.status, "publish")
            existing = self.store.find_item(ITEM_WORD_IMAGE, slug)
            try:
                if existing is not None:
                    post = self.store.update_item(existing.id, title=item.title, status=status)
                    self.result.bump("word_images_updated")
                else:
                    post = self.store.create_item(ITEM_WORD_IMAGE, slug=slug, title=item.title, status=status)
                    self.recorder.track_id("word_image_post_ids", post.id)
                    self.result.bump("word_images_created")
            except StoreError as e:
                verb = "update" if existing is not None else "create"
                self._error(f'Failed to {verb} word image "{slug}": {e}')
                continue

            term_ids = list(dict.fromkeys(categories[s] for s in item.categories if s in categories))
            if term_ids:
                self._set_terms(post.id, TAX_CATEGORY, term_ids, f'word image "{slug}"')
            self._apply_meta("item", post.id, item.meta, f'word image "{slug}"')
            self._apply_featured_image(post.id, item.featured_image, slug, "word image")
            slug_to_id[slug] = post.id
        return slug_to_id

    def _prepare_wordset_map(self, payload: BundlePayload, options: ImportOptions) -> dict[str, int]:
        if options.wordset_mode is WordsetMode.ASSIGN_EXISTING and options.target_wordset_id > 0:
            return {ws.slug: options.target_wordset_id for ws in payload.wordsets if ws.slug}

        mapping: dict[str, int] = {}
        for ws in payload.wordsets:
            if not ws.slug:
                continue
            name = options.wordset_name_overrides.get(ws.slug, ws.name or ws.slug)
            existing = self.store.find_term(TAX_WORDSET, ws.slug)
            if existing is not None:
                mapping[ws.slug] = existing.id
                try:
                    self.store.update_term(existing.id, name=name, description=ws.description)
                except StoreError as e:
                    self._error(f'Failed to update word set "{ws.slug}": {e}')
                    continue
                self.result.bump("wordsets_updated")
                term_id = existing.id
            else:
                try:
                    term = self.store.create_term(TAX_WORDSET, slug=ws.slug, name=name, description=ws.description)
                except StoreError as e:
                    self._error(f'Failed to create word set "{ws.slug}": {e}')
                    continue
                term_id = term.id
                mapping[ws.slug] = term_id
                self.recorder.track_id("wordset_term_ids", term_id)
                self.result.bump("wordsets_created")

            self._apply_meta(
                "term",
                term_id,
                ws.meta,
                f'word set "{ws.slug}"',
                extra_blocked=(WORDSET_MANAGER_META_KEY,),
            )
            if self.actor:
                self.store.replace_term_meta(term_id, WORDSET_MANAGER_META_KEY, [self.actor])
        return mapping

    def _import_word(
        self,
        item: WordRecord,
        categories: dict[str, int],
        wordsets: dict[str, int],
        word_images: dict[str, int],
        options: ImportOptions,
        quiz_mode: QuizMode | None = None,
    ) -> _ImportedWord | None:
        slug = item.slug
        if not slug:
            suffix = str(item.origin_id) if item.origin_id > 0 else secrets.token_hex(4)
            slug = f"imported-word-{suffix}"
        label = f'word "{slug}"'
        status = sanitize_status(item.status, "draft")
        existing = self.store.find_item(ITEM_WORD, slug)
        try:
            if existing is not None:
                post = self.store.update_item(
                    existing.id,
                    title=item.title,
                    content=item.content,
                    excerpt=item.excerpt,
                    status=status,
                    skip_publish_gate=True,
                )
                self.result.bump("words_updated")
            else:
                post = self.store.create_item(
                    ITEM_WORD,
                    slug=slug,
                    title=item.title,
                    content=item.content,
                    excerpt=item.excerpt,
                    status=status,
                    skip_publish_gate=True,
                )
                self.recorder.track_id("word_post_ids", post.id)
                self.result.bump("words_created")
        except StoreError as e:
            verb = "update" if existing is not None else "create"
            self._error(f'Failed to {verb} word "{slug}": {e}')
            return None
        word_id = post.id

        category_ids = list(dict.fromkeys(categories[s] for s in item.categories if s in categories))
        if category_ids:
            self._set_terms(word_id, TAX_CATEGORY, category_ids, label)

        if options.wordset_mode is WordsetMode.ASSIGN_EXISTING and options.target_wordset_id > 0:
            wordset_ids = [options.target_wordset_id]
        else:
            wordset_ids = list(dict.fromkeys(wordsets[s] for s in (item.wordsets or []) if s in wordsets))
        if wordset_ids or item.wordsets is not None:
            self._set_terms(word_id, TAX_WORDSET, wordset_ids, label)

        for taxonomy, slugs in ((TAX_LANGUAGE, item.languages), (TAX_PART_OF_SPEECH, item.parts_of_speech)):
            ids = self._term_ids_for_slugs(slugs or [], taxonomy)
            if ids or slugs is not None:
                self._set_terms(word_id, taxonomy, ids, label)

        self._apply_meta("item", word_id, item.meta, label)
        self._apply_featured_image(word_id, item.featured_image, slug, "word")
        self._link_word_image(word_id, slug, item, word_images)

        for audio in item.audio_entries:
            self._import_audio(word_id, slug, audio)

        return _ImportedWord(
            id=word_id, title=item.title, category_ids=set(category_ids), record=item, quiz_mode=quiz_mode
        )

    def _link_word_image(self, word_id: int, slug: str, item: WordRecord, word_images: dict[str, int]) -> None:
        explicit = item.linked_word_image_slug
        if explicit and explicit not in word_images:
            self._error(f'Could not link word "{slug}" to source word image "{explicit}".')
        if explicit in word_images:
            image_id, source = word_images[explicit], "explicit"
        elif slug in word_images:
            image_id, source = word_images[slug], "slug"
        else:
            return
        try:
            self.store.replace_item_meta(word_id, LINKED_IMAGE_META_KEY, [image_id])
            if source == "explicit":
                thumb = self.store.get_featured_media(image_id)
                if thumb:
                    self.store.set_featured_media(word_id, thumb)
        except StoreError as e:
            self._error(f'Could not link word "{slug}" to word image "{explicit or slug}": {e}')

    def _import_audio(self, word_id: int, word_slug: str, audio: AudioRecord) -> None:
        slug = audio.slug
        if not slug:
            suffix = str(audio.origin_id) if audio.origin_id > 0 else secrets.token_hex(4)
            slug = f"imported-audio-{suffix}"
        status = sanitize_status(audio.status, "draft")
        existing = self.store.find_item(ITEM_WORD_AUDIO, slug, parent_id=word_id)
        try:
            if existing is not None:
                post = self.store.update_item(existing.id, title=audio.title, status=status)
                self.result.bump("word_audio_updated")
            else:
                post = self.store.create_item(
                    ITEM_WORD_AUDIO, slug=slug, title=audio.title, status=status, parent_id=word_id
                )
                self.recorder.track_id("word_audio_post_ids", post.id)
                self.result.bump("word_audio_created")
        except StoreError as e:
            verb = "update" if existing is not None else "create"
            self._error(f'Failed to {verb} audio "{slug}" for word "{word_slug}": {e}')
            return

        label = f'audio "{slug}" of word "{word_slug}"'
        self._apply_meta("item", post.id, audio.meta, label, extra_blocked=(AUDIO_PATH_META_KEY,))
        ids = self._term_ids_for_slugs(audio.recording_types or [], TAX_RECORDING_TYPE)
        if ids or audio.recording_types is not None:
            self._set_terms(post.id, TAX_RECORDING_TYPE, ids, label)
        self._apply_audio_file(post.id, audio.audio_file, word_slug)

    def _remap_id_references(self, origin_to_imported: dict[int, int]) -> None:
        def remap(value: Any) -> Any:
            if isinstance(value, list):
                return [remap(v) for v in value]
            if isinstance(value, bool):
                return value
            try:
                n = int(value)
            except (TypeError, ValueError):
                return value
            if n not in origin_to_imported:
                return value
            mapped = origin_to_imported[n]
            return str(mapped) if isinstance(value, str) else mapped

        for word_id in dict.fromkeys(origin_to_imported.values()):
            meta = self.store.get_item_meta(word_id)
            for key in self.config.id_reference_meta_keys:
                values = meta.get(key)
                if not values:
                    continue
                new_values = [remap(v) for v in values]
                if new_values != values:
                    self.store.replace_item_meta(word_id, key, new_values)

    def _resolve_wrong_answers(self, imported: list[_ImportedWord]) -> None:
        by_title: dict[str, list[_ImportedWord]] = {}
        for w in imported:
            by_title.setdefault(normalize_for_compare(w.title), []).append(w)

        for owner in imported:
            texts = owner.record.wrong_answer_texts
            if not texts:
                continue
            ids: set[int] = set()
            for text in texts:
                candidates = [c for c in by_title.get(normalize_for_compare(text), []) if c.id != owner.id]
                in_category = [c for c in candidates if c.category_ids & owner.category_ids]
                if in_category:
                    ids.update(c.id for c in in_category)
                elif candidates and owner.quiz_mode is QuizMode.TEXT_TO_TEXT:
                    ids.add(min(c.id for c in candidates))
            try:
                self.store.replace_item_meta(owner.id, WRONG_IDS_META_KEY, sorted(ids))
                self.store.replace_item_meta(owner.id, WRONG_TEXTS_META_KEY, list(texts))
            except StoreError as e:
                self._error(f'Failed to store wrong answers for word "{owner.record.slug}": {e}')

    # ---- entry point ----
    def run(self, payload: BundlePayload, options: ImportOptions | None = None) -> ImportResult:
        options = options or ImportOptions()
        result = self.result

        if payload.has_full_content and options.wordset_mode is WordsetMode.ASSIGN_EXISTING:
            target = self.store.get_term(options.target_wordset_id) if options.target_wordset_id else None
            if target is None or target.taxonomy != TAX_WORDSET:
                result.ok = False
                result.message = "Import failed: select a valid existing word set for assignment."
                return result

        categories = self._import_categories(payload)
        word_images = self._import_word_images(payload, categories)

        if payload.has_full_content:
            wordsets = self._prepare_wordset_map(payload, options)
            imported: list[_ImportedWord] = []
            origin_to_imported: dict[int, int] = {}
            category_modes = {c.slug: c.quiz_mode for c in payload.categories if c.quiz_mode is not None}
            for item in payload.words:
                mode = next((category_modes[s] for s in item.categories if s in category_modes), None)
                word = self._import_word(item, categories, wordsets, word_images, options, mode)
                if word is None:
                    continue
                imported.append(word)
                if item.origin_id > 0:
                    origin_to_imported[item.origin_id] = word.id
            if origin_to_imported:
                self._remap_id_references(origin_to_imported)
            self._resolve_wrong_answers(imported)

        result.finalize()
        logger.info(
            "import finished (%s): %s",
            "ok" if result.ok else f"{len(result.errors)} error(s)",
            ", ".join(f"{k}={v}" for k, v in result.stats.items() if v) or "no changes",
        )
        return result


__all__ = ["ImportOptions", "Reconciler"]
