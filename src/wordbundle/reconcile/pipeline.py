"""Import entry points: preview and apply a bundle archive.

Both operations extract into a private temporary directory that is removed
before returning. Fatal errors (unreadable archive, unsafe paths, unusable
payload) are returned as a failed `ImportResult` with nothing written to the
store; per-entity failures are collected by the reconciler.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from wordbundle.bundle.archive import extracted_archive
from wordbundle.bundle.loader import load_payload
from wordbundle.core.config import BundleConfig
from wordbundle.core.errors import BundleError, PayloadError
from wordbundle.core.model import BundlePayload, ImportResult, MediaEstimate, WordsetMode
from wordbundle.core.text import format_bytes
from wordbundle.store.base import TAX_WORDSET, ContentStore

from .history import ImportHistory, UndoRecorder
from .reconciler import ImportOptions, Reconciler

logger = logging.getLogger(__name__)


def _media_warnings(estimate: MediaEstimate, config: BundleConfig) -> list[str]:
    warnings: list[str] = []
    files_limit = config.import_soft_limit_files
    if files_limit > 0 and estimate.attachment_count >= files_limit:
        warnings.append(
            f"This bundle includes {estimate.attachment_count} media files, at or above the "
            f"recommended {files_limit}. The import may take a long time."
        )
    bytes_limit = config.import_soft_limit_bytes
    if bytes_limit > 0 and estimate.attachment_bytes >= bytes_limit:
        warnings.append(
            f"This bundle includes about {format_bytes(estimate.attachment_bytes)} of media, at or above "
            f"the recommended {format_bytes(bytes_limit)}. The import may take a long time."
        )
    return warnings


def _first_meta_text(meta: dict[str, list[Any]], *keys: str) -> str:
    for key in keys:
        for value in meta.get(key) or []:
            text = str(value or "").strip()
            if text:
                return text
    return ""


def _sample_word(payload: BundlePayload) -> dict[str, Any] | None:
    """One representative entry, so the operator can check the bundle is what they expect."""
    category_names = {c.slug: c.name or c.slug for c in payload.categories}
    wordset_names = {ws.slug: ws.name or ws.slug for ws in payload.wordsets}
    images = {wi.slug: wi for wi in payload.word_images}

    if payload.words:
        word = payload.words[0]
        image = word.featured_image
        linked = images.get(word.linked_word_image_slug)
        if image is None and linked is not None:
            image = linked.featured_image
        return {
            "type": "word",
            "title": word.title,
            "translation": _first_meta_text(word.meta, "word_translation", "word_english_meaning"),
            "categories": [category_names.get(s, s) for s in word.categories],
            "wordsets": [wordset_names.get(s, s) for s in word.wordsets or []],
            "image": image.file if image is not None else "",
            "audio": [a.audio_file.file for a in word.audio_entries if a.audio_file is not None],
        }
    if payload.word_images:
        item = payload.word_images[0]
        return {
            "type": "word_image",
            "title": item.title,
            "translation": "",
            "categories": [category_names.get(s, s) for s in item.categories],
            "wordsets": [],
            "image": item.featured_image.file if item.featured_image is not None else "",
            "audio": [],
        }
    return None


def build_preview_data(payload: BundlePayload, config: BundleConfig | None = None) -> dict[str, Any]:
    """Counts, names, a sample entry and size warnings shown before an import is confirmed."""
    config = config or BundleConfig()
    word_audio = sum(len(w.audio_entries) for w in payload.words)
    return {
        "bundle_type": payload.bundle_type,
        "summary": {
            "categories": len(payload.categories),
            "word_images": len(payload.word_images),
            "words": len(payload.words),
            "word_audio": word_audio,
            "wordsets": len(payload.wordsets),
            "media_files": payload.media_estimate.attachment_count,
            "media_bytes": payload.media_estimate.attachment_bytes,
        },
        "wordsets": [{"slug": ws.slug, "name": ws.name} for ws in payload.wordsets if ws.slug],
        "category_names": [c.name or c.slug for c in payload.categories],
        "sample_word": _sample_word(payload),
        "warnings": _media_warnings(payload.media_estimate, config),
    }


def build_preview_default_options(payload: BundlePayload, store: ContentStore) -> ImportOptions:
    """Assign to an existing word set when the bundle names exactly one that exists locally."""
    if payload.has_full_content and len(payload.wordsets) == 1:
        existing = store.find_term(TAX_WORDSET, payload.wordsets[0].slug)
        if existing is not None:
            return ImportOptions(wordset_mode=WordsetMode.ASSIGN_EXISTING, target_wordset_id=existing.id)
    return ImportOptions()


def read_import_preview(
    zip_path: str | Path,
    *,
    config: BundleConfig | None = None,
    store: ContentStore | None = None,
) -> dict[str, Any]:
    """Parse a bundle without touching the store.

    Raises `BundleError` subclasses for archives that cannot be imported at all.
    """
    config = config or BundleConfig()
    with extracted_archive(zip_path, config=config) as root:
        loaded = load_payload(root, config=config)
    preview = build_preview_data(loaded.payload, config)
    out: dict[str, Any] = {
        "payload": loaded.payload,
        "source": loaded.source,
        "preview": preview,
        "warnings": loaded.warnings,
    }
    if loaded.summary is not None:
        out["tabular_summary"] = loaded.summary.as_dict()
    if store is not None:
        out["default_options"] = build_preview_default_options(loaded.payload, store)
    return out


def process_import_archive(
    zip_path: str | Path,
    store: ContentStore,
    *,
    options: ImportOptions | None = None,
    config: BundleConfig | None = None,
    history: ImportHistory | None = None,
    actor: str = "",
) -> ImportResult:
    """Extract, load and reconcile a bundle, then record it in `history`."""
    config = config or BundleConfig()
    options = options or ImportOptions()

    try:
        with extracted_archive(zip_path, config=config) as root:
            loaded = load_payload(root, config=config)
            reconciler = Reconciler(store, extract_root=root, config=config, recorder=UndoRecorder(), actor=actor)
            for warning in loaded.warnings:
                reconciler.result.warnings.append(warning)
            if loaded.summary is not None:
                reconciler.result.summary = loaded.summary.as_dict()
            result = reconciler.run(loaded.payload, options)
    except PayloadError as e:
        logger.warning("import rejected: %s", e)
        return ImportResult(ok=False, message=str(e), errors=list(e.details))
    except BundleError as e:
        logger.warning("import rejected: %s", e)
        return ImportResult(ok=False, message=str(e))

    # A run refused before any mutation leaves nothing to undo or audit.
    if history is not None and (result.ok or any(result.stats.values()) or not result.undo.is_empty()):
        history.record(result, actor=actor)
    return result


__all__ = [
    "build_preview_data",
    "build_preview_default_options",
    "process_import_archive",
    "read_import_preview",
]
