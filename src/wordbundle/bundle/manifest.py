"""Native bundle manifest (`data.json`) read/write.

Reading is the parse boundary for the native format: the JSON tree is
validated and converted into the typed records of `wordbundle.core.model`.
Shape errors raise `PayloadError` with a path-like location
(`words[3].audio_entries[0].audio_file`), in the style of the other artifact
readers.

Values are taken as-is otherwise: slugs are normalized, statuses and
memberships are left for the reconciler to clamp.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from wordbundle.core.errors import PayloadError
from wordbundle.core.model import (
    BUNDLE_TYPE_FULL,
    BUNDLE_TYPE_IMAGES,
    MANIFEST_VERSION,
    AudioRecord,
    BundlePayload,
    CategoryRecord,
    MediaEstimate,
    MediaRef,
    Meta,
    QuizMode,
    WordImageRecord,
    WordRecord,
    WordsetRecord,
)
from wordbundle.core.text import slugify

MANIFEST_NAME = "data.json"

# Top-level keys carried through `BundlePayload.extra` untouched.
_PASSTHROUGH_KEYS = ("exported_at", "site", "category_scope", "full_wordset")

_MISSING = object()


def now_utc_iso() -> str:
    # Example: 2026-01-31T12:00:00Z
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _require_dict(value: Any, *, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise PayloadError(f"{where}: expected JSON object, got {type(value).__name__}")
    return value


def _optional_list(value: Any, *, where: str) -> list[Any] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise PayloadError(f"{where}: expected JSON array, got {type(value).__name__}")
    return value


def _str(obj: dict[str, Any], key: str, default: str = "", *, where: str) -> str:
    v = obj.get(key)
    if v is None:
        return default
    if isinstance(v, (dict, list)):
        raise PayloadError(f"{where}.{key}: expected string, got {type(v).__name__}")
    return str(v)


def _int(obj: dict[str, Any], key: str, *, where: str) -> int:
    v = obj.get(key, 0)
    if v in (None, ""):
        return 0
    if isinstance(v, bool):
        raise PayloadError(f"{where}.{key}: expected integer, got bool")
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"{where}.{key}: expected integer") from e


def _slug_list(value: Any, *, where: str) -> list[str] | None:
    raw = _optional_list(value, where=where)
    if raw is None:
        return None
    out: list[str] = []
    for v in raw:
        s = slugify(v)
        if s and s not in out:
            out.append(s)
    return out


def _meta(value: Any, *, where: str) -> Meta:
    if value is None:
        return {}
    obj = _require_dict(value, where=where)
    out: Meta = {}
    for k, v in obj.items():
        key = str(k)
        if not key:
            continue
        out[key] = list(v) if isinstance(v, list) else [v]
    return out


def _media_ref(value: Any, *, where: str) -> MediaRef | None:
    if value is None or value == []:
        return None
    obj = _require_dict(value, where=where)
    file = str(obj.get("file") or "").strip()
    if not file:
        return None
    return MediaRef(
        file=file,
        mime_type=str(obj.get("mime_type") or ""),
        title=str(obj.get("title") or ""),
        alt=str(obj.get("alt") or ""),
    )


def _parse_category(obj: Any, *, where: str) -> CategoryRecord:
    d = _require_dict(obj, where=where)
    slug = slugify(d.get("slug"))
    meta = _meta(d.get("meta"), where=f"{where}.meta")
    quiz_mode = None
    prompt = (meta.get("ll_quiz_prompt_type") or [""])[0]
    option = (meta.get("ll_quiz_option_type") or [""])[0]
    for mode in QuizMode:
        if mode.prompt_type == prompt and mode.option_type == option:
            quiz_mode = mode
            break
    return CategoryRecord(
        slug=slug,
        name=_str(d, "name", slug, where=where) or slug,
        description=_str(d, "description", where=where),
        parent_slug=slugify(d.get("parent_slug")),
        meta=meta,
        quiz_mode=quiz_mode,
    )


def _parse_word_image(obj: Any, *, where: str) -> WordImageRecord:
    d = _require_dict(obj, where=where)
    return WordImageRecord(
        slug=slugify(d.get("slug")),
        title=_str(d, "title", where=where),
        status=_str(d, "status", "publish", where=where),
        meta=_meta(d.get("meta"), where=f"{where}.meta"),
        categories=_slug_list(d.get("categories"), where=f"{where}.categories") or [],
        featured_image=_media_ref(d.get("featured_image"), where=f"{where}.featured_image"),
    )


def _parse_wordset(obj: Any, *, where: str) -> WordsetRecord:
    d = _require_dict(obj, where=where)
    slug = slugify(d.get("slug"))
    return WordsetRecord(
        slug=slug,
        name=_str(d, "name", slug, where=where) or slug,
        description=_str(d, "description", where=where),
        meta=_meta(d.get("meta"), where=f"{where}.meta"),
    )


def _parse_audio(obj: Any, *, where: str) -> AudioRecord:
    d = _require_dict(obj, where=where)
    return AudioRecord(
        slug=slugify(d.get("slug")),
        title=_str(d, "title", where=where),
        status=_str(d, "status", "draft", where=where),
        origin_id=_int(d, "origin_id", where=where),
        meta=_meta(d.get("meta"), where=f"{where}.meta"),
        recording_types=_slug_list(d.get("recording_types"), where=f"{where}.recording_types"),
        audio_file=_media_ref(d.get("audio_file"), where=f"{where}.audio_file"),
    )


def _parse_word(obj: Any, *, where: str) -> WordRecord:
    d = _require_dict(obj, where=where)
    audio_raw = _optional_list(d.get("audio_entries"), where=f"{where}.audio_entries") or []
    wrong_raw = _optional_list(d.get("wrong_answer_texts"), where=f"{where}.wrong_answer_texts") or []
    return WordRecord(
        slug=slugify(d.get("slug")),
        title=_str(d, "title", where=where),
        content=_str(d, "content", where=where),
        excerpt=_str(d, "excerpt", where=where),
        status=_str(d, "status", "draft", where=where),
        origin_id=_int(d, "origin_id", where=where),
        meta=_meta(d.get("meta"), where=f"{where}.meta"),
        categories=_slug_list(d.get("categories"), where=f"{where}.categories") or [],
        wordsets=_slug_list(d.get("wordsets"), where=f"{where}.wordsets"),
        linked_word_image_slug=slugify(d.get("linked_word_image_slug")),
        languages=_slug_list(d.get("languages"), where=f"{where}.languages"),
        parts_of_speech=_slug_list(d.get("parts_of_speech"), where=f"{where}.parts_of_speech"),
        featured_image=_media_ref(d.get("featured_image"), where=f"{where}.featured_image"),
        audio_entries=[
            _parse_audio(a, where=f"{where}.audio_entries[{i}]") for i, a in enumerate(audio_raw)
        ],
        wrong_answer_texts=[str(t).strip() for t in wrong_raw if str(t).strip()],
    )


def _parse_list(obj: dict[str, Any], key: str, parse) -> list[Any]:
    raw = obj.get(key, _MISSING)
    if raw is _MISSING or raw is None:
        return []
    items = _optional_list(raw, where=key) or []
    return [parse(item, where=f"{key}[{i}]") for i, item in enumerate(items)]


def manifest_to_payload(obj: Any) -> BundlePayload:
    """Validate a decoded manifest object and convert it to a `BundlePayload`."""
    if not isinstance(obj, dict):
        raise PayloadError(f"Import failed: {MANIFEST_NAME} is not valid JSON.")
    if "categories" not in obj or "word_images" not in obj:
        raise PayloadError("Import failed: payload missing categories or word images.")

    payload = BundlePayload(
        categories=_parse_list(obj, "categories", _parse_category),
        word_images=_parse_list(obj, "word_images", _parse_word_image),
        wordsets=_parse_list(obj, "wordsets", _parse_wordset),
        words=_parse_list(obj, "words", _parse_word),
    )
    bundle_type = str(obj.get("bundle_type") or "").strip().lower()
    if bundle_type != BUNDLE_TYPE_FULL:
        bundle_type = BUNDLE_TYPE_FULL if payload.words else BUNDLE_TYPE_IMAGES
    payload.bundle_type = bundle_type
    payload.version = _int(obj, "version", where="manifest") or MANIFEST_VERSION

    est = obj.get("media_estimate")
    if isinstance(est, dict):
        payload.media_estimate = MediaEstimate(
            attachment_count=_int(est, "attachment_count", where="media_estimate"),
            attachment_bytes=_int(est, "attachment_bytes", where="media_estimate"),
        )
    payload.extra = {k: obj[k] for k in _PASSTHROUGH_KEYS if k in obj}
    return payload


def read_manifest_payload(path: str | Path) -> BundlePayload:
    """Read and validate a `data.json` file."""
    p = Path(path)
    try:
        obj = json.loads(p.read_text(encoding="utf-8-sig"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PayloadError(f"Import failed: {MANIFEST_NAME} is not valid JSON.") from e
    return manifest_to_payload(obj)


def _ref_dict(ref: MediaRef | None, *, with_alt: bool = True) -> dict[str, Any] | None:
    if ref is None:
        return None
    out: dict[str, Any] = {"file": ref.file, "mime_type": ref.mime_type, "title": ref.title}
    if with_alt:
        out["alt"] = ref.alt
    return out


def payload_to_manifest(payload: BundlePayload) -> dict[str, Any]:
    """Serialize a payload to the `data.json` object."""
    out: dict[str, Any] = {
        "version": payload.version,
        "bundle_type": payload.bundle_type,
        "exported_at": payload.extra.get("exported_at") or now_utc_iso(),
        "category_scope": payload.extra.get("category_scope", "all"),
        "full_wordset": payload.extra.get("full_wordset"),
        "categories": [
            {
                "slug": c.slug,
                "name": c.name,
                "description": c.description,
                "parent_slug": c.parent_slug,
                "meta": c.meta,
            }
            for c in payload.categories
        ],
        "word_images": [
            {
                "slug": w.slug,
                "title": w.title,
                "status": w.status,
                "meta": w.meta,
                "categories": list(w.categories),
                "featured_image": _ref_dict(w.featured_image),
            }
            for w in payload.word_images
        ],
        "wordsets": [
            {"slug": s.slug, "name": s.name, "description": s.description, "meta": s.meta}
            for s in payload.wordsets
        ],
        "words": [_word_dict(w) for w in payload.words],
        "media_estimate": {
            "attachment_count": payload.media_estimate.attachment_count,
            "attachment_bytes": payload.media_estimate.attachment_bytes,
        },
    }
    if "site" in payload.extra:
        out["site"] = payload.extra["site"]
    return out


def _word_dict(w: WordRecord) -> dict[str, Any]:
    return {
        "origin_id": w.origin_id,
        "slug": w.slug,
        "title": w.title,
        "content": w.content,
        "excerpt": w.excerpt,
        "status": w.status,
        "meta": w.meta,
        "categories": list(w.categories),
        "wordsets": list(w.wordsets or []),
        "linked_word_image_slug": w.linked_word_image_slug,
        "languages": list(w.languages or []),
        "parts_of_speech": list(w.parts_of_speech or []),
        "featured_image": _ref_dict(w.featured_image),
        "audio_entries": [
            {
                "origin_id": a.origin_id,
                "slug": a.slug,
                "title": a.title,
                "status": a.status,
                "meta": a.meta,
                "recording_types": list(a.recording_types or []),
                "audio_file": _ref_dict(a.audio_file, with_alt=False),
            }
            for a in w.audio_entries
        ],
    }


def manifest_json_text(payload: BundlePayload) -> str:
    return json.dumps(payload_to_manifest(payload), indent=2, sort_keys=True, ensure_ascii=False) + "\n"


__all__ = [
    "MANIFEST_NAME",
    "manifest_json_text",
    "manifest_to_payload",
    "now_utc_iso",
    "payload_to_manifest",
    "read_manifest_payload",
]
