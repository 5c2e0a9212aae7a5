"""Pytest configuration.

This repo follows the `src/` layout. Some environments may invoke a `pytest`
entrypoint from a different Python install than the one used for
`python -m pip install -e ...`, which can cause `import wordbundle` to fail.

To keep the suite robust, we ensure `src/` is on `sys.path` during tests.
"""

from __future__ import annotations

import base64
import json
import sys
import zipfile
from pathlib import Path
from typing import Any


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    sys.path.insert(0, str(src_dir))


# =============================================================================
# Shared Test Helpers for Bundle Tests
# =============================================================================

# 1x1 PNG; stored under .webp names too, the content sniff decides the type.
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8Xw8AAoMBgQf4xX0AAAAASUVORK5CYII="
)

# Minimal ID3-tagged MP3 header.
MP3_BYTES = b"ID3\x03\x00\x00\x00\x00\x00\x15TIT2\x00\x00\x00\x05\x00\x00\x03Test"


def make_zip(path: Path, entries: dict[str, bytes | str]) -> Path:
    """Write a zip with the given `name -> content` entries (str is UTF-8 encoded)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            zf.writestr(name, data)
    return path


def make_manifest_zip(path: Path, manifest: dict[str, Any], media: dict[str, bytes] | None = None) -> Path:
    entries: dict[str, bytes | str] = {"data.json": json.dumps(manifest)}
    entries.update(media or {})
    return make_zip(path, entries)


def make_store(tmp_path: Path, name: str = "site"):
    from wordbundle.store.memory import MemoryContentStore

    return MemoryContentStore(tmp_path / name / "media")


def sample_full_manifest() -> dict[str, Any]:
    """A full bundle: two categories (child under parent), one word set, two words with audio."""
    return {
        "version": 2,
        "bundle_type": "category_full",
        "categories": [
            {
                "slug": "animals",
                "name": "Animals",
                "description": "All animals",
                "parent_slug": "",
                "meta": {"ll_quiz_prompt_type": ["image"], "ll_quiz_option_type": ["text_title"]},
            },
            {
                "slug": "pets",
                "name": "Pets",
                "description": "",
                "parent_slug": "animals",
                "meta": {"_edit_lock": ["123:1"], "display_color": ["blue"]},
            },
        ],
        "word_images": [
            {
                "slug": "cat",
                "title": "Cat",
                "status": "publish",
                "meta": {"copyright_info": ["CC0"]},
                "categories": ["pets"],
                "featured_image": {"file": "media/11-cat.png", "mime_type": "image/png", "title": "cat", "alt": "A cat"},
            },
            {
                "slug": "dog",
                "title": "Dog",
                "status": "publish",
                "meta": {},
                "categories": ["pets"],
                "featured_image": {"file": "media/12-dog.png", "mime_type": "image/png", "title": "dog", "alt": ""},
            },
        ],
        "wordsets": [
            {"slug": "basics", "name": "Basics", "description": "Starter set", "meta": {"manager_user_id": [7]}},
        ],
        "words": [
            {
                "origin_id": 101,
                "slug": "cat",
                "title": "Cat",
                "content": "",
                "excerpt": "",
                "status": "publish",
                "meta": {"word_translation": ["gato"], "_ll_similar_word_id": ["102"]},
                "categories": ["pets"],
                "wordsets": ["basics"],
                "linked_word_image_slug": "cat",
                "languages": ["spanish"],
                "parts_of_speech": ["noun"],
                "audio_entries": [
                    {
                        "origin_id": 201,
                        "slug": "cat-isolation",
                        "title": "Cat",
                        "status": "publish",
                        "meta": {"recording_date": ["2026-01-01"]},
                        "recording_types": ["isolation"],
                        "audio_file": {"file": "audio/201-cat.mp3", "mime_type": "audio/mpeg", "title": "Cat"},
                    }
                ],
            },
            {
                "origin_id": 102,
                "slug": "dog",
                "title": "Dog",
                "status": "publish",
                "meta": {"word_translation": ["perro"], "_ll_similar_word_id": [101]},
                "categories": ["pets"],
                "wordsets": ["basics"],
                "audio_entries": [
                    {
                        "origin_id": 202,
                        "slug": "dog-isolation",
                        "title": "Dog",
                        "status": "publish",
                        "recording_types": ["isolation"],
                        "audio_file": {"file": "audio/202-dog.mp3", "mime_type": "audio/mpeg", "title": "Dog"},
                    }
                ],
            },
        ],
    }


def sample_full_media() -> dict[str, bytes]:
    return {
        "media/11-cat.png": PNG_BYTES,
        "media/12-dog.png": PNG_BYTES,
        "audio/201-cat.mp3": MP3_BYTES,
        "audio/202-dog.mp3": MP3_BYTES,
    }
