"""Media catalog for an extracted bundle.

Images are indexed from `images/`; audio from `audio/` and/or `audios/`, or
from the whole extraction root when neither directory exists. Each root keeps
three maps:

- `by_name`: lower-case basename -> relative path (first in walk order wins)
- `by_stem`: lower-case stem -> candidates ordered by extension preference,
  then by path
- `abs_paths`: relative path -> absolute path

Files are admitted only with a supported extension and a content sniff that
agrees with the kind (image/* for images; audio/* or video/* for audio).
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import puremagic

from wordbundle.core.config import BundleConfig

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS: tuple[str, ...] = ("webp", "avif", "png", "jpg", "jpeg", "gif", "svg", "bmp")
AUDIO_EXTENSIONS: tuple[str, ...] = ("mp3", "m4a", "aac", "ogg", "oga", "opus", "wav", "flac", "webm", "mp4")
CANONICAL_IMAGE_EXTENSION = "webp"
CANONICAL_AUDIO_EXTENSION = "mp3"

TABULAR_EXTENSIONS: tuple[str, ...] = ("csv", "tsv", "txt")
IMAGE_DIRS: tuple[str, ...] = ("images",)
AUDIO_DIRS: tuple[str, ...] = ("audio", "audios")

KIND_IMAGE = "image"
KIND_AUDIO = "audio"

# Only the vector format may fall back to an extension-based guess.
_EXTENSION_TYPED = {"svg"}


@dataclass(frozen=True)
class MediaCandidate:
    rel_path: str
    ext: str


@dataclass
class MediaCatalogRoot:
    kind: str
    extensions: tuple[str, ...]
    canonical_ext: str
    by_name: dict[str, str] = field(default_factory=dict)
    by_stem: dict[str, list[MediaCandidate]] = field(default_factory=dict)
    abs_paths: dict[str, Path] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.abs_paths)

    def add(self, rel_path: str, abs_path: Path) -> None:
        name = PurePosixPath(rel_path).name.lower()
        stem, ext = _split_name(name)
        self.by_name.setdefault(name, rel_path)
        self.by_stem.setdefault(stem, []).append(MediaCandidate(rel_path=rel_path, ext=ext))
        self.abs_paths[rel_path] = abs_path

    def finish(self) -> None:
        rank = {e: i for i, e in enumerate(self.extensions)}
        for bucket in self.by_stem.values():
            bucket.sort(key=lambda c: (rank.get(c.ext, len(rank)), c.rel_path))


@dataclass
class MediaCatalog:
    root: Path
    images: MediaCatalogRoot
    audio: MediaCatalogRoot


def _split_name(name: str) -> tuple[str, str]:
    p = PurePosixPath(name)
    return p.stem.lower(), p.suffix.lstrip(".").lower()


def sniff_media_type(path: Path) -> str:
    """Content-sniffed MIME type, or "" when the file is not recognized."""
    p = Path(path)
    ext = p.suffix.lstrip(".").lower()
    try:
        mime = puremagic.from_file(str(p), mime=True) or ""
    except (puremagic.PureError, ValueError, OSError) as e:
        logger.debug("content sniff failed for %s: %s", p.name, e)
        mime = ""
    mime = mime.strip().lower()
    if ext in _EXTENSION_TYPED and not mime.startswith("image/"):
        guessed, _ = mimetypes.guess_type(p.name)
        mime = (guessed or "image/svg+xml").lower()
    return mime


def is_image_type(mime: str) -> bool:
    return mime.startswith("image/")


def is_audio_type(mime: str) -> bool:
    return mime.startswith("audio/") or mime.startswith("video/")


def _walk(base: Path, root: Path, target: MediaCatalogRoot, *, skip_dirs: set[Path] | None = None) -> None:
    accept = is_image_type if target.kind == KIND_IMAGE else is_audio_type
    skip_dirs = skip_dirs or set()
    for p in sorted(base.rglob("*")):
        if not p.is_file() or any(p.is_relative_to(d) for d in skip_dirs):
            continue
        ext = p.suffix.lstrip(".").lower()
        if ext not in target.extensions:
            continue
        rel = p.relative_to(root).as_posix()
        if p.parent == root and (p.name.lower() == "data.json" or ext in TABULAR_EXTENSIONS):
            continue
        mime = sniff_media_type(p)
        if not accept(mime):
            logger.debug("ignoring %s: sniffed as %r", rel, mime or "unknown")
            continue
        target.add(rel, p)


def _child_dirs(root: Path, names: tuple[str, ...]) -> list[Path]:
    out: list[Path] = []
    for child in sorted(root.iterdir()):
        if child.is_dir() and child.name.lower() in names:
            out.append(child)
    return out


def build_media_catalog(root: Path, *, config: BundleConfig | None = None) -> MediaCatalog:
    """Index the images and audio under an extraction root."""
    root = Path(root)
    images = MediaCatalogRoot(KIND_IMAGE, IMAGE_EXTENSIONS, CANONICAL_IMAGE_EXTENSION)
    audio = MediaCatalogRoot(KIND_AUDIO, AUDIO_EXTENSIONS, CANONICAL_AUDIO_EXTENSION)

    image_dirs = _child_dirs(root, IMAGE_DIRS)
    for d in image_dirs:
        _walk(d, root, images)

    audio_dirs = _child_dirs(root, AUDIO_DIRS)
    if audio_dirs:
        for d in audio_dirs:
            _walk(d, root, audio)
    else:
        _walk(root, root, audio, skip_dirs=set(image_dirs))

    images.finish()
    audio.finish()
    logger.debug("media catalog: %d image(s), %d audio file(s)", len(images), len(audio))
    return MediaCatalog(root=root, images=images, audio=audio)


def _reference_basename(ref: str) -> str:
    s = str(ref or "").strip()
    for sep in ("?", "#"):
        s = s.split(sep, 1)[0]
    s = s.replace("\\", "/").rstrip("/")
    return s.rsplit("/", 1)[-1].strip().lower()


def resolve_media_reference(catalog_root: MediaCatalogRoot, ref: str) -> str | None:
    """Resolve a tabular media reference to a catalog-relative path.

    Exact basename first; otherwise the stem bucket, preferring the requested
    extension, then the canonical format, then the first candidate.
    """
    name = _reference_basename(ref)
    if not name:
        return None
    exact = catalog_root.by_name.get(name)
    if exact is not None:
        return exact

    stem, ext = _split_name(name)
    bucket = catalog_root.by_stem.get(stem) or []
    if not bucket:
        return None
    for wanted in (ext, catalog_root.canonical_ext):
        for cand in bucket:
            if wanted and cand.ext == wanted:
                return cand.rel_path
    return bucket[0].rel_path


__all__ = [
    "AUDIO_EXTENSIONS",
    "IMAGE_EXTENSIONS",
    "MediaCandidate",
    "MediaCatalog",
    "MediaCatalogRoot",
    "build_media_catalog",
    "is_audio_type",
    "is_image_type",
    "resolve_media_reference",
    "sniff_media_type",
]
