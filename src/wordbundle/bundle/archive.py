"""Safe zip extraction.

Extraction is two-phase: every entry is validated (count, declared sizes,
path normalization and containment) before the first byte is written. Only
then are directories created and files stream-copied out of the archive.

`extracted_archive()` is the entry point used by the import pipeline; it
owns the temporary directory and removes it on every exit path.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from wordbundle.core.config import BundleConfig
from wordbundle.core.errors import ArchiveOpenError, ArchiveSafetyError
from wordbundle.core.paths import normalize_relative_path, resolve_within

logger = logging.getLogger(__name__)

_COPY_CHUNK = 1024 * 1024


def normalize_archive_path(path: str) -> str:
    """Normalize an archive entry name; "" when it is unsafe."""
    return normalize_relative_path(path)


def resolve_archive_path(root: Path, relative_path: str) -> Path | None:
    """Resolve an archive-relative path under `root`, or None if it escapes."""
    return resolve_within(root, relative_path)


def _plan_extraction(zf: zipfile.ZipFile, dest: Path, config: BundleConfig) -> list[tuple[zipfile.ZipInfo, Path]]:
    entries = zf.infolist()
    if not entries:
        raise ArchiveSafetyError("Import failed: zip file is empty.")
    if len(entries) > config.max_archive_entries:
        raise ArchiveSafetyError("Import failed: zip contains too many files.")

    plan: list[tuple[zipfile.ZipInfo, Path]] = []
    total = 0
    for info in entries:
        name = info.filename
        normalized = normalize_archive_path(name)
        if not normalized:
            raise ArchiveSafetyError("Import failed: zip contains an invalid file path.")
        target = resolve_archive_path(dest, normalized)
        if target is None:
            raise ArchiveSafetyError("Import failed: zip contains an unsafe file path.")

        if info.is_dir() or name.endswith("\\"):
            plan.append((info, target))
            continue

        if info.file_size < 0:
            raise ArchiveSafetyError("Import failed: zip entry size is invalid.")
        total += info.file_size
        if total > config.max_uncompressed_bytes:
            raise ArchiveSafetyError("Import failed: uncompressed zip size is too large.")
        plan.append((info, target))
    return plan


def extract_archive_safely(zf: zipfile.ZipFile, dest: Path, *, config: BundleConfig | None = None) -> int:
    """Validate and extract `zf` into `dest`; return the number of files written.

    Raises `ArchiveSafetyError` on any failure. The caller removes `dest` if
    extraction fails part-way.
    """
    config = config or BundleConfig()
    dest = Path(dest)
    plan = _plan_extraction(zf, dest, config)

    written = 0
    for info, target in plan:
        if info.is_dir() or info.filename.endswith("\\"):
            try:
                target.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ArchiveSafetyError("Import failed: could not create extraction folders.") from e
            continue
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveSafetyError("Import failed: could not create extraction folders.") from e
        # Directory creation may have introduced a symlinked parent; re-check.
        if resolve_archive_path(dest, info.filename) != target:
            raise ArchiveSafetyError("Import failed: zip contains an unsafe file path.")
        try:
            with zf.open(info, "r") as src, target.open("wb") as out:
                shutil.copyfileobj(src, out, _COPY_CHUNK)
        except (OSError, zipfile.BadZipFile, EOFError) as e:
            raise ArchiveSafetyError("Import failed: could not read a file from the zip.") from e
        written += 1

    logger.debug("extracted %d file(s) from archive", written)
    return written


@contextmanager
def extracted_archive(zip_path: str | Path, *, config: BundleConfig | None = None) -> Iterator[Path]:
    """Extract `zip_path` into a fresh temporary directory and yield it."""
    p = Path(zip_path)
    if not p.is_file():
        raise ArchiveOpenError("Import failed: uploaded file is missing.")
    try:
        zf = zipfile.ZipFile(p, "r")
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveOpenError("Import failed: could not open zip file.") from e

    root = Path(tempfile.mkdtemp(prefix="wordbundle-import-"))
    try:
        with zf:
            extract_archive_safely(zf, root, config=config)
        yield root
    finally:
        shutil.rmtree(root, ignore_errors=True)


__all__ = [
    "extract_archive_safely",
    "extracted_archive",
    "normalize_archive_path",
    "resolve_archive_path",
]
