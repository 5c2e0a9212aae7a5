from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from conftest import make_zip
from wordbundle.bundle.archive import (
    extract_archive_safely,
    extracted_archive,
    normalize_archive_path,
    resolve_archive_path,
)
from wordbundle.core.config import BundleConfig
from wordbundle.core.errors import ArchiveOpenError, ArchiveSafetyError


def _files_under(root: Path) -> list[Path]:
    return [p for p in root.rglob("*") if p.is_file()]


def test_normalize_archive_path_rejects_traversal_absolute_drive_and_nul():
    assert normalize_archive_path("images/./cat.webp") == "images/cat.webp"
    assert normalize_archive_path("images\\cat.webp") == "images/cat.webp"
    assert normalize_archive_path("a//b/") == "a/b"

    assert normalize_archive_path("../evil.txt") == ""
    assert normalize_archive_path("images/../../evil.txt") == ""
    assert normalize_archive_path("/etc/passwd") == ""
    assert normalize_archive_path("C:/Windows/win.ini") == ""
    assert normalize_archive_path("a\0b") == ""
    assert normalize_archive_path("") == ""


def test_resolve_archive_path_stays_inside_root(tmp_path: Path) -> None:
    root = tmp_path / "x"
    root.mkdir()
    resolved = resolve_archive_path(root, "images/cat.webp")
    assert resolved is not None
    assert resolved.is_relative_to(root.resolve())
    assert resolve_archive_path(root, "../x2/cat.webp") is None
    assert resolve_archive_path(root, ".") is None


def test_unsafe_entry_aborts_before_any_file_is_written(tmp_path: Path) -> None:
    zp = make_zip(tmp_path / "evil.zip", {"good.txt": "ok", "../evil.txt": "nope"})
    dest = tmp_path / "out"
    dest.mkdir()
    with zipfile.ZipFile(zp) as zf:
        with pytest.raises(ArchiveSafetyError, match=r"invalid file path"):
            extract_archive_safely(zf, dest)
    assert _files_under(dest) == []
    assert not (tmp_path / "evil.txt").exists()


def test_absolute_entry_is_rejected(tmp_path: Path) -> None:
    zp = tmp_path / "abs.zip"
    with zipfile.ZipFile(zp, "w") as zf:
        zf.writestr(zipfile.ZipInfo("/abs/evil.txt"), b"x")
    with zipfile.ZipFile(zp) as zf:
        with pytest.raises(ArchiveSafetyError):
            extract_archive_safely(zf, tmp_path / "out")


def test_entry_count_and_size_limits(tmp_path: Path) -> None:
    zp = make_zip(tmp_path / "many.zip", {"a.txt": "1", "b.txt": "2", "c.txt": "3"})
    with zipfile.ZipFile(zp) as zf:
        with pytest.raises(ArchiveSafetyError, match=r"too many files"):
            extract_archive_safely(zf, tmp_path / "out1", config=BundleConfig(max_archive_entries=2))

    zp = make_zip(tmp_path / "big.zip", {"a.txt": "x" * 20})
    with zipfile.ZipFile(zp) as zf:
        with pytest.raises(ArchiveSafetyError, match=r"uncompressed zip size is too large"):
            extract_archive_safely(zf, tmp_path / "out2", config=BundleConfig(max_uncompressed_bytes=10))


def test_empty_zip_is_rejected(tmp_path: Path) -> None:
    zp = tmp_path / "empty.zip"
    with zipfile.ZipFile(zp, "w"):
        pass
    with zipfile.ZipFile(zp) as zf:
        with pytest.raises(ArchiveSafetyError, match=r"zip file is empty"):
            extract_archive_safely(zf, tmp_path / "out")


def test_extract_writes_nested_files(tmp_path: Path) -> None:
    zp = make_zip(tmp_path / "ok.zip", {"data.json": "{}", "images/cat.webp": b"\x00\x01", "audio/a/b.mp3": b"x"})
    dest = tmp_path / "out"
    with zipfile.ZipFile(zp) as zf:
        assert extract_archive_safely(zf, dest) == 3
    assert (dest / "images" / "cat.webp").read_bytes() == b"\x00\x01"
    assert (dest / "audio" / "a" / "b.mp3").is_file()


def test_extracted_archive_removes_temp_dir_on_success_and_failure(tmp_path: Path) -> None:
    zp = make_zip(tmp_path / "ok.zip", {"data.json": "{}"})
    with extracted_archive(zp) as root:
        assert (root / "data.json").is_file()
        seen = root
    assert not seen.exists()

    with pytest.raises(RuntimeError):
        with extracted_archive(zp) as root:
            seen = root
            raise RuntimeError("boom")
    assert not seen.exists()


def test_extracted_archive_rejects_missing_and_non_zip_files(tmp_path: Path) -> None:
    with pytest.raises(ArchiveOpenError, match=r"uploaded file is missing"):
        with extracted_archive(tmp_path / "nope.zip"):
            pass

    bogus = tmp_path / "bogus.zip"
    bogus.write_text("not a zip", encoding="utf-8")
    with pytest.raises(ArchiveOpenError, match=r"could not open zip file"):
        with extracted_archive(bogus):
            pass
