from __future__ import annotations

from pathlib import Path

from conftest import MP3_BYTES, PNG_BYTES
from wordbundle.bundle.media import build_media_catalog, resolve_media_reference, sniff_media_type


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def test_catalog_admits_only_sniffed_media_with_supported_extensions(tmp_path: Path) -> None:
    _write(tmp_path / "images" / "cat.webp", PNG_BYTES)
    _write(tmp_path / "images" / "cat.png", PNG_BYTES)
    _write(tmp_path / "images" / "fake.jpg", b"this is not an image at all")
    _write(tmp_path / "images" / "notes.md", PNG_BYTES)
    _write(tmp_path / "audio" / "meow.mp3", MP3_BYTES)

    catalog = build_media_catalog(tmp_path)

    assert sorted(catalog.images.abs_paths) == ["images/cat.png", "images/cat.webp"]
    assert list(catalog.audio.abs_paths) == ["audio/meow.mp3"]


def test_reference_resolution_prefers_exact_then_requested_then_canonical(tmp_path: Path) -> None:
    _write(tmp_path / "images" / "cat.webp", PNG_BYTES)
    _write(tmp_path / "images" / "cat.png", PNG_BYTES)
    _write(tmp_path / "images" / "dog.png", PNG_BYTES)
    catalog = build_media_catalog(tmp_path)

    assert resolve_media_reference(catalog.images, "CAT.PNG") == "images/cat.png"
    assert resolve_media_reference(catalog.images, "some/dir/cat.png?x=1") == "images/cat.png"
    # cat.jpg does not exist: canonical format wins over other extensions.
    assert resolve_media_reference(catalog.images, "cat.jpg") == "images/cat.webp"
    assert resolve_media_reference(catalog.images, "dog.jpg") == "images/dog.png"
    assert resolve_media_reference(catalog.images, "bird.jpg") is None
    assert resolve_media_reference(catalog.images, "") is None


def test_audio_falls_back_to_whole_root_when_no_audio_dir(tmp_path: Path) -> None:
    _write(tmp_path / "Images" / "cat.webp", PNG_BYTES)
    _write(tmp_path / "meow.mp3", MP3_BYTES)
    _write(tmp_path / "nested" / "purr.mp3", MP3_BYTES)

    catalog = build_media_catalog(tmp_path)

    assert list(catalog.images.abs_paths) == ["Images/cat.webp"]
    assert sorted(catalog.audio.abs_paths) == ["meow.mp3", "nested/purr.mp3"]
    assert resolve_media_reference(catalog.audio, "meow.wav") == "meow.mp3"


def test_sniff_media_type_uses_content_not_extension(tmp_path: Path) -> None:
    p = tmp_path / "looks.webp"
    p.write_bytes(PNG_BYTES)
    assert sniff_media_type(p) == "image/png"

    q = tmp_path / "sound.png"
    q.write_bytes(MP3_BYTES)
    assert sniff_media_type(q).startswith("audio/")

    svg = tmp_path / "icon.svg"
    svg.write_text('<svg xmlns="http://www.w3.org/2000/svg"></svg>', encoding="utf-8")
    assert sniff_media_type(svg).startswith("image/svg")
