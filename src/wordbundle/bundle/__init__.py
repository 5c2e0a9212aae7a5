"""Bundle reading: safe extraction, payload loading, tabular ingestion, media."""

from __future__ import annotations

from .archive import extract_archive_safely, extracted_archive, normalize_archive_path, resolve_archive_path
from .loader import LoadedPayload, load_payload
from .manifest import manifest_to_payload, payload_to_manifest, read_manifest_payload
from .media import build_media_catalog, resolve_media_reference, sniff_media_type
from .tabular import decode_tabular_bytes, detect_delimiter, ingest_tabular_bundle, normalize_header

__all__ = [
    "LoadedPayload",
    "build_media_catalog",
    "decode_tabular_bytes",
    "detect_delimiter",
    "extract_archive_safely",
    "extracted_archive",
    "ingest_tabular_bundle",
    "load_payload",
    "manifest_to_payload",
    "normalize_archive_path",
    "normalize_header",
    "payload_to_manifest",
    "read_manifest_payload",
    "resolve_archive_path",
    "resolve_media_reference",
    "sniff_media_type",
]
