"""Exporting store content as bundle archives."""

from __future__ import annotations

from .serializer import ExportPlan, MediaTracker, build_export_payload, check_soft_limit, format_bytes
from .writer import build_export_filename, write_bundle_archive

__all__ = [
    "ExportPlan",
    "MediaTracker",
    "build_export_filename",
    "build_export_payload",
    "check_soft_limit",
    "format_bytes",
    "write_bundle_archive",
]
