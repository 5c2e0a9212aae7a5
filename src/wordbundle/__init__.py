"""wordbundle: zip bundle import/export for vocabulary content.

A bundle carries categories, word images, word sets, words and word audio,
either as a native `data.json` manifest or as CSV/TSV quiz sheets with image
and audio folders. Importing reconciles a bundle into a content store by slug
and records what was created so the import can be undone.
"""

from __future__ import annotations

from wordbundle.core import BundleConfig, BundlePayload, ImportResult
from wordbundle.reconcile import ImportOptions, process_import_archive, read_import_preview

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "BundleConfig",
    "BundlePayload",
    "ImportOptions",
    "ImportResult",
    "process_import_archive",
    "read_import_preview",
]
