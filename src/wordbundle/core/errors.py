"""Exception types shared by the bundle engine.

Every error carries a stable, human-readable message suitable for test
assertions and for surfacing to an operator. Messages name archive-relative
files only; absolute filesystem locations never appear in them.

Tiers:
- fatal: `ArchiveOpenError`, `ArchiveSafetyError`, `PayloadError`,
  `ExportLimitError` abort the whole operation before any mutation.
- entity-level: `StoreError` is raised by a content store for one entity; the
  reconciler records it and moves on.
"""

from __future__ import annotations


class BundleError(ValueError):
    """Base class for fatal bundle import/export failures."""


class ArchiveOpenError(BundleError):
    """The archive is missing or is not a readable zip file."""


class ArchiveSafetyError(BundleError):
    """The archive failed path or size validation."""


class PayloadError(BundleError):
    """No usable payload could be derived from an extracted archive.

    `details` holds parser-level diagnostics (eg skipped tabular files) so the
    caller can show why nothing was usable.
    """

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = list(details or [])


class ExportLimitError(BundleError):
    """Export media exceeded a hard file-count or byte ceiling."""


class StoreError(RuntimeError):
    """A content-store operation failed for a single entity."""


class ConfigError(ValueError):
    """A configuration override file is invalid."""


__all__ = [
    "ArchiveOpenError",
    "ArchiveSafetyError",
    "BundleError",
    "ConfigError",
    "ExportLimitError",
    "PayloadError",
    "StoreError",
]
