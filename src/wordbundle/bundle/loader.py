"""Payload detection and dispatch for an extracted bundle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from wordbundle.core.config import BundleConfig
from wordbundle.core.errors import PayloadError
from wordbundle.core.model import BundlePayload, TabularSummary

from .manifest import MANIFEST_NAME, read_manifest_payload
from .tabular import ingest_tabular_bundle

logger = logging.getLogger(__name__)

SOURCE_MANIFEST = "manifest"
SOURCE_TABULAR = "tabular"


@dataclass(frozen=True)
class LoadedPayload:
    payload: BundlePayload
    source: str
    summary: TabularSummary | None = None

    @property
    def warnings(self) -> list[str]:
        return self.summary.all_warnings() if self.summary is not None else []


def load_payload(root: Path, *, config: BundleConfig | None = None) -> LoadedPayload:
    """Load `data.json` when present, otherwise ingest the tabular files."""
    config = config or BundleConfig()
    root = Path(root)
    manifest = root / MANIFEST_NAME
    if manifest.is_file():
        payload = read_manifest_payload(manifest)
        logger.info(
            "manifest bundle (%s): %d categor(y/ies), %d word image(s), %d word(s)",
            payload.bundle_type,
            len(payload.categories),
            len(payload.word_images),
            len(payload.words),
        )
        return LoadedPayload(payload=payload, source=SOURCE_MANIFEST)

    payload, summary = ingest_tabular_bundle(root, config=config)
    if not payload.categories and not payload.words:
        if summary.files_found == 0:
            raise PayloadError(
                f"Import failed: {MANIFEST_NAME} not found and no CSV/TSV files were found inside the zip."
            )
        raise PayloadError(
            "Import failed: no usable rows were found in the CSV/TSV files.",
            details=summary.all_warnings(),
        )
    return LoadedPayload(payload=payload, source=SOURCE_TABULAR, summary=summary)


__all__ = ["LoadedPayload", "SOURCE_MANIFEST", "SOURCE_TABULAR", "load_payload"]
