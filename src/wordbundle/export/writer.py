"""Write an `ExportPlan` to a bundle zip on disk."""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path

from wordbundle.bundle.manifest import MANIFEST_NAME, manifest_json_text
from wordbundle.core.text import slugify

from .serializer import ExportPlan

logger = logging.getLogger(__name__)

DEFAULT_FILENAME_PREFIX = "wordbundle-export"


def write_bundle_archive(plan: ExportPlan, out_path: str | Path) -> Path:
    """Write `data.json` and every planned media file; the target appears atomically."""
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".export-", suffix=".zip", dir=str(out.parent))
    os.close(fd)
    try:
        with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(MANIFEST_NAME, manifest_json_text(plan.payload))
            for source, zip_path in plan.files:
                zf.write(source, zip_path)
        os.replace(tmp, out)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.info("wrote %s (%d media file(s))", out.name, len(plan.files))
    return out


def build_export_filename(
    *,
    include_full_bundle: bool = False,
    category_slug: str = "",
    wordset_slug: str = "",
    now: datetime | None = None,
    prefix: str = DEFAULT_FILENAME_PREFIX,
) -> str:
    # Example: wordbundle-export-full-animals-wordset-basics-20260131-120000.zip
    now = now or datetime.now()
    parts = [prefix, "full" if include_full_bundle else "images"]
    parts.append(slugify(category_slug) or "all-categories")
    if include_full_bundle and slugify(wordset_slug):
        parts.append(f"wordset-{slugify(wordset_slug)}")
    parts.append(now.strftime("%Y%m%d-%H%M%S"))
    return "-".join(parts) + ".zip"


__all__ = ["DEFAULT_FILENAME_PREFIX", "build_export_filename", "write_bundle_archive"]
