"""Relative-path normalization and containment checks.

Used for archive entries, manifest file references and managed-storage paths.
Normalization works on the string; containment is then re-checked on the
resolved filesystem path so symlinks cannot escape the root.
"""

from __future__ import annotations

import re
from pathlib import Path

_DRIVE_RE = re.compile(r"^[A-Za-z]:(/|$)")


def normalize_relative_path(path: str) -> str:
    """Return a clean `a/b/c` relative path, or "" when the path is unsafe.

    Rejected: empty, NUL bytes, absolute paths, drive-letter prefixes and any
    `..` segment. Empty and `.` segments are dropped.
    """
    p = str(path or "").replace("\\", "/").strip()
    if not p or "\0" in p:
        return ""
    if p.startswith("/") or _DRIVE_RE.match(p):
        return ""

    segments: list[str] = []
    for raw in p.split("/"):
        seg = raw.strip()
        if seg in ("", "."):
            continue
        if seg == "..":
            return ""
        segments.append(seg)
    return "/".join(segments)


def resolve_within(root: Path, relative_path: str) -> Path | None:
    """Resolve `relative_path` under `root`; None if unsafe or outside."""
    normalized = normalize_relative_path(relative_path)
    if not normalized:
        return None
    base = Path(root).resolve()
    target = (base / normalized).resolve()
    if target == base or not target.is_relative_to(base):
        return None
    return target


def is_within(root: Path, path: Path) -> bool:
    """True when `path` resolves strictly inside `root`."""
    base = Path(root).resolve()
    target = Path(path).resolve()
    return target != base and target.is_relative_to(base)
