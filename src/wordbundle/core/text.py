"""Text normalization helpers: slugs, comparison keys, statuses, byte sizes."""

from __future__ import annotations

import re
import unicodedata
from typing import Any

ITEM_STATUSES = ("publish", "draft", "pending", "private", "future")

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]", re.UNICODE)
_SLUG_DASH_RE = re.compile(r"[\s_-]+", re.UNICODE)
_WS_RE = re.compile(r"\s+", re.UNICODE)


def slugify(value: Any) -> str:
    """Lower-case, dash-separated slug.

    Letters outside ASCII are kept (Hebrew or Cyrillic answers still get a
    readable slug); combining marks are dropped so vowel points do not leak
    into slugs.
    """
    if value is None:
        return ""
    s = unicodedata.normalize("NFKD", str(value))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = _SLUG_STRIP_RE.sub("", s).strip().lower()
    s = _SLUG_DASH_RE.sub("-", s)
    return s.strip("-")


def normalize_for_compare(value: Any) -> str:
    """Case, whitespace and diacritic-insensitive comparison key."""
    if value is None:
        return ""
    s = unicodedata.normalize("NFKD", str(value))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = _WS_RE.sub(" ", s).strip()
    return s.casefold()


def sanitize_status(value: Any, fallback: str = "draft") -> str:
    """Clamp a status to a supported value."""
    if fallback not in ITEM_STATUSES:
        fallback = "draft"
    s = str(value or "").strip().lower()
    return s if s in ITEM_STATUSES else fallback


def unique_slug(base: str, taken: set[str]) -> str:
    """Return `base`, or `base-2`, `base-3`, ... whichever is not in `taken`.

    The chosen slug is added to `taken`.
    """
    candidate = base
    n = 2
    while candidate in taken:
        candidate = f"{base}-{n}"
        n += 1
    taken.add(candidate)
    return candidate


def format_bytes(n: int) -> str:
    size = float(n)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{n} B"  # pragma: no cover
