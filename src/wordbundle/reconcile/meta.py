"""Metadata replace policy for imported entities.

Keys under the reserved prefix are internal to the content store and are
rejected unless allow-listed. Framework bookkeeping keys are rejected even if
an allow-list pattern would match them. Accepted keys replace the stored
values completely.
"""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase

from wordbundle.core.config import BundleConfig
from wordbundle.core.model import Meta


@dataclass(frozen=True)
class MetaPolicy:
    reserved_prefix: str
    allowed: tuple[str, ...]
    blocked: tuple[str, ...]

    @classmethod
    def from_config(cls, config: BundleConfig) -> "MetaPolicy":
        return cls(
            reserved_prefix=config.reserved_meta_prefix,
            allowed=config.allowed_meta_keys,
            blocked=config.blocked_meta_keys,
        )

    def is_blocked(self, key: str) -> bool:
        return any(fnmatchcase(key, pat) for pat in self.blocked)

    def accepts(self, key: str) -> bool:
        if not key or self.is_blocked(key):
            return False
        if key.startswith(self.reserved_prefix):
            return any(fnmatchcase(key, pat) for pat in self.allowed)
        return True

    def split(self, meta: Meta, *, extra_blocked: tuple[str, ...] = ()) -> tuple[Meta, list[str]]:
        """Return `(accepted, rejected_keys)`."""
        accepted: Meta = {}
        rejected: list[str] = []
        for key, values in meta.items():
            if key in extra_blocked or not self.accepts(key):
                rejected.append(key)
                continue
            accepted[key] = list(values)
        return accepted, rejected

    def exportable(self, meta: Meta, *, extra_skip: tuple[str, ...] = ()) -> Meta:
        """Meta as written into an export; framework keys never leave the store."""
        return {k: list(v) for k, v in sorted(meta.items()) if k not in extra_skip and not self.is_blocked(k)}


__all__ = ["MetaPolicy"]
