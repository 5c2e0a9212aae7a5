"""Engine configuration.

All tunables the pipeline recognizes live on `BundleConfig`, which is passed
into every stage at construction time. A JSON override file may be loaded with
`read_config_json()`; it is validated strictly (unknown keys and wrong types
are rejected) in the same way the artifact readers validate their inputs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from wordbundle.core.errors import ConfigError

MB = 1024 * 1024

DEFAULT_EXPORT_HARD_LIMIT_BYTES = 1024 * MB

# Keys that only the framework writes; never imported, never exported.
FRAMEWORK_META_KEYS: tuple[str, ...] = (
    "_edit_lock",
    "_edit_last",
    "_thumbnail_id",
    "_wp_attached_file",
    "_wp_attachment_metadata",
    "_wp_attachment_image_alt",
    "_ll_autopicked_image_id",
    "_ll_cache_*",
)

# Reserved-prefix keys that still carry content across sites.
ALLOWED_RESERVED_META_KEYS: tuple[str, ...] = (
    "_ll_similar_word_id",
    "_ll_specific_wrong_answer_ids",
    "_ll_specific_wrong_answer_texts",
)

# Meta keys whose values are word ids from the exporting site.
ID_REFERENCE_META_KEYS: tuple[str, ...] = (
    "similar_word_id",
    "_ll_similar_word_id",
    "_ll_specific_wrong_answer_ids",
)


@dataclass(frozen=True)
class BundleConfig:
    max_archive_entries: int = 5000
    max_uncompressed_bytes: int = max(512 * MB, DEFAULT_EXPORT_HARD_LIMIT_BYTES)
    export_soft_limit_bytes: int = 128 * MB
    export_hard_limit_bytes: int = DEFAULT_EXPORT_HARD_LIMIT_BYTES
    export_hard_limit_files: int = 5000
    # Previews warn at or above these; 0 disables a check.
    import_soft_limit_files: int = 1000
    import_soft_limit_bytes: int = 128 * MB
    history_limit: int = 20
    max_parser_warnings: int = 50
    regional_encodings: tuple[str, ...] = ("cp1255", "cp1252")
    reserved_meta_prefix: str = "_"
    allowed_meta_keys: tuple[str, ...] = ALLOWED_RESERVED_META_KEYS
    blocked_meta_keys: tuple[str, ...] = FRAMEWORK_META_KEYS
    id_reference_meta_keys: tuple[str, ...] = ID_REFERENCE_META_KEYS

    def with_overrides(self, **overrides: Any) -> "BundleConfig":
        return replace(self, **overrides)


_INT_FIELDS = {
    "max_archive_entries",
    "max_uncompressed_bytes",
    "export_soft_limit_bytes",
    "export_hard_limit_bytes",
    "export_hard_limit_files",
    "import_soft_limit_files",
    "import_soft_limit_bytes",
    "history_limit",
    "max_parser_warnings",
}
_TUPLE_FIELDS = {
    "regional_encodings",
    "allowed_meta_keys",
    "blocked_meta_keys",
    "id_reference_meta_keys",
}


def _coerce_field(name: str, value: Any) -> Any:
    where = f"config.{name}"
    if name in _INT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{where}: expected integer, got {type(value).__name__}")
        if value < 0:
            raise ConfigError(f"{where}: must be >= 0")
        return value
    if name in _TUPLE_FIELDS:
        if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
            raise ConfigError(f"{where}: expected array of non-empty strings")
        return tuple(v.strip() for v in value)
    if name == "reserved_meta_prefix":
        if not isinstance(value, str) or not value:
            raise ConfigError(f"{where}: must be a non-empty string")
        return value
    raise ConfigError(f"{where}: unknown key")  # pragma: no cover


def config_from_mapping(obj: Any, *, base: BundleConfig | None = None) -> BundleConfig:
    """Apply a mapping of overrides onto `base` (or the defaults)."""
    if not isinstance(obj, dict):
        raise ConfigError(f"config: expected JSON object, got {type(obj).__name__}")
    known = {f.name for f in fields(BundleConfig)}
    unknown = sorted(k for k in obj if k not in known)
    if unknown:
        raise ConfigError(f"config: unknown keys {unknown}")
    overrides = {k: _coerce_field(k, v) for k, v in obj.items()}
    cfg = (base or BundleConfig()).with_overrides(**overrides)
    if "max_uncompressed_bytes" not in overrides and "export_hard_limit_bytes" in overrides:
        # The extraction budget tracks the export ceiling unless set explicitly.
        cfg = cfg.with_overrides(max_uncompressed_bytes=max(512 * MB, cfg.export_hard_limit_bytes))
    return cfg


def read_config_json(path: str | Path) -> BundleConfig:
    """Read a JSON override file and return the resulting config."""
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"config: invalid JSON ({e.msg} at line {e.lineno})") from e
    return config_from_mapping(data)


__all__ = [
    "BundleConfig",
    "config_from_mapping",
    "read_config_json",
]
