"""Key-value state used for import history and preview hand-off.

Process-wide state (the capped history list, per-user preview payloads) lives
behind this small interface so callers can inject a file, an embedded
database or a service instead of relying on module globals.
"""

from __future__ import annotations

import json
import os
import re
import secrets
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

_TOKEN_RE = re.compile(r"[^a-zA-Z0-9_-]")


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    def pop(self, key: str, default: Any = None) -> Any:
        value = self.get(key, default)
        self.delete(key)
        return value


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return json.loads(json.dumps(self._data[key])) if key in self._data else default

    def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so stored values behave like persisted ones.
        self._data[key] = json.loads(json.dumps(value))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """All keys in one JSON object on disk; every write is atomic."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        obj = json.loads(self.path.read_text(encoding="utf-8"))
        return obj if isinstance(obj, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        fd, tmp = tempfile.mkstemp(prefix=".kv-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class PreviewCache:
    """Read-once slot for an import preview, keyed by user and token."""

    def __init__(self, kv: KeyValueStore, *, prefix: str = "import_preview"):
        self.kv = kv
        self.prefix = prefix

    def _key(self, user: str, token: str) -> str:
        return f"{self.prefix}_{_TOKEN_RE.sub('', str(user)) or '0'}_{_TOKEN_RE.sub('', str(token))}"

    def put(self, user: str, value: Any) -> str:
        token = secrets.token_urlsafe(12)
        self.kv.set(self._key(user, token), value)
        return token

    def pop(self, user: str, token: str) -> Any:
        return self.kv.pop(self._key(user, token))
