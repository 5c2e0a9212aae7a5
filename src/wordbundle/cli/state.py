"""On-disk store directory shared by the CLI commands.

Layout of `--store DIR`:
- `store.json`: persisted `MemoryContentStore`
- `media/`: managed media files
- `state.json`: key-value state (import history, pending previews)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from wordbundle.core.config import BundleConfig, read_config_json
from wordbundle.core.errors import ConfigError, StoreError
from wordbundle.reconcile.history import ImportHistory
from wordbundle.store.kv import JsonFileKeyValueStore, PreviewCache
from wordbundle.store.memory import MemoryContentStore

STORE_FILE = "store.json"
MEDIA_DIR = "media"
STATE_FILE = "state.json"


@dataclass
class StoreDir:
    root: Path
    store: MemoryContentStore
    kv: JsonFileKeyValueStore
    config: BundleConfig

    @property
    def history(self) -> ImportHistory:
        return ImportHistory(self.kv, limit=self.config.history_limit)

    @property
    def previews(self) -> PreviewCache:
        return PreviewCache(self.kv)

    def save(self) -> None:
        self.store.save(self.root / STORE_FILE)


def load_config(path: Optional[str]) -> BundleConfig:
    if not path:
        return BundleConfig()
    try:
        return read_config_json(path)
    except (ConfigError, OSError) as e:
        raise typer.BadParameter(str(e)) from e


def open_store_dir(path: str, *, config: BundleConfig) -> StoreDir:
    root = Path(path)
    root.mkdir(parents=True, exist_ok=True)
    try:
        store = MemoryContentStore.load(root / STORE_FILE, media_root=root / MEDIA_DIR)
    except (StoreError, ValueError) as e:
        raise typer.BadParameter(f"--store: {e}") from e
    return StoreDir(root=root, store=store, kv=JsonFileKeyValueStore(root / STATE_FILE), config=config)
