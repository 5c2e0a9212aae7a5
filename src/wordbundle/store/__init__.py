"""Content-store collaborator interface, reference store and key-value state."""

from __future__ import annotations

from .base import (
    ITEM_ATTACHMENT,
    ITEM_WORD,
    ITEM_WORD_AUDIO,
    ITEM_WORD_IMAGE,
    TAX_CATEGORY,
    TAX_LANGUAGE,
    TAX_PART_OF_SPEECH,
    TAX_RECORDING_TYPE,
    TAX_WORDSET,
    ContentStore,
    Item,
    Term,
)
from .kv import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore, PreviewCache
from .memory import MemoryContentStore

__all__ = [
    "ITEM_ATTACHMENT",
    "ITEM_WORD",
    "ITEM_WORD_AUDIO",
    "ITEM_WORD_IMAGE",
    "TAX_CATEGORY",
    "TAX_LANGUAGE",
    "TAX_PART_OF_SPEECH",
    "TAX_RECORDING_TYPE",
    "TAX_WORDSET",
    "ContentStore",
    "Item",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryContentStore",
    "MemoryKeyValueStore",
    "PreviewCache",
    "Term",
]
