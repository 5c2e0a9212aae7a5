"""Content-store collaborator interface.

The bundle engine never owns content. It talks to a `ContentStore` that keeps
taxonomy terms (categories, wordsets, languages, ...), content items (words,
word images, word audio, attachments), their metadata and memberships, plus a
managed media area on disk.

Implementations raise `StoreError` for any per-entity failure; the reconciler
turns those into scoped error messages and carries on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

TAX_CATEGORY = "word-category"
TAX_WORDSET = "wordset"
TAX_LANGUAGE = "language"
TAX_PART_OF_SPEECH = "part_of_speech"
TAX_RECORDING_TYPE = "recording_type"

TAXONOMIES = (TAX_CATEGORY, TAX_WORDSET, TAX_LANGUAGE, TAX_PART_OF_SPEECH, TAX_RECORDING_TYPE)

ITEM_WORD = "words"
ITEM_WORD_IMAGE = "word_images"
ITEM_WORD_AUDIO = "word_audio"
ITEM_ATTACHMENT = "attachment"

ITEM_TYPES = (ITEM_WORD, ITEM_WORD_IMAGE, ITEM_WORD_AUDIO, ITEM_ATTACHMENT)

# Meta key holding the stored audio path on word_audio items.
AUDIO_PATH_META_KEY = "audio_file_path"
# Meta key linking a word to its word image.
LINKED_IMAGE_META_KEY = "_ll_autopicked_image_id"


@dataclass
class Term:
    id: int
    taxonomy: str
    slug: str
    name: str
    description: str = ""
    parent_id: int = 0


@dataclass
class Item:
    id: int
    item_type: str
    slug: str
    title: str = ""
    content: str = ""
    excerpt: str = ""
    status: str = "draft"
    parent_id: int = 0
    # Attachments only: stored path relative to the media root.
    file: str = ""
    mime_type: str = ""
    alt: str = ""


class ContentStore(ABC):
    """Operations the bundle engine consumes."""

    media_root: Path

    # ---- terms ----
    @abstractmethod
    def find_term(self, taxonomy: str, slug: str) -> Term | None: ...

    @abstractmethod
    def get_term(self, term_id: int) -> Term | None: ...

    @abstractmethod
    def create_term(
        self,
        taxonomy: str,
        *,
        slug: str,
        name: str,
        description: str = "",
        parent_id: int = 0,
    ) -> Term: ...

    @abstractmethod
    def update_term(
        self,
        term_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        parent_id: int | None = None,
    ) -> Term: ...

    @abstractmethod
    def list_terms(self, taxonomy: str) -> list[Term]: ...

    @abstractmethod
    def delete_term(self, term_id: int) -> bool: ...

    @abstractmethod
    def get_term_meta(self, term_id: int) -> dict[str, list[Any]]: ...

    @abstractmethod
    def replace_term_meta(self, term_id: int, key: str, values: list[Any]) -> None: ...

    # ---- items ----
    @abstractmethod
    def find_item(self, item_type: str, slug: str, *, parent_id: int = 0) -> Item | None: ...

    @abstractmethod
    def get_item(self, item_id: int) -> Item | None: ...

    @abstractmethod
    def create_item(
        self,
        item_type: str,
        *,
        slug: str,
        title: str,
        content: str = "",
        excerpt: str = "",
        status: str = "draft",
        parent_id: int = 0,
        skip_publish_gate: bool = False,
    ) -> Item: ...

    @abstractmethod
    def update_item(
        self,
        item_id: int,
        *,
        title: str | None = None,
        content: str | None = None,
        excerpt: str | None = None,
        status: str | None = None,
        skip_publish_gate: bool = False,
    ) -> Item: ...

    @abstractmethod
    def list_items(self, item_type: str, *, parent_id: int | None = None) -> list[Item]: ...

    @abstractmethod
    def delete_item(self, item_id: int) -> bool: ...

    @abstractmethod
    def get_item_meta(self, item_id: int) -> dict[str, list[Any]]: ...

    @abstractmethod
    def replace_item_meta(self, item_id: int, key: str, values: list[Any]) -> None: ...

    @abstractmethod
    def set_item_terms(self, item_id: int, taxonomy: str, term_ids: list[int]) -> None: ...

    @abstractmethod
    def get_item_terms(self, item_id: int, taxonomy: str) -> list[int]: ...

    # ---- media ----
    @abstractmethod
    def add_attachment(
        self,
        source_path: Path,
        *,
        parent_id: int = 0,
        title: str = "",
        alt: str = "",
        mime_type: str = "",
    ) -> Item: ...

    @abstractmethod
    def set_featured_media(self, item_id: int, attachment_id: int) -> None: ...

    @abstractmethod
    def get_featured_media(self, item_id: int) -> int: ...

    @abstractmethod
    def store_media_file(self, source_path: Path) -> str: ...

    @abstractmethod
    def resolve_media_path(self, stored_path: str) -> Path | None: ...

    @abstractmethod
    def delete_media_file(self, stored_path: str) -> bool: ...

    # ---- convenience built on the primitives ----
    def get_item_meta_value(self, item_id: int, key: str, default: Any = None) -> Any:
        values = self.get_item_meta(item_id).get(key) or []
        return values[0] if values else default

    def attachment_path(self, attachment_id: int) -> Path | None:
        att = self.get_item(attachment_id)
        if att is None or att.item_type != ITEM_ATTACHMENT or not att.file:
            return None
        return self.resolve_media_path(att.file)
