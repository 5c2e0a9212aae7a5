"""In-memory reference `ContentStore` with JSON persistence.

Used by the CLI (persisted under a store directory) and by the tests. It
keeps the semantics the engine depends on:

- one id sequence shared by terms and items, so a recorded id can be checked
  against the entity type it currently refers to;
- slugs unique per taxonomy / item type (and per parent for word audio);
- a publish gate on words (a published word needs at least one audio child)
  that callers bypass explicitly with `skip_publish_gate=True`;
- a managed media area under `media_root`; stored paths are relative to it.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import asdict
from pathlib import Path
from typing import Any

from wordbundle.core.errors import StoreError
from wordbundle.core.paths import is_within, resolve_within

from .base import (
    ITEM_ATTACHMENT,
    ITEM_TYPES,
    ITEM_WORD,
    ITEM_WORD_AUDIO,
    TAXONOMIES,
    ContentStore,
    Item,
    Term,
)

logger = logging.getLogger(__name__)

UPLOADS_DIR = "uploads"
STORE_SCHEMA = "wordbundle.store.v1"


class MemoryContentStore(ContentStore):
    def __init__(self, media_root: Path):
        self.media_root = Path(media_root)
        self.media_root.mkdir(parents=True, exist_ok=True)
        self._next_id = 1
        self._terms: dict[int, Term] = {}
        self._items: dict[int, Item] = {}
        self._term_meta: dict[int, dict[str, list[Any]]] = {}
        self._item_meta: dict[int, dict[str, list[Any]]] = {}
        self._item_terms: dict[int, dict[str, list[int]]] = {}
        self._featured: dict[int, int] = {}

    def _new_id(self) -> int:
        n = self._next_id
        self._next_id += 1
        return n

    # ---- terms ----
    def find_term(self, taxonomy: str, slug: str) -> Term | None:
        for term in self._terms.values():
            if term.taxonomy == taxonomy and term.slug == slug:
                return term
        return None

    def get_term(self, term_id: int) -> Term | None:
        return self._terms.get(int(term_id))

    def _require_term(self, term_id: int) -> Term:
        term = self.get_term(term_id)
        if term is None:
            raise StoreError(f"term {term_id} does not exist")
        return term

    def create_term(
        self,
        taxonomy: str,
        *,
        slug: str,
        name: str,
        description: str = "",
        parent_id: int = 0,
    ) -> Term:
        if taxonomy not in TAXONOMIES:
            raise StoreError(f"unknown taxonomy '{taxonomy}'")
        if not slug:
            raise StoreError("term slug must not be empty")
        if not str(name).strip():
            raise StoreError("term name must not be empty")
        if self.find_term(taxonomy, slug) is not None:
            raise StoreError(f"a {taxonomy} term with slug '{slug}' already exists")
        if parent_id:
            parent = self._require_term(parent_id)
            if parent.taxonomy != taxonomy:
                raise StoreError(f"parent term {parent_id} is not in taxonomy '{taxonomy}'")
        term = Term(
            id=self._new_id(),
            taxonomy=taxonomy,
            slug=slug,
            name=str(name).strip(),
            description=description,
            parent_id=int(parent_id),
        )
        self._terms[term.id] = term
        return term

    def update_term(
        self,
        term_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        parent_id: int | None = None,
    ) -> Term:
        term = self._require_term(term_id)
        if name is not None:
            if not str(name).strip():
                raise StoreError("term name must not be empty")
            term.name = str(name).strip()
        if description is not None:
            term.description = description
        if parent_id is not None:
            if parent_id:
                parent = self._require_term(parent_id)
                if parent.taxonomy != term.taxonomy:
                    raise StoreError(f"parent term {parent_id} is not in taxonomy '{term.taxonomy}'")
                if self._is_descendant_or_self(parent.id, term.id):
                    raise StoreError(f"term '{term.slug}' cannot be its own ancestor")
            term.parent_id = int(parent_id)
        return term

    def _is_descendant_or_self(self, candidate_id: int, ancestor_id: int) -> bool:
        seen: set[int] = set()
        current = candidate_id
        while current and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            t = self._terms.get(current)
            current = t.parent_id if t else 0
        return False

    def list_terms(self, taxonomy: str) -> list[Term]:
        return sorted((t for t in self._terms.values() if t.taxonomy == taxonomy), key=lambda t: t.id)

    def delete_term(self, term_id: int) -> bool:
        term = self._terms.pop(int(term_id), None)
        if term is None:
            return False
        self._term_meta.pop(term.id, None)
        for child in self._terms.values():
            if child.parent_id == term.id:
                child.parent_id = term.parent_id
        for memberships in self._item_terms.values():
            ids = memberships.get(term.taxonomy)
            if ids and term.id in ids:
                memberships[term.taxonomy] = [i for i in ids if i != term.id]
        return True

    def get_term_meta(self, term_id: int) -> dict[str, list[Any]]:
        self._require_term(term_id)
        return {k: list(v) for k, v in self._term_meta.get(int(term_id), {}).items()}

    def replace_term_meta(self, term_id: int, key: str, values: list[Any]) -> None:
        self._require_term(term_id)
        meta = self._term_meta.setdefault(int(term_id), {})
        if values:
            meta[key] = list(values)
        else:
            meta.pop(key, None)

    # ---- items ----
    def find_item(self, item_type: str, slug: str, *, parent_id: int = 0) -> Item | None:
        for item in self._items.values():
            if item.item_type != item_type or item.slug != slug:
                continue
            if item_type == ITEM_WORD_AUDIO and item.parent_id != int(parent_id):
                continue
            return item
        return None

    def get_item(self, item_id: int) -> Item | None:
        return self._items.get(int(item_id))

    def _require_item(self, item_id: int) -> Item:
        item = self.get_item(item_id)
        if item is None:
            raise StoreError(f"item {item_id} does not exist")
        return item

    def _gate_status(self, item_type: str, item_id: int, status: str, skip_publish_gate: bool) -> str:
        if item_type != ITEM_WORD or status != "publish" or skip_publish_gate:
            return status
        if item_id and self.list_items(ITEM_WORD_AUDIO, parent_id=item_id):
            return status
        logger.debug("word %s has no audio; holding it as draft", item_id or "(new)")
        return "draft"

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
    ) -> Item:
        if item_type not in ITEM_TYPES:
            raise StoreError(f"unknown item type '{item_type}'")
        if not slug:
            raise StoreError("item slug must not be empty")
        if self.find_item(item_type, slug, parent_id=parent_id) is not None:
            raise StoreError(f"a {item_type} item with slug '{slug}' already exists")
        if item_type == ITEM_WORD_AUDIO:
            parent = self._require_item(parent_id)
            if parent.item_type != ITEM_WORD:
                raise StoreError(f"word audio parent {parent_id} is not a word")
        item = Item(
            id=self._new_id(),
            item_type=item_type,
            slug=slug,
            title=title,
            content=content,
            excerpt=excerpt,
            status=self._gate_status(item_type, 0, status, skip_publish_gate),
            parent_id=int(parent_id),
        )
        self._items[item.id] = item
        return item

    def update_item(
        self,
        item_id: int,
        *,
        title: str | None = None,
        content: str | None = None,
        excerpt: str | None = None,
        status: str | None = None,
        skip_publish_gate: bool = False,
    ) -> Item:
        item = self._require_item(item_id)
        if title is not None:
            item.title = title
        if content is not None:
            item.content = content
        if excerpt is not None:
            item.excerpt = excerpt
        if status is not None:
            item.status = self._gate_status(item.item_type, item.id, status, skip_publish_gate)
        return item

    def list_items(self, item_type: str, *, parent_id: int | None = None) -> list[Item]:
        out = [
            i
            for i in self._items.values()
            if i.item_type == item_type and (parent_id is None or i.parent_id == int(parent_id))
        ]
        return sorted(out, key=lambda i: i.id)

    def delete_item(self, item_id: int) -> bool:
        item = self._items.pop(int(item_id), None)
        if item is None:
            return False
        self._item_meta.pop(item.id, None)
        self._item_terms.pop(item.id, None)
        self._featured.pop(item.id, None)
        if item.item_type == ITEM_ATTACHMENT:
            for owner, att in list(self._featured.items()):
                if att == item.id:
                    del self._featured[owner]
            if item.file:
                self.delete_media_file(item.file)
        return True

    def get_item_meta(self, item_id: int) -> dict[str, list[Any]]:
        self._require_item(item_id)
        return {k: list(v) for k, v in self._item_meta.get(int(item_id), {}).items()}

    def replace_item_meta(self, item_id: int, key: str, values: list[Any]) -> None:
        self._require_item(item_id)
        meta = self._item_meta.setdefault(int(item_id), {})
        if values:
            meta[key] = list(values)
        else:
            meta.pop(key, None)

    def set_item_terms(self, item_id: int, taxonomy: str, term_ids: list[int]) -> None:
        self._require_item(item_id)
        clean: list[int] = []
        for tid in term_ids:
            term = self._require_term(tid)
            if term.taxonomy != taxonomy:
                raise StoreError(f"term {tid} is not in taxonomy '{taxonomy}'")
            if term.id not in clean:
                clean.append(term.id)
        self._item_terms.setdefault(int(item_id), {})[taxonomy] = clean

    def get_item_terms(self, item_id: int, taxonomy: str) -> list[int]:
        return list(self._item_terms.get(int(item_id), {}).get(taxonomy, []))

    # ---- media ----
    def add_attachment(
        self,
        source_path: Path,
        *,
        parent_id: int = 0,
        title: str = "",
        alt: str = "",
        mime_type: str = "",
    ) -> Item:
        stored = self.store_media_file(source_path)
        item = Item(
            id=self._new_id(),
            item_type=ITEM_ATTACHMENT,
            slug="",
            title=title or Path(stored).stem,
            status="inherit",
            parent_id=int(parent_id),
            file=stored,
            mime_type=mime_type,
            alt=alt,
        )
        item.slug = f"attachment-{item.id}"
        self._items[item.id] = item
        return item

    def set_featured_media(self, item_id: int, attachment_id: int) -> None:
        self._require_item(item_id)
        att = self._require_item(attachment_id)
        if att.item_type != ITEM_ATTACHMENT:
            raise StoreError(f"item {attachment_id} is not an attachment")
        self._featured[int(item_id)] = att.id

    def get_featured_media(self, item_id: int) -> int:
        return self._featured.get(int(item_id), 0)

    def store_media_file(self, source_path: Path) -> str:
        src = Path(source_path)
        if not src.is_file():
            raise StoreError(f"media file '{src.name}' is missing or unreadable")
        target_dir = self.media_root / UPLOADS_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        name = src.name or "imported-media"
        stem, suffix = Path(name).stem, Path(name).suffix
        target = target_dir / name
        n = 1
        while target.exists():
            target = target_dir / f"{stem}-{n}{suffix}"
            n += 1
        try:
            shutil.copyfile(src, target)
        except OSError as e:
            raise StoreError(f"could not copy '{src.name}' into managed storage") from e
        return target.relative_to(self.media_root).as_posix()

    def resolve_media_path(self, stored_path: str) -> Path | None:
        p = str(stored_path or "").strip()
        if not p:
            return None
        candidate = Path(p)
        if candidate.is_absolute():
            return candidate.resolve() if is_within(self.media_root, candidate) else None
        return resolve_within(self.media_root, p)

    def delete_media_file(self, stored_path: str) -> bool:
        target = self.resolve_media_path(stored_path)
        if target is None or not target.is_file():
            return False
        target.unlink()
        return True

    # ---- persistence ----
    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": STORE_SCHEMA,
            "next_id": self._next_id,
            "terms": [asdict(t) for t in sorted(self._terms.values(), key=lambda t: t.id)],
            "items": [asdict(i) for i in sorted(self._items.values(), key=lambda i: i.id)],
            "term_meta": {str(k): v for k, v in sorted(self._term_meta.items())},
            "item_meta": {str(k): v for k, v in sorted(self._item_meta.items())},
            "item_terms": {str(k): v for k, v in sorted(self._item_terms.items())},
            "featured": {str(k): v for k, v in sorted(self._featured.items())},
        }

    def save(self, path: Path) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(self.to_dict(), indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        fd, tmp = tempfile.mkstemp(prefix=".store-", dir=str(p.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, p)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @classmethod
    def load(cls, path: Path, *, media_root: Path) -> "MemoryContentStore":
        store = cls(media_root)
        p = Path(path)
        if not p.exists():
            return store
        obj = json.loads(p.read_text(encoding="utf-8"))
        if not isinstance(obj, dict) or obj.get("schema") != STORE_SCHEMA:
            raise StoreError(f"{p.name}: expected schema '{STORE_SCHEMA}'")
        store._next_id = int(obj.get("next_id", 1))
        store._terms = {int(t["id"]): Term(**t) for t in obj.get("terms", [])}
        store._items = {int(i["id"]): Item(**i) for i in obj.get("items", [])}
        store._term_meta = {int(k): v for k, v in obj.get("term_meta", {}).items()}
        store._item_meta = {int(k): v for k, v in obj.get("item_meta", {}).items()}
        store._item_terms = {int(k): v for k, v in obj.get("item_terms", {}).items()}
        store._featured = {int(k): int(v) for k, v in obj.get("featured", {}).items()}
        return store
