"""Tabular (spreadsheet + media) bundle ingestion.

A bundle without `data.json` may instead carry one or more `.csv` / `.tsv` /
`.txt` files at the archive root, plus media under `images/` and `audio/`.
Each file is decoded (BOM, UTF-8, a chardet guess limited to the configured
regional encodings, the regional encodings themselves, then Latin-1), its
delimiter is guessed from the first line, and its headers are matched
against candidate lists after normalization.

The columns present decide the quiz mode of the file:

- image + wrong answer(s) -> image-prompt
- image only              -> text-to-image
- audio                   -> audio-prompt
- prompt text             -> text-to-text

Rows are grouped by category and by a word key
`category_slug|mode|normalized_answer|prompt_identity`, so the same answer
with different prompts stays separate while repeats across rows and files
merge, unioning their wrong-answer hints.

Problems with single rows or files never abort ingestion; they are recorded
on the `TabularSummary` (capped) and the row or file is skipped.
"""

from __future__ import annotations

import codecs
import io
import logging
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import chardet
import pandas as pd

from wordbundle.core.config import BundleConfig
from wordbundle.core.model import (
    BUNDLE_TYPE_FULL,
    AudioRecord,
    BundlePayload,
    CategoryRecord,
    MediaEstimate,
    MediaRef,
    QuizMode,
    TabularSummary,
    WordImageRecord,
    WordRecord,
)
from wordbundle.core.text import normalize_for_compare, slugify, unique_slug

from .media import TABULAR_EXTENSIONS, MediaCatalog, build_media_catalog, resolve_media_reference

logger = logging.getLogger(__name__)

DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|")

# Normalized header spellings accepted for each column role.
HEADER_CANDIDATES: dict[str, tuple[str, ...]] = {
    "quiz": (
        "quiz",
        "quiz name",
        "quiz title",
        "category",
        "category name",
        "word category",
        "group",
        "deck",
        "lesson",
        "topic",
    ),
    "image": (
        "image",
        "image file",
        "image filename",
        "image file name",
        "image name",
        "image path",
        "picture",
        "photo",
        "img",
    ),
    "audio": (
        "audio",
        "audio file",
        "audio filename",
        "audio file name",
        "audio path",
        "sound",
        "sound file",
        "recording",
    ),
    "prompt": (
        "prompt",
        "prompt text",
        "question",
        "question text",
        "prompt word",
        "text prompt",
    ),
    "answer": (
        "correct answer",
        "answer",
        "correct",
        "correct option",
        "right answer",
        "correct text",
    ),
}

_WRONG_TOKEN = "wrong"
_ANSWER_TOKENS: tuple[str, ...] = ("answer", "option", "choice", "distractor")

_BOMS: tuple[tuple[bytes, str], ...] = (
    # UTF-32 LE must be checked before UTF-16 LE; its BOM starts with FF FE.
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)

_HEADER_SEPARATORS = str.maketrans({"_": " ", "-": " ", ".": " ", "/": " "})


def _codec_name(name: str) -> str:
    try:
        return codecs.lookup(name).name
    except LookupError:
        return ""


def decode_tabular_bytes(raw: bytes, *, config: BundleConfig | None = None) -> tuple[str, str]:
    """Decode raw tabular bytes; return `(text, encoding)`. Never raises."""
    config = config or BundleConfig()
    for bom, encoding in _BOMS:
        if raw.startswith(bom):
            try:
                return raw[len(bom) :].decode(encoding), encoding
            except UnicodeDecodeError:
                logger.debug("BOM says %s but the bytes do not decode; trying fallbacks", encoding)
            break

    try:
        return raw.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        pass

    regional = [(_codec_name(e), e) for e in config.regional_encodings]
    guess = chardet.detect(raw).get("encoding") or ""
    guess_name = _codec_name(guess) if guess else ""
    for codec, label in regional:
        if codec and codec == guess_name:
            try:
                return raw.decode(label), label
            except UnicodeDecodeError:
                break

    for codec, label in regional:
        if not codec:
            continue
        try:
            return raw.decode(label), label
        except UnicodeDecodeError:
            continue
    return raw.decode("latin-1"), "latin-1"


def detect_delimiter(first_line: str) -> str:
    """Most frequent of `, ; TAB |` in the header line; comma when tied or absent."""
    best = ","
    best_count = first_line.count(best)
    for d in DELIMITERS[1:]:
        n = first_line.count(d)
        if n > best_count:
            best, best_count = d, n
    return best


def normalize_header(header: object) -> str:
    s = unicodedata.normalize("NFKC", str(header or "")).casefold()
    s = s.translate(_HEADER_SEPARATORS)
    return " ".join(s.split())


def header_labels(cells: list[object]) -> list[str]:
    """Column labels for a header row: blanks become `Unnamed: <i>`, repeats get `.1`, `.2`, ..."""
    labels: list[str] = []
    seen: dict[str, int] = {}
    for i, cell in enumerate(cells):
        label = cell if isinstance(cell, str) and cell.strip() else f"Unnamed: {i}"
        n = seen.get(label, 0)
        seen[label] = n + 1
        labels.append(f"{label}.{n}" if n else label)
    return labels


def is_wrong_answer_header(normalized: str) -> bool:
    return _WRONG_TOKEN in normalized and any(tok in normalized for tok in _ANSWER_TOKENS)


@dataclass
class ColumnMap:
    quiz: str | None = None
    image: str | None = None
    audio: str | None = None
    prompt: str | None = None
    answer: str | None = None
    wrong: list[str] = field(default_factory=list)

    def infer_mode(self) -> QuizMode | None:
        if self.image and self.wrong:
            return QuizMode.IMAGE_PROMPT
        if self.image:
            return QuizMode.TEXT_TO_IMAGE
        if self.audio:
            return QuizMode.AUDIO_PROMPT
        if self.prompt:
            return QuizMode.TEXT_TO_TEXT
        return None


def match_columns(headers: list[str]) -> ColumnMap:
    """Map raw headers to column roles; the first matching header wins."""
    cols = ColumnMap()
    for h in headers:
        norm = normalize_header(h)
        if not norm:
            continue
        if is_wrong_answer_header(norm):
            cols.wrong.append(h)
            continue
        for role, candidates in HEADER_CANDIDATES.items():
            if norm in candidates and getattr(cols, role) is None:
                setattr(cols, role, h)
                break
    return cols


@dataclass
class _WordEntry:
    category_slug: str
    mode: QuizMode
    title: str
    prompt_text: str = ""
    image_rel: str = ""
    audio_rels: list[str] = field(default_factory=list)
    wrong_texts: list[str] = field(default_factory=list)
    _wrong_keys: set[str] = field(default_factory=set)

    def add_wrong(self, text: str) -> None:
        key = normalize_for_compare(text)
        if not key or key == normalize_for_compare(self.title) or key in self._wrong_keys:
            return
        self._wrong_keys.add(key)
        self.wrong_texts.append(text)


@dataclass
class _Category:
    name: str
    mode: QuizMode


class _Ingest:
    def __init__(self, root: Path, catalog: MediaCatalog, config: BundleConfig):
        self.root = root
        self.catalog = catalog
        self.config = config
        self.summary = TabularSummary(max_warnings=config.max_parser_warnings)
        self.category_map: dict[str, _Category] = {}
        self.word_map: dict[str, _WordEntry] = {}

    def skip_row(self, fname: str, line: int, reason: str) -> None:
        self.summary.rows_skipped += 1
        msg = f"{fname}: row {line}: {reason}; row skipped."
        logger.warning(msg)
        self.summary.warn(msg)

    def skip_bad_row(self, fname: str, cells: list[str], expected: int) -> None:
        # The parser does not report line numbers for these; name the row by its first cell.
        first = str(cells[0]).strip() if cells else ""
        self.summary.rows_skipped += 1
        msg = f"{fname}: row '{first}': unexpected number of cells ({len(cells)}, expected {expected}); row skipped."
        logger.warning(msg)
        self.summary.warn(msg)

    def skip_file(self, fname: str, reason: str) -> None:
        self.summary.files_skipped += 1
        msg = f"{fname}: {reason}; file skipped."
        logger.warning(msg)
        self.summary.warn(msg)

    def read_frame(self, path: Path) -> pd.DataFrame | None:
        text, encoding = decode_tabular_bytes(path.read_bytes(), config=self.config)
        text = text.lstrip("\ufeff")
        first_line = text.splitlines()[0] if text.strip() else ""
        if not first_line.strip():
            self.skip_file(path.name, "file is empty")
            return None
        delimiter = detect_delimiter(first_line)
        logger.debug("%s: encoding=%s delimiter=%r", path.name, encoding, delimiter)
        bad_rows: list[list[str]] = []

        def drop_bad_row(cells: list[str]) -> None:
            bad_rows.append(cells)
            return None

        # header=None: every row is checked against the header row's width.
        try:
            df = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                engine="python",
                on_bad_lines=drop_bad_row,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            self.skip_file(path.name, f"could not be parsed ({str(e).strip().splitlines()[0]})")
            return None
        header = df.iloc[0].tolist() if len(df) else []
        df = df.iloc[1:].reset_index(drop=True)
        df.columns = header_labels(header)
        for cells in bad_rows:
            self.summary.rows_nonempty += 1
            self.skip_bad_row(path.name, cells, len(df.columns))
        return df.fillna("")

    def ingest_file(self, path: Path) -> None:
        fname = path.name
        df = self.read_frame(path)
        if df is None:
            return
        headers = [str(c) for c in df.columns]
        cols = match_columns(headers)
        mode = cols.infer_mode()
        if cols.quiz is None or cols.answer is None:
            self.skip_file(fname, "no quiz or correct-answer column found")
            return
        if mode is None:
            self.skip_file(fname, "no image, audio or prompt column found")
            return
        logger.debug("%s: inferred mode %s", fname, mode.value)

        used = 0
        for offset, record in enumerate(df.to_dict("records")):
            line = offset + 2
            row = {str(k): str(v).strip() for k, v in record.items()}
            if not any(row.values()):
                continue
            self.summary.rows_nonempty += 1
            if self.ingest_row(fname, line, row, cols, mode):
                self.summary.rows_used += 1
                used += 1

        if used:
            self.summary.files_used += 1
        else:
            self.skip_file(fname, "no usable rows")

    def ingest_row(self, fname: str, line: int, row: dict[str, str], cols: ColumnMap, mode: QuizMode) -> bool:
        group = row.get(cols.quiz or "", "")
        answer = row.get(cols.answer or "", "")
        if not group:
            self.skip_row(fname, line, "missing quiz name")
            return False
        if not answer:
            self.skip_row(fname, line, "missing correct answer")
            return False
        cat_slug = slugify(group)
        if not cat_slug:
            self.skip_row(fname, line, f"quiz name '{group}' has no usable characters")
            return False

        existing = self.category_map.get(cat_slug)
        if existing is not None and existing.mode != mode:
            self.skip_row(
                fname,
                line,
                f"quiz '{group}' is already {existing.mode.value} but this file is {mode.value}",
            )
            return False

        image_rel = ""
        audio_rel = ""
        prompt_text = ""
        if mode.needs_image:
            ref = row.get(cols.image or "", "")
            if not ref:
                self.skip_row(fname, line, "missing image file")
                return False
            image_rel = resolve_media_reference(self.catalog.images, ref) or ""
            if not image_rel:
                self.skip_row(fname, line, f"image '{ref}' not found in images/")
                return False
            identity = image_rel
        elif mode is QuizMode.AUDIO_PROMPT:
            ref = row.get(cols.audio or "", "")
            if not ref:
                self.skip_row(fname, line, "missing audio file")
                return False
            audio_rel = resolve_media_reference(self.catalog.audio, ref) or ""
            if not audio_rel:
                self.skip_row(fname, line, f"audio '{ref}' not found")
                return False
            identity = audio_rel
        else:
            prompt_text = row.get(cols.prompt or "", "")
            if not prompt_text:
                self.skip_row(fname, line, "missing prompt text")
                return False
            identity = normalize_for_compare(prompt_text)

        if existing is None:
            self.category_map[cat_slug] = _Category(name=group, mode=mode)

        key = f"{cat_slug}|{mode.value}|{normalize_for_compare(answer)}|{identity}"
        entry = self.word_map.get(key)
        if entry is None:
            entry = _WordEntry(
                category_slug=cat_slug,
                mode=mode,
                title=answer,
                prompt_text=prompt_text,
                image_rel=image_rel,
            )
            self.word_map[key] = entry
        if audio_rel and audio_rel not in entry.audio_rels:
            entry.audio_rels.append(audio_rel)
        for col in cols.wrong:
            text = row.get(col, "")
            if text:
                entry.add_wrong(text)
        return True

    def build_payload(self) -> BundlePayload:
        categories = [
            CategoryRecord(
                slug=slug,
                name=cat.name,
                meta={
                    "ll_quiz_prompt_type": [cat.mode.prompt_type],
                    "ll_quiz_option_type": [cat.mode.option_type],
                },
                quiz_mode=cat.mode,
            )
            for slug, cat in self.category_map.items()
        ]

        word_slugs: set[str] = set()
        image_slugs: set[str] = set()
        word_images: dict[str, WordImageRecord] = {}
        words: list[WordRecord] = []
        media: set[str] = set()

        for entry in self.word_map.values():
            base = slugify(f"{entry.category_slug}-{entry.title}") or "word"
            word = WordRecord(
                slug=unique_slug(base, word_slugs),
                title=entry.title,
                status="publish",
                categories=[entry.category_slug],
                wrong_answer_texts=list(entry.wrong_texts),
            )
            if entry.image_rel:
                image = word_images.get(entry.image_rel)
                if image is None:
                    image = WordImageRecord(
                        slug=unique_slug(base, image_slugs),
                        title=entry.title,
                        featured_image=MediaRef(
                            file=entry.image_rel,
                            title=PurePosixPath(entry.image_rel).stem,
                            alt=entry.title,
                        ),
                    )
                    word_images[entry.image_rel] = image
                    media.add(entry.image_rel)
                if entry.category_slug not in image.categories:
                    image.categories.append(entry.category_slug)
                word.linked_word_image_slug = image.slug
            if entry.mode is QuizMode.TEXT_TO_TEXT:
                word.meta["word_translation"] = [entry.prompt_text]
            else:
                # An existing word re-used by this sheet must not keep an old translation.
                word.meta["word_translation"] = []
                word.meta["word_english_meaning"] = []
            for rel in entry.audio_rels:
                audio_slug = slugify(PurePosixPath(rel).stem) or f"{word.slug}-audio"
                word.audio_entries.append(
                    AudioRecord(
                        slug=audio_slug,
                        title=entry.title,
                        status="publish",
                        audio_file=MediaRef(file=rel, title=entry.title),
                    )
                )
                media.add(rel)
            words.append(word)

        estimate = MediaEstimate(
            attachment_count=len(media),
            attachment_bytes=sum(self._size(rel) for rel in media),
        )
        return BundlePayload(
            categories=categories,
            word_images=list(word_images.values()),
            words=words,
            bundle_type=BUNDLE_TYPE_FULL,
            media_estimate=estimate,
        )

    def _size(self, rel: str) -> int:
        p = self.catalog.images.abs_paths.get(rel) or self.catalog.audio.abs_paths.get(rel)
        return p.stat().st_size if p is not None else 0


def list_tabular_files(root: Path) -> list[Path]:
    """Tabular files directly under the extraction root, in name order."""
    out = [
        p
        for p in Path(root).iterdir()
        if p.is_file()
        and not p.name.startswith(".")
        and p.suffix.lstrip(".").lower() in TABULAR_EXTENSIONS
    ]
    return sorted(out, key=lambda p: p.name.lower())


def ingest_tabular_bundle(
    root: Path,
    *,
    config: BundleConfig | None = None,
    catalog: MediaCatalog | None = None,
) -> tuple[BundlePayload, TabularSummary]:
    """Build a `category_full` payload from the tabular files under `root`."""
    config = config or BundleConfig()
    root = Path(root)
    catalog = catalog or build_media_catalog(root, config=config)
    ingest = _Ingest(root, catalog, config)

    files = list_tabular_files(root)
    ingest.summary.files_found = len(files)
    for path in files:
        ingest.ingest_file(path)

    payload = ingest.build_payload()
    logger.info(
        "tabular bundle: %d file(s) used, %d row(s) used, %d row(s) skipped -> %d categor(y/ies), %d word(s)",
        ingest.summary.files_used,
        ingest.summary.rows_used,
        ingest.summary.rows_skipped,
        len(payload.categories),
        len(payload.words),
    )
    return payload, ingest.summary


__all__ = [
    "DELIMITERS",
    "HEADER_CANDIDATES",
    "ColumnMap",
    "decode_tabular_bytes",
    "detect_delimiter",
    "header_labels",
    "ingest_tabular_bundle",
    "is_wrong_answer_header",
    "list_tabular_files",
    "match_columns",
    "normalize_header",
]
