from __future__ import annotations

from pathlib import Path

from conftest import MP3_BYTES, PNG_BYTES, make_manifest_zip, make_store, sample_full_manifest, sample_full_media
from wordbundle.core.config import MB, BundleConfig
from wordbundle.core.model import BundlePayload, WordsetMode
from wordbundle.reconcile.pipeline import (
    build_preview_data,
    build_preview_default_options,
    process_import_archive,
    read_import_preview,
)
from wordbundle.reconcile.reconciler import ImportOptions
from wordbundle.store.base import (
    AUDIO_PATH_META_KEY,
    ITEM_ATTACHMENT,
    ITEM_WORD,
    ITEM_WORD_AUDIO,
    ITEM_WORD_IMAGE,
    LINKED_IMAGE_META_KEY,
    TAX_CATEGORY,
    TAX_LANGUAGE,
    TAX_RECORDING_TYPE,
    TAX_WORDSET,
)


def _sample_zip(tmp_path: Path) -> Path:
    return make_manifest_zip(tmp_path / "bundle.zip", sample_full_manifest(), sample_full_media())


def test_first_import_creates_everything(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    result = process_import_archive(_sample_zip(tmp_path), store)

    assert result.ok, result.errors
    assert result.message == "Import complete."
    assert result.stats == {
        "categories_created": 2,
        "categories_updated": 0,
        "wordsets_created": 1,
        "wordsets_updated": 0,
        "word_images_created": 2,
        "word_images_updated": 0,
        "words_created": 2,
        "words_updated": 0,
        "word_audio_created": 2,
        "word_audio_updated": 0,
        "attachments_imported": 2,
        "audio_files_imported": 2,
    }

    animals = store.find_term(TAX_CATEGORY, "animals")
    pets = store.find_term(TAX_CATEGORY, "pets")
    assert pets.parent_id == animals.id
    assert store.get_term_meta(pets.id) == {"display_color": ["blue"]}
    assert any("_edit_lock" in w for w in result.warnings)
    assert any("manager_user_id" in w for w in result.warnings)

    cat = store.find_item(ITEM_WORD, "cat")
    dog = store.find_item(ITEM_WORD, "dog")
    # Imported words keep their status even before audio exists.
    assert cat.status == "publish"
    assert store.get_item_meta_value(cat.id, "word_translation") == "gato"

    cat_image = store.find_item(ITEM_WORD_IMAGE, "cat")
    assert store.get_item_meta_value(cat.id, LINKED_IMAGE_META_KEY) == cat_image.id
    assert store.get_featured_media(cat.id) == store.get_featured_media(cat_image.id) != 0

    dog_image = store.find_item(ITEM_WORD_IMAGE, "dog")
    assert store.get_item_meta_value(dog.id, LINKED_IMAGE_META_KEY) == dog_image.id
    assert store.get_featured_media(dog.id) == 0

    basics = store.find_term(TAX_WORDSET, "basics")
    assert store.get_item_terms(cat.id, TAX_WORDSET) == [basics.id]
    spanish = store.find_term(TAX_LANGUAGE, "spanish")
    assert spanish.name == "Spanish"
    assert store.get_item_terms(cat.id, TAX_LANGUAGE) == [spanish.id]

    # Similar-word references now point at the imported ids.
    assert store.get_item_meta(cat.id)["_ll_similar_word_id"] == [str(dog.id)]
    assert store.get_item_meta(dog.id)["_ll_similar_word_id"] == [cat.id]

    audio = store.find_item(ITEM_WORD_AUDIO, "cat-isolation", parent_id=cat.id)
    assert audio.status == "publish"
    stored = store.get_item_meta_value(audio.id, AUDIO_PATH_META_KEY)
    assert store.resolve_media_path(stored).read_bytes() == MP3_BYTES
    assert store.get_item_terms(audio.id, TAX_RECORDING_TYPE) == [store.find_term(TAX_RECORDING_TYPE, "isolation").id]

    assert len(result.undo.buckets["category_term_ids"]) == 2
    assert len(result.undo.buckets["attachment_ids"]) == 2
    assert len(result.undo.buckets["audio_paths"]) == 2


def test_reimport_updates_instead_of_duplicating(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    zp = _sample_zip(tmp_path)
    process_import_archive(zp, store)

    result = process_import_archive(zp, store)

    assert result.ok, result.errors
    created = {k: v for k, v in result.stats.items() if k.endswith("_created")}
    assert set(created.values()) == {0}
    assert result.stats["categories_updated"] == 2
    assert result.stats["words_updated"] == 2
    assert result.stats["word_audio_updated"] == 2
    assert result.stats["wordsets_updated"] == 1
    assert len(store.list_items(ITEM_WORD)) == 2
    assert len(store.list_items(ITEM_WORD_IMAGE)) == 2
    assert len(store.list_items(ITEM_WORD_AUDIO)) == 2
    assert len(store.list_terms(TAX_CATEGORY)) == 2
    assert result.undo.buckets["category_term_ids"] == []
    assert result.undo.buckets["word_post_ids"] == []
    # Media is re-imported on every run.
    assert len(result.undo.buckets["attachment_ids"]) == 2
    assert len(store.list_items(ITEM_ATTACHMENT)) == 4


def test_assign_existing_requires_a_valid_target(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    options = ImportOptions(wordset_mode=WordsetMode.ASSIGN_EXISTING, target_wordset_id=999)

    result = process_import_archive(_sample_zip(tmp_path), store, options=options)

    assert not result.ok
    assert result.message == "Import failed: select a valid existing word set for assignment."
    assert store.list_terms(TAX_CATEGORY) == []
    assert store.list_items(ITEM_WORD) == []


def test_assign_existing_puts_every_word_in_the_target(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    mine = store.create_term(TAX_WORDSET, slug="mine", name="Mine")
    options = ImportOptions(wordset_mode=WordsetMode.ASSIGN_EXISTING, target_wordset_id=mine.id)

    result = process_import_archive(_sample_zip(tmp_path), store, options=options)

    assert result.ok, result.errors
    assert result.stats["wordsets_created"] == 0
    assert store.find_term(TAX_WORDSET, "basics") is None
    for word in store.list_items(ITEM_WORD):
        assert store.get_item_terms(word.id, TAX_WORDSET) == [mine.id]


def test_wordset_name_override_applies_on_create(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    options = ImportOptions.from_mapping({"wordset_name_overrides": {"basics": "My Basics"}})

    process_import_archive(_sample_zip(tmp_path), store, options=options, actor="alice")

    basics = store.find_term(TAX_WORDSET, "basics")
    assert basics.name == "My Basics"
    assert store.get_term_meta(basics.id)["manager_user_id"] == ["alice"]


def test_media_problems_are_scoped_errors(tmp_path: Path) -> None:
    manifest = sample_full_manifest()
    manifest["word_images"][0]["featured_image"]["file"] = "../escape.png"
    manifest["word_images"][1]["featured_image"]["file"] = "media/not-there.png"
    media = sample_full_media()
    media["audio/201-cat.mp3"] = PNG_BYTES
    zp = make_manifest_zip(tmp_path / "bad.zip", manifest, media)
    store = make_store(tmp_path)

    result = process_import_archive(zp, store)

    assert not result.ok
    assert result.message == "Import finished with some errors."
    assert 'Skipped thumbnail for "cat" because the file path was invalid.' in result.errors
    assert 'Image file for "dog" is missing from the zip.' in result.errors
    assert 'Failed to import audio for "cat": Imported file is not an audio recording.' in result.errors
    # Everything else still went in.
    assert result.stats["words_created"] == 2
    assert result.stats["audio_files_imported"] == 1


def test_unresolved_explicit_image_link_is_an_error(tmp_path: Path) -> None:
    manifest = sample_full_manifest()
    manifest["words"][0]["linked_word_image_slug"] = "unicorn"
    store = make_store(tmp_path)

    result = process_import_archive(make_manifest_zip(tmp_path / "b.zip", manifest, sample_full_media()), store)

    assert 'Could not link word "cat" to source word image "unicorn".' in result.errors


def test_images_bundle_skips_words_and_wordsets(tmp_path: Path) -> None:
    manifest = sample_full_manifest()
    manifest["bundle_type"] = "images"
    manifest["words"] = []
    store = make_store(tmp_path)

    result = process_import_archive(make_manifest_zip(tmp_path / "i.zip", manifest, sample_full_media()), store)

    assert result.ok, result.errors
    assert result.stats["word_images_created"] == 2
    assert store.list_terms(TAX_WORDSET) == []


def test_fatal_errors_return_failed_result_without_changes(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    bogus = tmp_path / "bogus.zip"
    bogus.write_bytes(b"not a zip")

    result = process_import_archive(bogus, store)

    assert not result.ok
    assert result.message == "Import failed: could not open zip file."
    assert store.list_terms(TAX_CATEGORY) == []


def test_preview_counts_and_default_options(tmp_path: Path) -> None:
    zp = _sample_zip(tmp_path)
    data = read_import_preview(zp)

    assert data["preview"] == {
        "bundle_type": "category_full",
        "summary": {
            "categories": 2,
            "word_images": 2,
            "words": 2,
            "word_audio": 2,
            "wordsets": 1,
            "media_files": 0,
            "media_bytes": 0,
        },
        "wordsets": [{"slug": "basics", "name": "Basics"}],
        "category_names": ["Animals", "Pets"],
        "sample_word": {
            "type": "word",
            "title": "Cat",
            "translation": "gato",
            "categories": ["Pets"],
            "wordsets": ["Basics"],
            "image": "media/11-cat.png",
            "audio": ["audio/201-cat.mp3"],
        },
        "warnings": [],
    }

    store = make_store(tmp_path)
    assert build_preview_default_options(data["payload"], store).wordset_mode is WordsetMode.CREATE_FROM_EXPORT
    basics = store.create_term(TAX_WORDSET, slug="basics", name="Basics")
    suggested = build_preview_default_options(data["payload"], store)
    assert suggested.wordset_mode is WordsetMode.ASSIGN_EXISTING
    assert suggested.target_wordset_id == basics.id


def test_preview_warns_when_media_reaches_the_recommended_limits(tmp_path: Path) -> None:
    manifest = sample_full_manifest()
    manifest["media_estimate"] = {"attachment_count": 205, "attachment_bytes": 11 * MB}
    zp = make_manifest_zip(tmp_path / "bundle.zip", manifest, sample_full_media())
    config = BundleConfig(import_soft_limit_files=200, import_soft_limit_bytes=10 * MB)

    warnings = read_import_preview(zp, config=config)["preview"]["warnings"]

    assert len(warnings) == 2
    assert "205" in warnings[0] and "200" in warnings[0]
    assert "11.0 MB" in warnings[1] and "10.0 MB" in warnings[1]

    # At the limit still warns; 0 turns a check off.
    quiet = BundleConfig(import_soft_limit_files=0, import_soft_limit_bytes=11 * MB)
    assert len(read_import_preview(zp, config=quiet)["preview"]["warnings"]) == 1
    assert read_import_preview(zp)["preview"]["warnings"] == []


def test_preview_sample_falls_back_to_a_word_image(tmp_path: Path) -> None:
    manifest = sample_full_manifest()
    manifest["bundle_type"] = "images"
    del manifest["words"]
    del manifest["wordsets"]
    zp = make_manifest_zip(tmp_path / "images.zip", manifest, sample_full_media())

    preview = read_import_preview(zp)["preview"]

    assert preview["category_names"] == ["Animals", "Pets"]
    assert preview["sample_word"] == {
        "type": "word_image",
        "title": "Cat",
        "translation": "",
        "categories": ["Pets"],
        "wordsets": [],
        "image": "media/11-cat.png",
        "audio": [],
    }
    assert build_preview_data(BundlePayload())["sample_word"] is None


def test_import_options_from_mapping_is_lenient():
    opts = ImportOptions.from_mapping(
        {"wordset_mode": "bogus", "target_wordset_id": "abc", "wordset_name_overrides": {"Basics Set": " New ", "x": ""}}
    )
    assert opts.wordset_mode is WordsetMode.CREATE_FROM_EXPORT
    assert opts.target_wordset_id == 0
    assert opts.wordset_name_overrides == {"basics-set": "New"}
