from __future__ import annotations

from wordbundle.core.config import BundleConfig
from wordbundle.reconcile.meta import MetaPolicy


def test_reserved_prefix_requires_allow_list():
    policy = MetaPolicy.from_config(BundleConfig())

    assert policy.accepts("word_translation")
    assert policy.accepts("_ll_similar_word_id")
    assert not policy.accepts("_private_note")
    assert not policy.accepts("")


def test_framework_keys_are_always_blocked():
    policy = MetaPolicy(reserved_prefix="_", allowed=("_*",), blocked=("_edit_lock", "_ll_cache_*"))

    assert policy.accepts("_anything")
    assert not policy.accepts("_edit_lock")
    assert not policy.accepts("_ll_cache_words")


def test_split_reports_rejected_keys_and_copies_values():
    policy = MetaPolicy.from_config(BundleConfig())
    meta = {"a": [1], "_edit_lock": ["x"], "audio_file_path": ["/tmp/x.mp3"], "_ll_specific_wrong_answer_ids": [3]}

    accepted, rejected = policy.split(meta, extra_blocked=("audio_file_path",))

    assert accepted == {"a": [1], "_ll_specific_wrong_answer_ids": [3]}
    assert rejected == ["_edit_lock", "audio_file_path"]
    accepted["a"].append(2)
    assert meta["a"] == [1]


def test_exportable_drops_framework_and_extra_keys():
    policy = MetaPolicy.from_config(BundleConfig())
    meta = {"b": [2], "a": [1], "_thumbnail_id": [9], "manager_user_id": [7]}

    assert policy.exportable(meta, extra_skip=("manager_user_id",)) == {"a": [1], "b": [2]}
