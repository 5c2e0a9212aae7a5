from __future__ import annotations

import json
import zipfile
from pathlib import Path

from typer.testing import CliRunner

from conftest import make_manifest_zip, sample_full_manifest, sample_full_media
from wordbundle.cli.main import app


def _bundle(tmp_path: Path) -> Path:
    return make_manifest_zip(tmp_path / "bundle.zip", sample_full_manifest(), sample_full_media())


def test_version_prints_package_version() -> None:
    runner = CliRunner()
    res = runner.invoke(app, ["version"])
    assert res.exit_code == 0, res.output
    assert res.stdout.strip() == "0.1.0"


def test_import_history_and_undo_roundtrip(tmp_path: Path) -> None:
    runner = CliRunner()
    store_dir = tmp_path / "store"

    res = runner.invoke(app, ["import", str(_bundle(tmp_path)), "--store", str(store_dir), "--actor", "alice"])
    assert res.exit_code == 0, res.output
    report = json.loads(res.stdout)
    assert report["ok"] is True
    assert report["stats"]["words_created"] == 2
    entry_id = report["history_id"]
    assert entry_id
    assert (store_dir / "store.json").is_file()

    res = runner.invoke(app, ["history", "--store", str(store_dir)])
    assert res.exit_code == 0, res.output
    assert entry_id in res.stdout
    assert "by alice" in res.stdout
    assert "[ok]" in res.stdout

    res = runner.invoke(app, ["undo", entry_id, "--store", str(store_dir)])
    assert res.exit_code == 0, res.output
    undo = json.loads(res.stdout)
    assert undo["ok"] is True
    assert undo["stats"]["words_deleted"] == 2

    res = runner.invoke(app, ["history", "--store", str(store_dir), "--json"])
    entries = json.loads(res.stdout)
    assert entries[0]["id"] == entry_id
    assert entries[0]["undone_at"] > 0

    saved = json.loads((store_dir / "store.json").read_text(encoding="utf-8"))
    assert saved["items"] == []


def test_history_when_empty(tmp_path: Path) -> None:
    res = CliRunner().invoke(app, ["history", "--store", str(tmp_path / "store")])
    assert res.exit_code == 0, res.output
    assert "No recent imports." in res.stdout


def test_undo_unknown_entry_is_usage_error(tmp_path: Path) -> None:
    res = CliRunner().invoke(app, ["undo", "nope", "--store", str(tmp_path / "store")])
    assert res.exit_code == 2


def test_unreadable_zip_is_usage_error_and_store_untouched(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.zip"
    bogus.write_text("not a zip", encoding="utf-8")
    store_dir = tmp_path / "store"

    res = CliRunner().invoke(app, ["import", str(bogus), "--store", str(store_dir)])

    assert res.exit_code == 2
    assert not (store_dir / "store.json").exists()


def test_preview_token_then_import(tmp_path: Path) -> None:
    runner = CliRunner()
    store_dir = tmp_path / "store"

    res = runner.invoke(app, ["preview", str(_bundle(tmp_path)), "--store", str(store_dir)])
    assert res.exit_code == 0, res.output
    preview = json.loads(res.stdout)
    assert preview["source"] == "manifest"
    assert preview["preview"]["summary"]["words"] == 2
    assert preview["preview"]["sample_word"]["title"] == "Cat"
    assert preview["preview"]["warnings"] == []
    assert preview["default_options"]["wordset_mode"] == "create_from_export"

    res = runner.invoke(app, ["import", "--token", preview["token"], "--store", str(store_dir)])
    assert res.exit_code == 0, res.output
    assert json.loads(res.stdout)["stats"]["wordsets_created"] == 1

    # Tokens are single use.
    res = runner.invoke(app, ["import", "--token", preview["token"], "--store", str(store_dir)])
    assert res.exit_code == 2


def test_import_assign_existing_by_slug(tmp_path: Path) -> None:
    runner = CliRunner()
    store_dir = tmp_path / "store"
    zp = _bundle(tmp_path)
    runner.invoke(app, ["import", str(zp), "--store", str(store_dir)])

    res = runner.invoke(
        app,
        ["import", str(zp), "--store", str(store_dir), "--wordset-mode", "assign_existing", "--target-wordset", "nope"],
    )
    assert res.exit_code == 2

    res = runner.invoke(
        app,
        ["import", str(zp), "--store", str(store_dir), "--wordset-mode", "assign_existing", "--target-wordset", "basics"],
    )
    assert res.exit_code == 0, res.output
    assert json.loads(res.stdout)["stats"]["wordsets_updated"] == 0


def test_export_full_bundle_and_reimport_elsewhere(tmp_path: Path) -> None:
    runner = CliRunner()
    source_dir = tmp_path / "source"
    runner.invoke(app, ["import", str(_bundle(tmp_path)), "--store", str(source_dir)])
    out = tmp_path / "exported.zip"

    res = runner.invoke(app, ["export", "--store", str(source_dir), "--full", "--wordset", "basics", "--out", str(out)])
    assert res.exit_code == 0, res.output
    assert res.stdout.strip() == str(out)
    with zipfile.ZipFile(out) as zf:
        manifest = json.loads(zf.read("data.json"))
    assert manifest["bundle_type"] == "category_full"
    assert [w["slug"] for w in manifest["words"]] == ["cat", "dog"]

    res = runner.invoke(app, ["import", str(out), "--store", str(tmp_path / "target")])
    assert res.exit_code == 0, res.output
    assert json.loads(res.stdout)["stats"]["words_created"] == 2


def test_export_usage_errors(tmp_path: Path) -> None:
    runner = CliRunner()
    source_dir = tmp_path / "source"
    runner.invoke(app, ["import", str(_bundle(tmp_path)), "--store", str(source_dir)])

    assert runner.invoke(app, ["export", "--store", str(source_dir), "--full"]).exit_code == 2
    assert runner.invoke(app, ["export", "--store", str(source_dir), "--wordset", "nope"]).exit_code == 2
    assert runner.invoke(app, ["export", "--store", str(source_dir), "--category", "nope"]).exit_code == 2

    config = tmp_path / "limits.json"
    config.write_text(json.dumps({"export_soft_limit_bytes": 1}), encoding="utf-8")
    out = tmp_path / "big.zip"
    args = ["export", "--store", str(source_dir), "--config", str(config), "--out", str(out)]
    assert runner.invoke(app, args).exit_code == 2
    assert not out.exists()
    assert runner.invoke(app, args + ["--allow-large"]).exit_code == 0
    assert out.is_file()
