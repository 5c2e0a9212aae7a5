"""`wordbundle import` command.

Imports a bundle zip into a store directory and prints the result as JSON.

Exit codes:
- 0: import complete
- 1: import finished with per-entity errors (store changes are kept)
- 2: the bundle could not be imported at all (nothing was changed)
"""

from __future__ import annotations

import json
from typing import List, Optional

import typer

from wordbundle.cli.state import load_config, open_store_dir
from wordbundle.core.model import WordsetMode
from wordbundle.reconcile.pipeline import process_import_archive
from wordbundle.reconcile.reconciler import ImportOptions
from wordbundle.store.base import TAX_WORDSET


def _parse_name_overrides(values: List[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for raw in values:
        if "=" not in raw:
            raise typer.BadParameter("--wordset-name expects slug=Name")
        slug, name = raw.split("=", 1)
        out[slug.strip()] = name.strip()
    return out


def register(app: typer.Typer) -> None:
    @app.command("import")
    def import_bundle(
        zip_path: Optional[str] = typer.Argument(None, help="Path to a bundle .zip file."),
        store: str = typer.Option(..., "--store", help="Store directory (store.json, media/, state.json)."),
        token: Optional[str] = typer.Option(None, "--token", help="Import a bundle previewed with `wordbundle preview`."),
        wordset_mode: Optional[str] = typer.Option(
            None,
            "--wordset-mode",
            help="create_from_export|assign_existing (default: create_from_export, or the preview suggestion with --token).",
        ),
        target_wordset: Optional[str] = typer.Option(
            None,
            "--target-wordset",
            help="Existing word set slug for --wordset-mode assign_existing.",
        ),
        wordset_name: Optional[List[str]] = typer.Option(
            None,
            "--wordset-name",
            help="Rename a created word set: slug=Name. Repeatable.",
        ),
        actor: str = typer.Option("", "--actor", help="Name recorded in the import history."),
        config: Optional[str] = typer.Option(None, "--config", help="JSON file overriding engine limits."),
    ) -> None:
        """Import a bundle zip into a store directory."""
        cfg = load_config(config)
        sd = open_store_dir(store, config=cfg)

        base_options: dict = {}
        if token:
            pending = sd.previews.pop(actor, token)
            if not isinstance(pending, dict):
                raise typer.BadParameter("preview token is unknown or was already used")
            zip_path = zip_path or pending.get("zip_path")
            base_options = dict(pending.get("options") or {})
        if not zip_path:
            raise typer.BadParameter("specify a zip path or --token")

        if wordset_mode is not None:
            try:
                base_options["wordset_mode"] = WordsetMode(wordset_mode).value
            except ValueError as e:
                raise typer.BadParameter(f"unknown --wordset-mode '{wordset_mode}'") from e
        if target_wordset is not None:
            ws = sd.store.find_term(TAX_WORDSET, target_wordset)
            if ws is None:
                raise typer.BadParameter(f"unknown word set '{target_wordset}'")
            base_options["target_wordset_id"] = ws.id
        if wordset_name:
            base_options["wordset_name_overrides"] = _parse_name_overrides(wordset_name)

        options = ImportOptions.from_mapping(base_options)

        result = process_import_archive(
            zip_path,
            sd.store,
            options=options,
            config=cfg,
            history=sd.history,
            actor=actor,
        )
        if not result.ok and not any(result.stats.values()) and result.undo.is_empty():
            raise typer.BadParameter(result.message + ("\n" + "\n".join(result.errors) if result.errors else ""))

        sd.save()
        typer.echo(json.dumps(result.as_dict(), indent=2, sort_keys=True, ensure_ascii=False))
        if not result.ok:
            raise typer.Exit(code=1)
