"""`wordbundle preview` command.

Parses a bundle zip without importing it and prints a JSON summary. The
preview is also kept in the store directory under a one-time token that
`wordbundle import --token` consumes.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from wordbundle.cli.state import load_config, open_store_dir
from wordbundle.core.errors import BundleError
from wordbundle.reconcile.pipeline import read_import_preview


def register(app: typer.Typer) -> None:
    @app.command("preview")
    def preview(
        zip_path: str = typer.Argument(..., help="Path to a bundle .zip file."),
        store: str = typer.Option(..., "--store", help="Store directory (store.json, media/, state.json)."),
        actor: str = typer.Option("", "--actor", help="Name recorded with the pending preview."),
        config: Optional[str] = typer.Option(None, "--config", help="JSON file overriding engine limits."),
    ) -> None:
        """Preview what importing a bundle would do."""
        cfg = load_config(config)
        sd = open_store_dir(store, config=cfg)
        try:
            data = read_import_preview(zip_path, config=cfg, store=sd.store)
        except BundleError as e:
            raise typer.BadParameter(str(e)) from e

        options = data["default_options"].as_dict()
        token = sd.previews.put(
            actor,
            {"zip_path": str(Path(zip_path).resolve()), "options": options},
        )
        report = {
            "token": token,
            "source": data["source"],
            "preview": data["preview"],
            "default_options": options,
            "warnings": data["warnings"],
        }
        typer.echo(json.dumps(report, indent=2, sort_keys=True, ensure_ascii=False))
