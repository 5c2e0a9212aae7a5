"""`wordbundle undo` command: delete what one recorded import created."""

from __future__ import annotations

import json
from typing import Optional

import typer

from wordbundle.cli.state import load_config, open_store_dir
from wordbundle.reconcile.history import undo_history_entry


def register(app: typer.Typer) -> None:
    @app.command("undo")
    def undo(
        entry_id: str = typer.Argument(..., help="History entry id (see `wordbundle history`)."),
        store: str = typer.Option(..., "--store", help="Store directory (store.json, media/, state.json)."),
        config: Optional[str] = typer.Option(None, "--config", help="JSON file overriding engine limits."),
    ) -> None:
        """Undo a recorded import."""
        sd = open_store_dir(store, config=load_config(config))
        if sd.history.get(entry_id) is None:
            raise typer.BadParameter(f"unknown history entry '{entry_id}'")

        result = undo_history_entry(sd.store, sd.history, entry_id)
        sd.save()
        typer.echo(json.dumps(result.as_dict(), indent=2, sort_keys=True, ensure_ascii=False))
        if not result.ok:
            raise typer.Exit(code=1)
