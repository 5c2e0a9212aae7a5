"""`wordbundle history` command: list recorded imports."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

import typer

from wordbundle.cli.state import load_config, open_store_dir


def register(app: typer.Typer) -> None:
    @app.command("history")
    def history(
        store: str = typer.Option(..., "--store", help="Store directory (store.json, media/, state.json)."),
        show_all: bool = typer.Option(False, "--all", help="List every kept entry, not only today and yesterday."),
        as_json: bool = typer.Option(False, "--json", help="Print entries as JSON."),
        config: Optional[str] = typer.Option(None, "--config", help="JSON file overriding engine limits."),
    ) -> None:
        """List recent imports and whether they were undone."""
        sd = open_store_dir(store, config=load_config(config))
        entries = sd.history.entries() if show_all else sd.history.recent()

        if as_json:
            typer.echo(json.dumps([e.as_dict() for e in entries], indent=2, sort_keys=True, ensure_ascii=False))
            return
        if not entries:
            typer.echo("No recent imports.")
            return
        for e in entries:
            when = datetime.fromtimestamp(e.finished_at).strftime("%Y-%m-%d %H:%M:%S")
            created = sum(v for k, v in e.stats.items() if k.endswith("_created"))
            state = "undone" if e.undone_at else ("ok" if e.ok else "errors")
            who = f" by {e.actor}" if e.actor else ""
            typer.echo(f"{e.id}  {when}{who}  [{state}]  {created} created  {e.message}")
