"""`wordbundle export` command.

Exports categories and word images (and, with `--full`, one word set's words
and audio) from a store directory into a bundle zip.

Limits:
- hard file-count / byte ceilings always abort (exit code 2)
- above the soft byte limit, `--allow-large` is required
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from wordbundle.cli.state import load_config, open_store_dir
from wordbundle.core.errors import BundleError
from wordbundle.export import build_export_filename, build_export_payload, check_soft_limit, write_bundle_archive
from wordbundle.store.base import TAX_CATEGORY, TAX_WORDSET


def register(app: typer.Typer) -> None:
    @app.command("export")
    def export(
        store: str = typer.Option(..., "--store", help="Store directory (store.json, media/, state.json)."),
        category: Optional[List[str]] = typer.Option(
            None,
            "--category",
            help="Root category slug to export (with its descendants). Repeatable; default is all categories.",
        ),
        full: bool = typer.Option(False, "--full", help="Include words and audio of one word set."),
        wordset: Optional[str] = typer.Option(None, "--wordset", help="Word set slug (required with --full)."),
        out: Optional[str] = typer.Option(None, "--out", help="Output zip path (default: generated name in cwd)."),
        allow_large: bool = typer.Option(False, "--allow-large", help="Proceed above the soft size limit."),
        config: Optional[str] = typer.Option(None, "--config", help="JSON file overriding engine limits."),
    ) -> None:
        """Export a bundle zip from a store directory."""
        cfg = load_config(config)
        sd = open_store_dir(store, config=cfg)

        root_ids: list[int] = []
        for slug in category or []:
            term = sd.store.find_term(TAX_CATEGORY, slug)
            if term is None:
                raise typer.BadParameter(f"unknown category '{slug}'")
            root_ids.append(term.id)

        wordset_id = 0
        if wordset:
            ws = sd.store.find_term(TAX_WORDSET, wordset)
            if ws is None:
                raise typer.BadParameter(f"unknown word set '{wordset}'")
            wordset_id = ws.id

        try:
            plan = build_export_payload(
                sd.store,
                root_category_ids=root_ids,
                include_full_bundle=full,
                full_wordset_id=wordset_id,
                config=cfg,
            )
            check_soft_limit(plan, cfg, allow_large=allow_large)
        except BundleError as e:
            raise typer.BadParameter(str(e)) from e

        if out:
            out_path = Path(out)
        else:
            out_path = Path(
                build_export_filename(
                    include_full_bundle=full,
                    category_slug=category[0] if category and len(category) == 1 else "",
                    wordset_slug=wordset or "",
                )
            )
        write_bundle_archive(plan, out_path)
        typer.echo(str(out_path))
