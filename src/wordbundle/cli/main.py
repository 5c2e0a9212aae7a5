"""wordbundle CLI entrypoint.

Commands operate on a store directory (`--store DIR`) holding the persisted
content store, its managed media and the import history.
"""

from __future__ import annotations

import logging

import typer

app = typer.Typer(
    name="wordbundle",
    add_completion=False,
    no_args_is_help=True,
    help="Import and export vocabulary bundles (zip archives of words, images and audio).",
)


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress to stderr."),
) -> None:
    """wordbundle CLI."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("version")
def version() -> None:
    """Print the installed wordbundle version."""
    from wordbundle import __version__

    typer.echo(__version__)


def _register_commands() -> None:
    """Register CLI subcommands.

    Importing these modules must remain lightweight so `wordbundle --help` is fast.
    """
    from wordbundle.cli.commands import export_bundle as export_cmd
    from wordbundle.cli.commands import history as history_cmd
    from wordbundle.cli.commands import import_bundle as import_cmd
    from wordbundle.cli.commands import preview as preview_cmd
    from wordbundle.cli.commands import undo as undo_cmd

    export_cmd.register(app)
    preview_cmd.register(app)
    import_cmd.register(app)
    history_cmd.register(app)
    undo_cmd.register(app)


_register_commands()
