"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from livecode.cli_commands.run import run
    from livecode.cli_commands.snippets import snippets

    cli.add_command(run)
    cli.add_command(snippets)
