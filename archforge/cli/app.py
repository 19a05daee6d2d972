"""Main Typer application — imports and registers all CLI commands.

Entry point: ``archforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from archforge.cli.commands.merge import merge_cmd
from archforge.cli.commands.run import run_cmd
from archforge.cli.commands.status import status_cmd
from archforge.cli.commands.targets import targets_cmd
from archforge.cli.commands.version import version_cmd
from archforge.config import settings

app = typer.Typer(
    name="archforge",
    help="archforge: build, push-by-digest and merge multi-architecture images.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="run", help="Run the full build-and-publish pipeline.")(run_cmd)
app.command(name="version", help="Resolve the app version for a trigger event.")(version_cmd)
app.command(name="targets", help="Show the build matrix.")(targets_cmd)
app.command(name="merge", help="Merge a run's collected digests into one manifest.")(merge_cmd)
app.command(name="status", help="Show the ledger for a run.")(status_cmd)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level (defaults to ARCHFORGE_LOG_LEVEL)."
    ),
) -> None:
    """Configure logging for every subcommand."""
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
