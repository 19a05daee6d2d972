"""``archforge status [RUN_ID]`` — show a run's ledger and verify its chain."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from archforge.config import settings
from archforge.core.run_ledger import LedgerIntegrityError, RunLedger
from archforge.monitor.renderer import RunRenderer

console = Console()


def status_cmd(
    run_id: str = typer.Argument(None, help="Run to show (default: most recent)."),
    ledger_db: Path = typer.Option(None, "--ledger", "-l", help="Ledger SQLite database."),
) -> None:
    """Print every recorded job transition for a run."""
    db_path = ledger_db or settings.ledger_path
    if not db_path.exists():
        console.print(f"[bold red]Ledger not found:[/bold red] {db_path}")
        raise typer.Exit(code=1)

    ledger = RunLedger(db_path)
    if run_id is None:
        run_ids = ledger.get_all_run_ids()
        if not run_ids:
            console.print("[dim]No runs recorded.[/dim]")
            return
        run_id = run_ids[0]

    entries = ledger.get_run_entries(run_id)
    if not entries:
        console.print(f"[bold red]Unknown run:[/bold red] {run_id}")
        raise typer.Exit(code=1)

    renderer = RunRenderer(console=console)
    console.print(renderer.render_ledger(run_id, entries))
    try:
        valid = ledger.verify_chain(run_id)
    except LedgerIntegrityError as exc:
        console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        valid = False
    renderer.print_chain_verification(run_id, valid)
    if not valid:
        raise typer.Exit(code=1)
