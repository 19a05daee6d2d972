"""Rich terminal renderer for run reports and ledger history.

Color scheme
------------
- green     : SUCCEEDED
- red       : FAILED
- yellow    : RUNNING
- dim       : PENDING
- magenta   : CANCELLED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from archforge.models.jobs import JobState
from archforge.models.ledger import LedgerEntry
from archforge.models.manifest import RunReport
from archforge.models.targets import BuildMatrix

_STATE_ICONS: dict[JobState, str] = {
    JobState.SUCCEEDED: "[green]SUCCEEDED[/green]",
    JobState.FAILED: "[bold red]FAILED[/bold red]",
    JobState.RUNNING: "[yellow]RUNNING[/yellow]",
    JobState.PENDING: "[dim]PENDING[/dim]",
    JobState.CANCELLED: "[magenta]CANCELLED[/magenta]",
}


def _short(digest: object | None, width: int = 19) -> str:
    if not digest:
        return "[dim]-[/dim]"
    text = str(digest)
    return text if len(text) <= width else text[:width] + "…"


class RunRenderer:
    """Renders run reports, build matrices and ledger history.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Run report
    # ------------------------------------------------------------------

    def render_report(self, report: RunReport) -> Panel:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Platform", min_width=14)
        table.add_column("Triple", min_width=24)
        table.add_column("State", justify="center", min_width=11)
        table.add_column("Digest", min_width=21)
        table.add_column("Details")

        for job in report.jobs:
            details: list[str] = []
            if job.failed_step:
                details.append(f"[red]{job.failed_step.value}[/red]")
            if job.error:
                details.append(f"[red]{escape(job.error)}[/red]")
            if job.duration_seconds is not None:
                details.append(f"[dim]{job.duration_seconds:.1f}s[/dim]")
            table.add_row(
                job.target.platform_tag,
                job.target.compilation_triple,
                _STATE_ICONS.get(job.state, job.state.value),
                _short(job.digest),
                " | ".join(details) if details else "[dim]-[/dim]",
            )

        if report.manifest is not None:
            outcome = f"[bold green]Published[/bold green] {report.manifest.reference}"
        else:
            reason = escape(report.merge_error or "unknown")
            outcome = f"[bold red]Not published[/bold red]: {reason}"

        summary = "  |  ".join([
            f"[bold]Run:[/bold] {report.run_id}",
            f"[bold]Version:[/bold] {report.app_version.value} "
            f"[dim]({report.app_version.source.value})[/dim]",
            f"[bold]Digests:[/bold] {report.digest_count}/{report.declared_targets}",
        ])

        return Panel(
            Group(table, Text(""), Text.from_markup(summary), Text.from_markup(outcome)),
            title="[bold]Multi-arch image run[/bold]",
            border_style="green" if report.succeeded else "red",
            padding=(1, 2),
        )

    def print_report(self, report: RunReport) -> None:
        self.console.print(self.render_report(report))

    # ------------------------------------------------------------------
    # Build matrix
    # ------------------------------------------------------------------

    def render_matrix(self, matrix: BuildMatrix) -> Table:
        table = Table(title="Build matrix", header_style="bold cyan")
        table.add_column("Platform", style="cyan")
        table.add_column("Arch")
        table.add_column("Triple")
        table.add_column("Cross image")
        table.add_column("Runner OS", style="dim")
        for t in matrix.targets:
            table.add_row(
                t.platform_tag,
                t.cpu_architecture,
                t.compilation_triple,
                t.cross_image,
                t.operating_system,
            )
        return table

    # ------------------------------------------------------------------
    # Ledger history
    # ------------------------------------------------------------------

    def render_ledger(self, run_id: str, entries: list[LedgerEntry]) -> Table:
        table = Table(title=f"Ledger for {run_id}", header_style="bold cyan", expand=True)
        table.add_column("Time", style="dim", width=10)
        table.add_column("Job", min_width=12)
        table.add_column("Transition", min_width=22)
        table.add_column("Version")
        table.add_column("Digest")
        table.add_column("Detail")
        for e in entries:
            table.add_row(
                e.timestamp_utc.strftime("%H:%M:%S"),
                e.job_id,
                e.state_transition,
                e.app_version,
                _short(e.digest),
                escape(e.detail) if e.detail else "[dim]-[/dim]",
            )
        return table

    def print_chain_verification(self, run_id: str, valid: bool) -> None:
        if valid:
            self.console.print(f"[green]Hash chain for run {run_id} is valid.[/green]")
        else:
            self.console.print(f"[bold red]Hash chain for run {run_id} is BROKEN![/bold red]")
