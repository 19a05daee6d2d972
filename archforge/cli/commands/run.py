"""``archforge run`` — the end-to-end pipeline.

Resolves the app version, fans out one build job per target, waits at
the completion barrier and merges once.  Exits non-zero unless every
target succeeded and the manifest was published.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from archforge.config import ArchforgeSettings
from archforge.core.orchestrator import Pipeline
from archforge.models.versioning import TriggerEvent
from archforge.monitor.renderer import RunRenderer

console = Console()


def run_cmd(
    event: TriggerEvent = typer.Option(
        TriggerEvent.WORKFLOW_DISPATCH,
        "--event",
        "-e",
        help="Trigger event: push publishes 'latest', anything else uses git describe.",
    ),
    run_id: str = typer.Option(None, "--run-id", help="Explicit run id."),
    image: str = typer.Option(None, "--image", help="Image repository to publish."),
    source_dir: Path = typer.Option(None, "--source-dir", help="Source tree root."),
    jobs: int = typer.Option(None, "--jobs", "-j", min=1, help="Max parallel build jobs."),
    timeout: float = typer.Option(
        None, "--timeout", min=1, help="Completion barrier timeout in seconds."
    ),
) -> None:
    """Build every target, push by digest, and publish one multi-arch manifest."""
    overrides = {
        "image_id": image,
        "source_dir": source_dir,
        "max_parallel_jobs": jobs,
        "barrier_timeout_seconds": timeout,
    }
    run_settings = ArchforgeSettings(**{k: v for k, v in overrides.items() if v is not None})
    pipeline = Pipeline.from_settings(run_settings, run_id=run_id)

    console.print(f"[bold cyan]Starting run {pipeline.run_id}[/bold cyan]")
    try:
        report = pipeline.run(event)
    except KeyboardInterrupt:
        pipeline.cancel()
        console.print(f"[bold red]Run {pipeline.run_id} cancelled.[/bold red]")
        raise typer.Exit(code=130)

    RunRenderer(console=console).print_report(report)
    if not report.succeeded:
        raise typer.Exit(code=1)
