"""``archforge merge RUN_ID`` — merge an already-collected run.

Runs only the merge phase: checks the run's digest collection against the
declared target count and publishes one manifest list under the given
app version.  Used when the fan-out ran elsewhere and only the digest
markers were shipped here.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from archforge.backends.buildx import ImagetoolsManifestMerger, MergeError
from archforge.config import settings
from archforge.core.digest_collector import DigestCollector, MarkerPersistenceError
from archforge.core.merge import IncompleteDigestSetError, MergeTrigger
from archforge.models.config import PipelineConfig
from archforge.models.versioning import AppVersion, VersionSource

console = Console()


def merge_cmd(
    run_id: str = typer.Argument(..., help="The run whose digests to merge."),
    app_version: str = typer.Option(..., "--app-version", "-v", help="Tag to publish under."),
    targets: int = typer.Option(
        None, "--targets", "-n", min=1, help="Declared target count (default: build matrix)."
    ),
    digest_root: Path = typer.Option(None, "--digests", help="Digest collection root."),
    image: str = typer.Option(None, "--image", help="Image repository."),
) -> None:
    """Publish a multi-arch manifest for RUN_ID, or fail if digests are missing."""
    declared = targets or PipelineConfig().matrix.declared_count
    collector = DigestCollector(digest_root or settings.digest_root, run_id)
    merger = ImagetoolsManifestMerger(image or settings.image_id)
    version = AppVersion(value=app_version, source=VersionSource.EXPLICIT)

    try:
        manifest = MergeTrigger(merger, declared).fire(version, collector)
    except (IncompleteDigestSetError, MergeError, MarkerPersistenceError) as exc:
        console.print(f"[bold red]Merge refused:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join(
                [f"[bold green]Published {manifest.reference}[/bold green]", ""]
                + [f"  {d}" for d in manifest.digests]
            ),
            title="[bold]Manifest list[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
