"""``archforge version`` — print the AppVersion a run would use."""

from __future__ import annotations

from pathlib import Path

import typer

from archforge.config import settings
from archforge.core.version_resolver import VersionResolver
from archforge.models.versioning import TriggerEvent


def version_cmd(
    event: TriggerEvent = typer.Option(
        TriggerEvent.WORKFLOW_DISPATCH, "--event", "-e", help="Trigger event."
    ),
    source_dir: Path = typer.Option(None, "--source-dir", help="Source tree root."),
    fallback: str = typer.Option(None, "--fallback", help="Identifier used if git fails."),
) -> None:
    """Resolve and print the app version (plain text, for scripting)."""
    resolver = VersionResolver(
        source_dir or settings.source_dir,
        fallback=fallback or settings.fallback_version,
    )
    typer.echo(resolver.resolve(event).value)
