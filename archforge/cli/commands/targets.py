"""``archforge targets`` — show the declared build matrix."""

from __future__ import annotations

from rich.console import Console

from archforge.models.config import PipelineConfig
from archforge.monitor.renderer import RunRenderer

console = Console()


def targets_cmd() -> None:
    """List every (platform, triple) the pipeline builds."""
    console.print(RunRenderer(console=console).render_matrix(PipelineConfig().matrix))
