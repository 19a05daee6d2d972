"""Pipeline and run configuration models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from archforge.models.targets import DEFAULT_BUILD_TARGETS, BuildMatrix
from archforge.models.versioning import AppVersion

if TYPE_CHECKING:
    from archforge.config import ArchforgeSettings


def _default_matrix() -> BuildMatrix:
    return BuildMatrix(targets=tuple(DEFAULT_BUILD_TARGETS))


class PipelineConfig(BaseModel):
    """Pipeline-definition-time configuration.

    Built from ``ArchforgeSettings`` for real runs; tests construct it
    directly with temp paths.
    """

    model_config = ConfigDict(frozen=True)

    image_id: str = "ghcr.io/xline-kv/xline"
    matrix: BuildMatrix = Field(default_factory=_default_matrix)
    source_dir: Path = Path(".")
    digest_root: Path = Path(".archforge/digests")
    ledger_db_path: Path = Path(".archforge/ledger.db")
    max_parallel_jobs: int = Field(default=4, ge=1)
    barrier_timeout_seconds: float | None = 3600.0
    fallback_version: str = Field(default="dev", min_length=1)

    @classmethod
    def from_settings(cls, settings: ArchforgeSettings) -> PipelineConfig:
        return cls(
            image_id=settings.image_id,
            source_dir=settings.source_dir,
            digest_root=settings.digest_root,
            ledger_db_path=settings.ledger_path,
            max_parallel_jobs=settings.max_parallel_jobs,
            barrier_timeout_seconds=settings.barrier_timeout_seconds,
            fallback_version=settings.fallback_version,
        )


class RunConfig(BaseModel):
    """Per-run configuration, fixed once the AppVersion is resolved."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: f"af-{uuid.uuid4().hex[:12]}")
    pipeline_config: PipelineConfig = Field(default_factory=PipelineConfig)
    app_version: AppVersion
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
