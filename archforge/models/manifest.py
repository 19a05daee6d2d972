"""Multi-architecture manifest and run report models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from archforge.models.digests import ImageDigest
from archforge.models.jobs import JobResult, JobState
from archforge.models.versioning import AppVersion


class MultiArchManifest(BaseModel):
    """A published manifest list: one tag mapped to several platform digests."""

    model_config = ConfigDict(frozen=True)

    image: str
    tag: str
    digests: tuple[ImageDigest, ...]
    manifest_digest: ImageDigest | None = None
    published_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def reference(self) -> str:
        """Human-facing reference, e.g. ``ghcr.io/xline-kv/xline:latest``."""
        return f"{self.image}:{self.tag}"


class RunReport(BaseModel):
    """Everything a run produced, surfaced to the operator."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    app_version: AppVersion
    declared_targets: int
    jobs: tuple[JobResult, ...]
    manifest: MultiArchManifest | None = None
    merge_error: str | None = None
    finished_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def failed_jobs(self) -> list[JobResult]:
        return [j for j in self.jobs if j.state != JobState.SUCCEEDED]

    @property
    def digest_count(self) -> int:
        return sum(1 for j in self.jobs if j.marker is not None)

    @property
    def succeeded(self) -> bool:
        """True only if every job succeeded and one manifest was published."""
        return (
            self.manifest is not None
            and self.merge_error is None
            and not self.failed_jobs
        )
