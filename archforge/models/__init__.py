"""Archforge data models — all Pydantic v2, all frozen (immutable)."""

from archforge.models.config import PipelineConfig, RunConfig
from archforge.models.digests import DigestArtifact, ImageDigest, InvalidDigestError
from archforge.models.jobs import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    BuildStep,
    JobResult,
    JobState,
)
from archforge.models.ledger import LedgerEntry
from archforge.models.manifest import MultiArchManifest, RunReport
from archforge.models.targets import (
    DEFAULT_BUILD_TARGETS,
    BuildMatrix,
    BuildTarget,
    MatrixError,
)
from archforge.models.versioning import AppVersion, TriggerEvent, VersionSource

__all__ = [
    # targets
    "BuildTarget",
    "BuildMatrix",
    "MatrixError",
    "DEFAULT_BUILD_TARGETS",
    # versioning
    "AppVersion",
    "TriggerEvent",
    "VersionSource",
    # digests
    "ImageDigest",
    "DigestArtifact",
    "InvalidDigestError",
    # jobs
    "JobState",
    "JobResult",
    "BuildStep",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    # manifest
    "MultiArchManifest",
    "RunReport",
    # ledger
    "LedgerEntry",
    # config
    "PipelineConfig",
    "RunConfig",
]
