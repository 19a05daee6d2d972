"""Build job state models.

Each fan-out job moves through a small state machine.  SUCCEEDED, FAILED
and CANCELLED are terminal; the completion barrier waits until every job
is in one of them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from archforge.models.digests import DigestArtifact, ImageDigest
from archforge.models.targets import BuildTarget


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES: frozenset[JobState] = frozenset(
    {JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED}
)

# Enforced structurally by JobStateMachine.
VALID_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.PENDING: {JobState.RUNNING, JobState.CANCELLED},
    JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED},
    JobState.SUCCEEDED: set(),
    JobState.FAILED: set(),
    JobState.CANCELLED: set(),
}


class BuildStep(str, Enum):
    """The ordered steps of one per-target build job."""

    ENVIRONMENT = "environment"
    COMPILE = "compile"
    STAGE = "stage"
    PUSH = "push"
    RECORD = "record"


class JobResult(BaseModel):
    """Outcome of one per-target build job."""

    model_config = ConfigDict(frozen=True)

    target: BuildTarget
    state: JobState
    digest: ImageDigest | None = None
    marker: DigestArtifact | None = None
    failed_step: BuildStep | None = None
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.SUCCEEDED

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
