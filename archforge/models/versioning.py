"""AppVersion model — the one version string shared by a whole run."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TriggerEvent(str, Enum):
    """What started the run."""

    PUSH = "push"
    WORKFLOW_DISPATCH = "workflow_dispatch"


class VersionSource(str, Enum):
    """How an AppVersion value was derived."""

    PUSH = "push"  # direct push to the default branch -> "latest"
    DESCRIBE = "describe"  # nearest reachable tag or abbreviated commit
    FALLBACK = "fallback"  # describe failed entirely
    EXPLICIT = "explicit"  # supplied by the caller, e.g. a standalone merge


class AppVersion(BaseModel):
    """Immutable version value computed once, before any build starts.

    Passed by value to every build job and to the merge phase.  Never
    recomputed during a run.
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(min_length=1)
    source: VersionSource
    event: TriggerEvent | None = None
    resolved_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __str__(self) -> str:
        return self.value
