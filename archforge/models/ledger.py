"""Run Ledger entry model (append-only, hash-chained).

One entry per job state transition.  Every entry carries the run's
AppVersion, which makes "computed once, identical everywhere" auditable
after the run has finished.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class LedgerEntry(BaseModel):
    """A single entry in the append-only Run Ledger."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    job_id: str  # target_id, or "merge" for the merge phase
    state_transition: str  # "pending->running"
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    app_version: str = ""
    digest: str = ""  # "sha256:<hex>" once known
    detail: str = ""  # failure message or manifest reference
    previous_entry_hash: str = ""
    entry_hash: str = ""  # computed on append, seals this entry
