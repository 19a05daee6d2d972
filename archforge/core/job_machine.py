"""Deterministic job state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Every transition recorded in the Run Ledger, tagged with the AppVersion
- Terminal states are final; late transitions are refused, not applied
"""

from __future__ import annotations

import threading

from archforge.core.run_ledger import RunLedger
from archforge.models.jobs import TERMINAL_STATES, VALID_TRANSITIONS, JobState
from archforge.models.ledger import LedgerEntry
from archforge.models.versioning import AppVersion


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class JobStateMachine:
    """Tracks the state of every job in one run.

    Parameters
    ----------
    ledger:
        The Run Ledger to record transitions into.
    run_id:
        The run these jobs belong to.
    app_version:
        The run's AppVersion, stamped on every ledger entry.
    """

    def __init__(self, ledger: RunLedger, run_id: str, app_version: AppVersion) -> None:
        self._ledger = ledger
        self.run_id = run_id
        self.app_version = app_version
        self._states: dict[str, JobState] = {}
        self._lock = threading.Lock()

    def initialize(self, job_ids: list[str]) -> dict[str, JobState]:
        """Register every job as PENDING."""
        with self._lock:
            for job_id in job_ids:
                self._states[job_id] = JobState.PENDING
            return dict(self._states)

    def get_state(self, job_id: str) -> JobState:
        with self._lock:
            return self._states[job_id]

    def get_all_states(self) -> dict[str, JobState]:
        with self._lock:
            return dict(self._states)

    def all_terminal(self) -> bool:
        with self._lock:
            return all(s in TERMINAL_STATES for s in self._states.values())

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self,
        job_id: str,
        target_state: JobState,
        *,
        digest: str = "",
        detail: str = "",
    ) -> LedgerEntry:
        """Move *job_id* to *target_state* and record it.

        Raises ``InvalidTransitionError`` if the move is not allowed.
        """
        with self._lock:
            return self._apply(job_id, target_state, digest, detail)

    def settle(
        self,
        job_id: str,
        target_state: JobState,
        *,
        digest: str = "",
        detail: str = "",
    ) -> LedgerEntry | None:
        """Move a job into a terminal state unless it already is in one.

        Returns ``None`` when the job had already settled, e.g. when the
        completion barrier cancelled it first.
        """
        if target_state not in TERMINAL_STATES:
            raise InvalidTransitionError(f"{target_state.value} is not a terminal state")
        with self._lock:
            if self._states.get(job_id) in TERMINAL_STATES:
                return None
            return self._apply(job_id, target_state, digest, detail)

    def _apply(
        self, job_id: str, target_state: JobState, digest: str, detail: str
    ) -> LedgerEntry:
        # Caller holds self._lock.
        current = self._states.get(job_id)
        if current is None:
            raise InvalidTransitionError(f"Unknown job {job_id!r} in run {self.run_id}")

        allowed = VALID_TRANSITIONS[current]
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {job_id} from {current.value} to "
                f"{target_state.value}. Allowed: {sorted(s.value for s in allowed)}"
            )

        sealed = self._ledger.append(
            LedgerEntry(
                run_id=self.run_id,
                job_id=job_id,
                state_transition=f"{current.value}->{target_state.value}",
                app_version=self.app_version.value,
                digest=digest,
                detail=detail,
            )
        )
        self._states[job_id] = target_state
        return sealed
