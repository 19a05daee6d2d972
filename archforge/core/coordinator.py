"""Build Coordinator — fans out one independent build job per target.

Each job runs the steps environment -> compile -> stage -> push -> record
on a bounded worker pool.  Jobs share nothing mutable except the
append-only digest collection, and a failure in one job never affects its
siblings: every job is attempted even if others fail.  The coordinator
performs no retries.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone

from archforge.backends.buildx import ImageBuilder
from archforge.backends.toolchain import BinaryStager, Compiler, CrossEnvironment
from archforge.core.barrier import BarrierTimeoutError, CompletionBarrier
from archforge.core.digest_collector import DigestCollector
from archforge.core.job_machine import InvalidTransitionError, JobStateMachine
from archforge.models.digests import DigestArtifact, ImageDigest
from archforge.models.jobs import BuildStep, JobResult, JobState
from archforge.models.targets import BuildMatrix, BuildTarget
from archforge.models.versioning import AppVersion

logger = logging.getLogger(__name__)


class JobCancelledError(RuntimeError):
    """Raised inside a job when the run was cancelled between steps."""


class BuildCoordinator:
    """Runs the fan-out for one run.

    Parameters
    ----------
    matrix:
        The declared targets; one job per target.
    app_version:
        The run's AppVersion, threaded through to every job.
    collector:
        Where each job records its digest marker.
    machine:
        Job state machine; must already have every target initialized.
    environment, compiler, stager, builder:
        Step backends shared by all jobs.
    """

    def __init__(
        self,
        matrix: BuildMatrix,
        app_version: AppVersion,
        collector: DigestCollector,
        machine: JobStateMachine,
        *,
        environment: CrossEnvironment,
        compiler: Compiler,
        stager: BinaryStager,
        builder: ImageBuilder,
        max_parallel_jobs: int = 4,
        barrier: CompletionBarrier | None = None,
    ) -> None:
        self.matrix = matrix
        self.app_version = app_version
        self._collector = collector
        self._machine = machine
        self._environment = environment
        self._compiler = compiler
        self._stager = stager
        self._builder = builder
        self._max_parallel_jobs = max(1, max_parallel_jobs)
        self._barrier = barrier or CompletionBarrier()

        self._cancel = threading.Event()
        self._results: dict[str, JobResult] = {}
        self._results_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Ask every in-flight job to stop at its next step boundary."""
        if not self._cancel.is_set():
            logger.warning("Cancelling fan-out for app version %s", self.app_version.value)
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def fan_out(self) -> list[JobResult]:
        """Run every target's job and wait at the completion barrier.

        Returns one JobResult per target, in matrix order.  Raises
        ``BarrierTimeoutError`` if the barrier deadline passes; jobs still
        unfinished at that point are settled as CANCELLED and
        ``results()`` holds the partial outcome.
        """
        targets = list(self.matrix.targets)
        workers = min(self._max_parallel_jobs, len(targets))
        logger.info(
            "Fanning out %d build jobs (%d workers, app_version=%s)",
            len(targets),
            workers,
            self.app_version.value,
        )

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="archforge-job")
        futures: dict[Future, str] = {
            executor.submit(self.run_target, target): target.target_id for target in targets
        }
        try:
            self._barrier.wait(futures)
        except BarrierTimeoutError as exc:
            self.cancel()
            executor.shutdown(wait=False, cancel_futures=True)
            for target in targets:
                if target.target_id in exc.pending:
                    self._abandon(target, str(exc))
            raise
        executor.shutdown(wait=True)
        return self.results()

    def results(self) -> list[JobResult]:
        """Results recorded so far, in matrix order."""
        with self._results_lock:
            return [
                self._results[t.target_id]
                for t in self.matrix.targets
                if t.target_id in self._results
            ]

    # ------------------------------------------------------------------
    # Per-target job
    # ------------------------------------------------------------------

    def run_target(self, target: BuildTarget) -> JobResult:
        """Build, push and record one target.  Never raises for job-local failures."""
        job_id = target.target_id
        started = datetime.now(timezone.utc)

        if self.cancelled:
            return self._finish(target, JobState.CANCELLED, started, error="run cancelled")
        try:
            self._machine.transition(job_id, JobState.RUNNING)
        except InvalidTransitionError:
            # Settled (cancelled) before the worker picked it up.
            return self._finish(target, JobState.CANCELLED, started, error="run cancelled")

        step = BuildStep.ENVIRONMENT
        digest: ImageDigest | None = None
        try:
            self._checkpoint(step)
            self._environment.prepare(target)

            step = BuildStep.COMPILE
            self._checkpoint(step)
            binaries = self._compiler.compile(target, self.app_version)

            step = BuildStep.STAGE
            self._checkpoint(step)
            context = self._stager.stage(target, binaries)

            step = BuildStep.PUSH
            self._checkpoint(step)
            digest = self._builder.build_and_push(target, context)

            # Pushed but unrecorded counts as incomplete.
            step = BuildStep.RECORD
            self._checkpoint(step)
            marker = self._collector.record(digest, platform_tag=target.platform_tag)
        except JobCancelledError as exc:
            return self._finish(
                target, JobState.CANCELLED, started, step=step, digest=digest, error=str(exc)
            )
        except Exception as exc:
            logger.error(
                "Build job %s failed at %s: %s", target.platform_tag, step.value, exc
            )
            return self._finish(
                target,
                JobState.FAILED,
                started,
                step=step,
                digest=digest,
                error=f"{type(exc).__name__}: {exc}",
            )

        return self._finish(target, JobState.SUCCEEDED, started, digest=digest, marker=marker)

    def _checkpoint(self, step: BuildStep) -> None:
        if self.cancelled:
            raise JobCancelledError(f"run cancelled before {step.value}")

    def _finish(
        self,
        target: BuildTarget,
        state: JobState,
        started: datetime,
        *,
        step: BuildStep | None = None,
        digest: ImageDigest | None = None,
        marker: DigestArtifact | None = None,
        error: str | None = None,
    ) -> JobResult:
        entry = self._machine.settle(
            target.target_id,
            state,
            digest=str(digest) if digest else "",
            detail=error or "",
        )
        if entry is None:
            # The barrier settled this job first; its verdict stands.
            state = self._machine.get_state(target.target_id)
            logger.warning(
                "Build job %s finished after being settled as %s", target.platform_tag, state.value
            )
            with self._results_lock:
                existing = self._results.get(target.target_id)
            if existing is not None:
                return existing

        result = JobResult(
            target=target,
            state=state,
            digest=digest,
            marker=marker if state == JobState.SUCCEEDED else None,
            failed_step=step if state != JobState.SUCCEEDED else None,
            error=error,
            started_at=started,
            finished_at=datetime.now(timezone.utc),
        )
        with self._results_lock:
            self._results[target.target_id] = result

        if state == JobState.SUCCEEDED:
            logger.info("Build job %s succeeded: %s", target.platform_tag, digest)
        return result

    def _abandon(self, target: BuildTarget, reason: str) -> None:
        """Settle a job the barrier gave up on as CANCELLED."""
        if self._machine.settle(target.target_id, JobState.CANCELLED, detail=reason) is None:
            return
        result = JobResult(
            target=target,
            state=JobState.CANCELLED,
            error=reason,
            finished_at=datetime.now(timezone.utc),
        )
        with self._results_lock:
            self._results[target.target_id] = result
