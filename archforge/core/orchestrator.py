"""Pipeline orchestrator — the central coordinator for archforge runs.

The Pipeline wires together the VersionResolver, RunLedger,
JobStateMachine, DigestCollector, BuildCoordinator and MergeTrigger into
one end-to-end run:

    resolve version -> fan out -> completion barrier -> merge once

The AppVersion is resolved once and passed by value everywhere after.
A run never raises for login, job-local or merge failures; they are
surfaced in the returned ``RunReport`` and in the ledger.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from archforge.backends.buildx import (
    BuildxImageBuilder,
    ImageBuilder,
    ImagetoolsManifestMerger,
    MergeError,
    RegistryLogin,
    RegistryPushError,
)
from archforge.backends.commands import CommandRunner
from archforge.backends.toolchain import (
    BinaryStager,
    Compiler,
    ContextStager,
    CrossCompiler,
    CrossEnvironment,
    CrossImageEnvironment,
)
from archforge.config import ArchforgeSettings
from archforge.core.barrier import BarrierTimeoutError, CompletionBarrier
from archforge.core.coordinator import BuildCoordinator
from archforge.core.digest_collector import DigestCollector, MarkerPersistenceError
from archforge.core.job_machine import JobStateMachine
from archforge.core.merge import IncompleteDigestSetError, ManifestMerger, MergeTrigger
from archforge.core.run_ledger import RunLedger
from archforge.core.version_resolver import VersionResolver
from archforge.models.config import PipelineConfig, RunConfig
from archforge.models.jobs import JobResult, JobState
from archforge.models.ledger import LedgerEntry
from archforge.models.manifest import MultiArchManifest, RunReport
from archforge.models.versioning import AppVersion, TriggerEvent

logger = logging.getLogger(__name__)

MERGE_JOB_ID = "merge"


class PipelineBackends(BaseModel):
    """The external collaborators a run drives."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    environment: CrossEnvironment
    compiler: Compiler
    stager: BinaryStager
    builder: ImageBuilder
    merger: ManifestMerger
    login: Callable[[], None] | None = None

    @classmethod
    def from_settings(
        cls, settings: ArchforgeSettings, config: PipelineConfig | None = None
    ) -> PipelineBackends:
        """Subprocess-backed defaults: cross, docker buildx, imagetools.

        The image repository comes from *config* when given, so the
        builder and merger publish to the same place the run reports.
        """
        image_id = (config or PipelineConfig.from_settings(settings)).image_id
        runner = CommandRunner(timeout=settings.command_timeout_seconds)
        login = None
        if settings.has_registry_credentials:
            registry = RegistryLogin(settings.registry, runner=runner)

            def login() -> None:
                registry.login(
                    settings.registry_username,
                    settings.registry_password.get_secret_value(),
                )

        return cls(
            environment=CrossImageEnvironment(
                settings.source_dir / settings.cross_dir,
                settings.cache_root,
                runner=runner,
            ),
            compiler=CrossCompiler(
                settings.source_dir,
                settings.binaries,
                toolchain=settings.rust_toolchain,
                runner=runner,
            ),
            stager=ContextStager(
                settings.source_dir / settings.context_dir, settings.work_root
            ),
            builder=BuildxImageBuilder(image_id, runner=runner),
            merger=ImagetoolsManifestMerger(image_id, runner=runner),
            login=login,
        )


class Pipeline:
    """One multi-architecture build-and-publish run.

    Parameters
    ----------
    config:
        Pipeline configuration.  Uses defaults if not provided.
    backends:
        External collaborators.  Required; see ``PipelineBackends.from_settings``.
    run_id:
        Explicit run id; generated if None.
    resolver:
        Version resolver; defaults to git describe against ``config.source_dir``.
    """

    def __init__(
        self,
        backends: PipelineBackends,
        config: PipelineConfig | None = None,
        *,
        run_id: str | None = None,
        resolver: VersionResolver | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.backends = backends

        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        self.run_id = run_id or f"af-{ts}-{uuid.uuid4().hex[:6]}"

        self.ledger = RunLedger(self.config.ledger_db_path)
        self.collector = DigestCollector(self.config.digest_root, self.run_id)
        self.resolver = resolver or VersionResolver(
            self.config.source_dir, fallback=self.config.fallback_version
        )
        self.run_config: RunConfig | None = None

        self._coordinator: BuildCoordinator | None = None
        self._cancel = threading.Event()

    @classmethod
    def from_settings(
        cls, settings: ArchforgeSettings, *, run_id: str | None = None
    ) -> Pipeline:
        config = PipelineConfig.from_settings(settings)
        return cls(PipelineBackends.from_settings(settings, config), config, run_id=run_id)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def run(self, event: TriggerEvent | str) -> RunReport:
        """Execute the full pipeline for *event* and return its report."""
        if self.run_config is not None:
            raise RuntimeError(f"Run {self.run_id} has already been executed")

        app_version = self.resolver.resolve(event)
        self.run_config = RunConfig(
            run_id=self.run_id, pipeline_config=self.config, app_version=app_version
        )
        matrix = self.config.matrix
        logger.info(
            "Run %s: %d targets, app_version=%s", self.run_id, matrix.declared_count, app_version
        )

        machine = JobStateMachine(self.ledger, self.run_id, app_version)
        machine.initialize([t.target_id for t in matrix.targets] + [MERGE_JOB_ID])

        if self.backends.login is not None:
            try:
                self.backends.login()
            except RegistryPushError as exc:
                return self._abort(machine, app_version, str(exc))

        coordinator = BuildCoordinator(
            matrix,
            app_version,
            self.collector,
            machine,
            environment=self.backends.environment,
            compiler=self.backends.compiler,
            stager=self.backends.stager,
            builder=self.backends.builder,
            max_parallel_jobs=self.config.max_parallel_jobs,
            barrier=CompletionBarrier(self.config.barrier_timeout_seconds),
        )
        self._coordinator = coordinator
        if self._cancel.is_set():
            coordinator.cancel()

        try:
            jobs = coordinator.fan_out()
        except BarrierTimeoutError as exc:
            machine.settle(MERGE_JOB_ID, JobState.CANCELLED, detail=str(exc))
            return self._report(app_version, coordinator.results(), merge_error=str(exc))

        if coordinator.cancelled:
            reason = "run cancelled before merge"
            machine.settle(MERGE_JOB_ID, JobState.CANCELLED, detail=reason)
            return self._report(app_version, jobs, merge_error=reason)

        return self._merge(machine, app_version, jobs)

    def _merge(
        self, machine: JobStateMachine, app_version: AppVersion, jobs: list[JobResult]
    ) -> RunReport:
        machine.transition(MERGE_JOB_ID, JobState.RUNNING)
        trigger = MergeTrigger(self.backends.merger, self.config.matrix.declared_count)
        try:
            manifest = trigger.fire(
                app_version,
                self.collector,
                expected_digests=[j.digest for j in jobs if j.succeeded and j.digest],
            )
        except (IncompleteDigestSetError, MergeError, MarkerPersistenceError) as exc:
            logger.error("Merge for run %s failed: %s", self.run_id, exc)
            machine.settle(MERGE_JOB_ID, JobState.FAILED, detail=str(exc))
            return self._report(app_version, jobs, merge_error=str(exc))
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
            logger.exception("Merger for run %s raised unexpectedly", self.run_id)
            machine.settle(MERGE_JOB_ID, JobState.FAILED, detail=reason)
            return self._report(app_version, jobs, merge_error=reason)

        machine.settle(
            MERGE_JOB_ID,
            JobState.SUCCEEDED,
            digest=str(manifest.manifest_digest or ""),
            detail=manifest.reference,
        )
        return self._report(app_version, jobs, manifest=manifest)

    def _abort(
        self, machine: JobStateMachine, app_version: AppVersion, reason: str
    ) -> RunReport:
        """Settle every job as CANCELLED before fan-out and report the failure."""
        logger.error("Run %s aborted before fan-out: %s", self.run_id, reason)
        jobs: list[JobResult] = []
        for target in self.config.matrix.targets:
            machine.settle(target.target_id, JobState.CANCELLED, detail=reason)
            jobs.append(
                JobResult(
                    target=target,
                    state=JobState.CANCELLED,
                    error=reason,
                    finished_at=datetime.now(timezone.utc),
                )
            )
        machine.settle(MERGE_JOB_ID, JobState.CANCELLED, detail=reason)
        return self._report(app_version, jobs, merge_error=reason)

    def cancel(self) -> None:
        """Cancel the run; in-flight jobs stop at their next step boundary."""
        self._cancel.set()
        if self._coordinator is not None:
            self._coordinator.cancel()

    def _report(
        self,
        app_version: AppVersion,
        jobs: list[JobResult],
        *,
        manifest: MultiArchManifest | None = None,
        merge_error: str | None = None,
    ) -> RunReport:
        report = RunReport(
            run_id=self.run_id,
            app_version=app_version,
            declared_targets=self.config.matrix.declared_count,
            jobs=tuple(jobs),
            manifest=manifest,
            merge_error=merge_error,
        )
        if report.succeeded:
            logger.info("Run %s published %s", self.run_id, manifest.reference)
        else:
            logger.error(
                "Run %s failed: %d/%d jobs failed, merge_error=%s",
                self.run_id,
                len(report.failed_jobs),
                report.declared_targets,
                merge_error,
            )
        return report

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_run_entries(self) -> list[LedgerEntry]:
        return self.ledger.get_run_entries(self.run_id)

    def verify_chain(self) -> bool:
        return self.ledger.verify_chain(self.run_id)
