"""Shared test fixtures for archforge.

The fakes here satisfy the backend Protocols without docker, cross or a
registry, so every coordination path can be exercised in-process.
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from archforge.backends.buildx import RegistryPushError
from archforge.backends.commands import CommandError, CommandResult
from archforge.backends.toolchain import BuildError
from archforge.core.digest_collector import DigestCollector
from archforge.core.orchestrator import PipelineBackends
from archforge.core.run_ledger import RunLedger
from archforge.models.config import PipelineConfig
from archforge.models.digests import ImageDigest
from archforge.models.manifest import MultiArchManifest
from archforge.models.targets import BuildTarget
from archforge.models.versioning import AppVersion, TriggerEvent, VersionSource


def digest_for(seed: str) -> ImageDigest:
    """A deterministic, valid sha256 ImageDigest derived from *seed*."""
    return ImageDigest(encoded=hashlib.sha256(seed.encode()).hexdigest())


# ---------------------------------------------------------------------------
# Backend fakes
# ---------------------------------------------------------------------------


class FakeEnvironment:
    def __init__(self) -> None:
        self.prepared: list[str] = []

    def prepare(self, target: BuildTarget) -> None:
        self.prepared.append(target.compilation_triple)


class FakeCompiler:
    """Compiles instantly; raises BuildError for triples in ``fail_for``."""

    def __init__(self, workdir: Path, fail_for: set[str] | None = None) -> None:
        self.workdir = workdir
        self.fail_for = fail_for or set()
        self.versions_seen: list[str] = []
        self._lock = threading.Lock()

    def compile(self, target: BuildTarget, app_version: AppVersion) -> list[Path]:
        with self._lock:
            self.versions_seen.append(app_version.value)
        if target.compilation_triple in self.fail_for:
            raise BuildError(f"linker error for {target.compilation_triple}")
        out = self.workdir / target.compilation_triple
        out.mkdir(parents=True, exist_ok=True)
        binaries = [out / "xline", out / "benchmark"]
        for b in binaries:
            b.write_bytes(b"\x7fELF")
        return binaries


class FakeStager:
    def stage(self, target: BuildTarget, binaries: list[Path]) -> Path:
        return binaries[0].parent


class FakeBuilder:
    """Pushes by digest; the digest is derived from the platform tag.

    ``gate`` (optional) blocks pushes until set, to hold jobs open.
    """

    def __init__(
        self,
        fail_for: set[str] | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        self.fail_for = fail_for or set()
        self.gate = gate
        self.pushed: list[str] = []
        self.tags_attached: list[str] = []
        self._lock = threading.Lock()

    def build_and_push(self, target: BuildTarget, context_dir: Path) -> ImageDigest:
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if target.platform_tag in self.fail_for:
            raise RegistryPushError(f"registry rejected {target.platform_tag}")
        with self._lock:
            self.pushed.append(target.platform_tag)
        return digest_for(target.platform_tag)


class FakeMerger:
    """Records each merge; publishes every collected digest."""

    def __init__(self, image: str = "ghcr.io/example/server") -> None:
        self.image = image
        self.calls: list[tuple[str, list[ImageDigest]]] = []

    def merge(self, app_version: AppVersion, collector: DigestCollector) -> MultiArchManifest:
        digests = collector.require_digests()
        self.calls.append((app_version.value, digests))
        return MultiArchManifest(
            image=self.image,
            tag=app_version.value,
            digests=tuple(digests),
            manifest_digest=digest_for("index:" + app_version.value),
        )


class FakeResolver:
    """Counts resolutions; returns a fixed AppVersion."""

    def __init__(self, value: str = "v1.2.3") -> None:
        self.value = value
        self.calls = 0

    def resolve(self, event: TriggerEvent | str) -> AppVersion:
        self.calls += 1
        event = TriggerEvent(event)
        if event == TriggerEvent.PUSH:
            return AppVersion(value="latest", source=VersionSource.PUSH, event=event)
        return AppVersion(value=self.value, source=VersionSource.DESCRIBE, event=event)


class FakeRunner:
    """CommandRunner stand-in with scripted responses.

    ``responses`` maps an argv prefix (tuple) to stdout text, or to an
    exception instance to raise.  Unmatched commands succeed with no output.
    """

    def __init__(self, responses: dict[tuple[str, ...], object] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.on_call: Callable[[list[str]], None] | None = None

    def run(self, argv, *, cwd=None, input_text=None, check=True) -> CommandResult:
        self.calls.append(list(argv))
        self.inputs.append(input_text)
        if self.on_call is not None:
            self.on_call(list(argv))
        for prefix, response in self.responses.items():
            if tuple(argv[: len(prefix)]) == prefix:
                if isinstance(response, BaseException):
                    raise response
                return CommandResult(argv=list(argv), returncode=0, stdout=str(response))
        return CommandResult(argv=list(argv), returncode=0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def run_id() -> str:
    """Provide a deterministic test run ID."""
    return "af-test-run-001"


@pytest.fixture
def ledger(tmp_dir: Path) -> RunLedger:
    """Provide a fresh RunLedger backed by a temp SQLite database."""
    return RunLedger(tmp_dir / "test_ledger.db")


@pytest.fixture
def collector(tmp_dir: Path, run_id: str) -> DigestCollector:
    """Provide an empty digest collection for the test run."""
    return DigestCollector(tmp_dir / "digests", run_id)


@pytest.fixture
def app_version() -> AppVersion:
    return AppVersion(
        value="v1.2.3", source=VersionSource.DESCRIBE, event=TriggerEvent.WORKFLOW_DISPATCH
    )


@pytest.fixture
def pipeline_config(tmp_dir: Path) -> PipelineConfig:
    """PipelineConfig with temp paths and a short barrier timeout."""
    return PipelineConfig(
        image_id="ghcr.io/example/server",
        source_dir=tmp_dir,
        digest_root=tmp_dir / "digests",
        ledger_db_path=tmp_dir / "ledger.db",
        barrier_timeout_seconds=30,
    )


@pytest.fixture
def fake_runner_cls() -> type[FakeRunner]:
    return FakeRunner


@pytest.fixture
def make_backends(tmp_dir: Path) -> Callable[..., PipelineBackends]:
    """Factory fixture: PipelineBackends built from fakes.

    Keyword overrides replace individual backends, e.g.
    ``make_backends(builder=FakeBuilder(fail_for={"linux/arm64"}))``.
    """

    def _factory(**overrides: object) -> PipelineBackends:
        defaults: dict[str, object] = {
            "environment": FakeEnvironment(),
            "compiler": FakeCompiler(tmp_dir / "build"),
            "stager": FakeStager(),
            "builder": FakeBuilder(),
            "merger": FakeMerger(),
        }
        defaults.update(overrides)
        return PipelineBackends(**defaults)

    return _factory


@pytest.fixture
def fakes() -> dict[str, type]:
    """The fake classes, for tests that need to configure one directly."""
    return {
        "environment": FakeEnvironment,
        "compiler": FakeCompiler,
        "stager": FakeStager,
        "builder": FakeBuilder,
        "merger": FakeMerger,
        "resolver": FakeResolver,
        "runner": FakeRunner,
    }


@pytest.fixture
def make_digest() -> Callable[[str], ImageDigest]:
    return digest_for


@pytest.fixture
def command_error() -> Callable[..., CommandError]:
    def _factory(argv: list[str] | None = None, returncode: int = 1, stderr: str = "boom"):
        return CommandError(argv or ["false"], returncode, stderr)

    return _factory
