"""Cross-compilation backends for per-target build jobs.

Defines the ``CrossEnvironment``, ``Compiler`` and ``BinaryStager``
Protocols that a build job drives, along with default implementations
backed by docker buildx and ``cross``.

Any object with the right method satisfies a Protocol, so tests and
alternative toolchains plug in without subclassing.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

from archforge.backends.commands import CommandRunner
from archforge.models.targets import BuildTarget
from archforge.models.versioning import AppVersion

logger = logging.getLogger(__name__)


class BuildError(RuntimeError):
    """Raised when compilation or staging fails for a target."""


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class CrossEnvironment(Protocol):
    """Prepares the isolated cross-compilation environment for a target."""

    def prepare(self, target: BuildTarget) -> None:
        ...


@runtime_checkable
class Compiler(Protocol):
    """Compiles the deliverables for a target triple.

    Returns the paths of the compiled binaries.
    """

    def compile(self, target: BuildTarget, app_version: AppVersion) -> list[Path]:
        ...


@runtime_checkable
class BinaryStager(Protocol):
    """Places compiled binaries into an image-build context.

    Returns the context directory to build the platform image from.
    """

    def stage(self, target: BuildTarget, binaries: list[Path]) -> Path:
        ...


# ---------------------------------------------------------------------------
# Default implementations
# ---------------------------------------------------------------------------


class CrossImageEnvironment:
    """Builds the per-target cross image from ``{cross_dir}/Dockerfile.{triple}``.

    The image is loaded locally as ``{cross_image}:latest``.  The layer
    cache lives under ``{cache_root}/{target_id}`` so concurrent jobs never
    share a cache entry.
    """

    def __init__(
        self,
        cross_dir: Path,
        cache_root: Path,
        *,
        runner: CommandRunner | None = None,
    ) -> None:
        self.cross_dir = Path(cross_dir)
        self.cache_root = Path(cache_root)
        self._runner = runner or CommandRunner()

    def prepare(self, target: BuildTarget) -> None:
        dockerfile = self.cross_dir / f"Dockerfile.{target.compilation_triple}"
        if not dockerfile.is_file():
            raise BuildError(f"No cross Dockerfile for {target.compilation_triple}: {dockerfile}")

        cache = self.cache_root / target.target_id
        cache.mkdir(parents=True, exist_ok=True)
        argv = [
            "docker", "buildx", "build", str(self.cross_dir),
            "--file", str(dockerfile),
            "--tag", f"{target.cross_image}:latest",
            "--load",
            "--cache-to", f"type=local,dest={cache},mode=max",
        ]
        # A local cache source must exist before buildx will read it.
        if (cache / "index.json").is_file():
            argv += ["--cache-from", f"type=local,src={cache}"]

        logger.info("Preparing cross environment %s:latest", target.cross_image)
        self._runner.run(argv)


class CrossCompiler:
    """Compiles release binaries with ``cross`` for a pinned Rust toolchain.

    Parameters
    ----------
    source_dir:
        Cargo workspace root.
    binaries:
        Binary names expected under ``target/{triple}/release/``.
    toolchain:
        Rust toolchain passed as ``+{toolchain}``; empty uses the default.
    """

    def __init__(
        self,
        source_dir: Path,
        binaries: list[str],
        *,
        toolchain: str = "",
        runner: CommandRunner | None = None,
    ) -> None:
        if not binaries:
            raise ValueError("at least one binary must be built")
        self.source_dir = Path(source_dir)
        self.binaries = list(binaries)
        self.toolchain = toolchain
        self._runner = runner or CommandRunner()

    def release_dir(self, target: BuildTarget) -> Path:
        return self.source_dir / "target" / target.compilation_triple / "release"

    def compile(self, target: BuildTarget, app_version: AppVersion) -> list[Path]:
        argv = ["cross"]
        if self.toolchain:
            argv.append(f"+{self.toolchain}")
        argv += ["build", "--target", target.compilation_triple, "--release"]

        logger.info(
            "Compiling %s for %s (app_version=%s)",
            ", ".join(self.binaries),
            target.compilation_triple,
            app_version.value,
        )
        self._runner.run(argv, cwd=self.source_dir)

        outputs = [self.release_dir(target) / name for name in self.binaries]
        missing = [str(p) for p in outputs if not p.is_file()]
        if missing:
            raise BuildError(f"Compiler did not produce: {', '.join(missing)}")
        return outputs


class ContextStager:
    """Copies the image-build context per target and moves binaries into it.

    Each target gets its own copy at ``{work_root}/{target_id}/context``,
    so parallel jobs never overwrite each other's binaries.
    """

    def __init__(self, context_template: Path, work_root: Path) -> None:
        self.context_template = Path(context_template)
        self.work_root = Path(work_root)

    def stage(self, target: BuildTarget, binaries: list[Path]) -> Path:
        if not self.context_template.is_dir():
            raise BuildError(f"Image context not found: {self.context_template}")

        context = self.work_root / target.target_id / "context"
        if context.exists():
            shutil.rmtree(context)
        shutil.copytree(self.context_template, context)

        for binary in binaries:
            if not binary.is_file():
                raise BuildError(f"Binary to stage is missing: {binary}")
            shutil.move(str(binary), str(context / binary.name))

        logger.debug("Staged %d binaries into %s", len(binaries), context)
        return context
