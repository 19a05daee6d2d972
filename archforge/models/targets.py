"""Build target models — the static (architecture, platform) matrix.

Every run fans out one build job per ``BuildTarget``.  The matrix is
enumerated once, at pipeline-definition time, and never mutated.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator


class MatrixError(ValueError):
    """Raised when a declared build matrix is empty or ambiguous."""


class BuildTarget(BaseModel):
    """One (OS, CPU architecture, compilation triple) combination.

    The ``cross_image`` names the isolated cross-compilation environment
    that is built for this target before compiling.
    """

    model_config = ConfigDict(frozen=True)

    operating_system: str = "ubuntu-latest"
    cpu_architecture: str  # "amd64", "arm64"
    compilation_triple: str  # "x86_64-unknown-linux-gnu"
    platform_tag: str  # "linux/amd64"
    cross_image: str  # "x86_64-linux-gnu"

    @property
    def target_id(self) -> str:
        """Filesystem- and ledger-safe identifier, e.g. ``linux-amd64``."""
        return self.platform_tag.replace("/", "-")


class BuildMatrix(BaseModel):
    """The declared set of build targets for a run.

    Validation guarantees that the compilation triple uniquely determines
    the platform tag and that no platform is declared twice, so the final
    manifest can never carry a duplicate architecture.
    """

    model_config = ConfigDict(frozen=True)

    targets: tuple[BuildTarget, ...]

    @model_validator(mode="after")
    def _check_unique(self) -> BuildMatrix:
        if not self.targets:
            raise MatrixError("A build matrix must declare at least one target.")

        platform_by_triple: dict[str, str] = {}
        seen_platforms: set[str] = set()
        for target in self.targets:
            known = platform_by_triple.get(target.compilation_triple)
            if known is not None and known != target.platform_tag:
                raise MatrixError(
                    f"Triple {target.compilation_triple!r} maps to both "
                    f"{known!r} and {target.platform_tag!r}."
                )
            if target.platform_tag in seen_platforms:
                raise MatrixError(
                    f"Platform {target.platform_tag!r} is declared more than once."
                )
            platform_by_triple[target.compilation_triple] = target.platform_tag
            seen_platforms.add(target.platform_tag)
        return self

    @property
    def declared_count(self) -> int:
        """Number of targets, i.e. the digest count a complete run must produce."""
        return len(self.targets)

    @property
    def platforms(self) -> list[str]:
        return [t.platform_tag for t in self.targets]

    def get(self, platform_tag: str) -> BuildTarget:
        """Return the target declared for *platform_tag*."""
        for target in self.targets:
            if target.platform_tag == platform_tag:
                return target
        raise KeyError(platform_tag)


# The matrix published by the upstream image workflow.
DEFAULT_BUILD_TARGETS: list[BuildTarget] = [
    BuildTarget(
        operating_system="ubuntu-latest",
        cpu_architecture="amd64",
        compilation_triple="x86_64-unknown-linux-gnu",
        platform_tag="linux/amd64",
        cross_image="x86_64-linux-gnu",
    ),
    BuildTarget(
        operating_system="ubuntu-latest",
        cpu_architecture="arm64",
        compilation_triple="aarch64-unknown-linux-gnu",
        platform_tag="linux/arm64",
        cross_image="aarch64-linux-gnu",
    ),
]
