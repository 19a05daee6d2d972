"""External tool backends.

Every step that reaches outside the process (git, cross, docker buildx,
the registry) sits behind a Protocol so the coordinator can be driven by
the subprocess-backed defaults here or by any compatible implementation.
"""

from archforge.backends.buildx import (
    BuildxImageBuilder,
    ImageBuilder,
    ImagetoolsManifestMerger,
    MergeError,
    RegistryLogin,
    RegistryPushError,
)
from archforge.backends.commands import CommandError, CommandResult, CommandRunner
from archforge.backends.toolchain import (
    BinaryStager,
    BuildError,
    Compiler,
    ContextStager,
    CrossCompiler,
    CrossEnvironment,
    CrossImageEnvironment,
)

__all__ = [
    "BinaryStager",
    "BuildError",
    "BuildxImageBuilder",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "Compiler",
    "ContextStager",
    "CrossCompiler",
    "CrossEnvironment",
    "CrossImageEnvironment",
    "ImageBuilder",
    "ImagetoolsManifestMerger",
    "MergeError",
    "RegistryLogin",
    "RegistryPushError",
]
