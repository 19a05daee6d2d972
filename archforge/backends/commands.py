"""Subprocess runner shared by the external-tool backends.

All docker, buildx, cross and git invocations go through ``CommandRunner``
so that failures surface uniformly as ``CommandError`` and every command
is logged.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """Raised when an external command cannot be run or exits non-zero."""

    def __init__(self, argv: list[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed ({returncode}): {shlex.join(argv)}"
        tail = stderr.strip().splitlines()[-5:]
        if tail:
            message += "\n" + "\n".join(tail)
        super().__init__(message)


class CommandResult(BaseModel):
    """Captured outcome of one external command."""

    model_config = ConfigDict(frozen=True)

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandRunner:
    """Runs external commands with captured output.

    Parameters
    ----------
    cwd:
        Default working directory for commands.
    env:
        Extra environment variables; ``None`` inherits the process env.
    timeout:
        Per-command timeout in seconds.  ``None`` waits indefinitely.
    """

    def __init__(
        self,
        *,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.cwd = cwd
        self.env = env
        self.timeout = timeout

    def run(
        self,
        argv: list[str],
        *,
        cwd: Path | None = None,
        input_text: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run *argv* and return its result.

        Raises ``CommandError`` when the executable is missing, the command
        times out, or (with ``check=True``) it exits non-zero.
        """
        workdir = cwd or self.cwd
        logger.debug("Running %s (cwd=%s)", shlex.join(argv), workdir or ".")
        try:
            completed = subprocess.run(
                argv,
                cwd=str(workdir) if workdir else None,
                env=self.env,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CommandError(argv, 127, str(exc)) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(argv, -1, f"timed out after {exc.timeout}s") from exc

        result = CommandResult(
            argv=list(argv),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if check and result.returncode != 0:
            raise CommandError(argv, result.returncode, result.stderr)
        return result
