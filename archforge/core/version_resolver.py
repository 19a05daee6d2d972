"""Version Resolver — derives the run's AppVersion exactly once.

A push to the default branch publishes ``latest``.  Any other trigger
publishes whatever ``git describe --tags --always`` reports: the nearest
reachable tag, or the abbreviated commit when the tree has no tags.  If
the lookup fails entirely the configured fallback identifier is used, so
version resolution never fails a run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from archforge.backends.commands import CommandError, CommandRunner
from archforge.models.versioning import AppVersion, TriggerEvent, VersionSource

logger = logging.getLogger(__name__)

LATEST = "latest"


class VersionResolutionError(RuntimeError):
    """Raised by ``describe()`` when the source tree yields no version."""


class VersionResolver:
    """Resolves an ``AppVersion`` from the trigger event and source tree.

    Parameters
    ----------
    source_dir:
        Root of the checked-out source tree.
    fallback:
        Non-empty identifier used when the describe lookup fails.
    runner:
        Command runner used to invoke git.
    """

    def __init__(
        self,
        source_dir: Path = Path("."),
        *,
        fallback: str = "dev",
        runner: CommandRunner | None = None,
    ) -> None:
        if not fallback:
            raise ValueError("fallback version identifier must be non-empty")
        self.source_dir = Path(source_dir)
        self.fallback = fallback
        self._runner = runner or CommandRunner()

    def resolve(self, event: TriggerEvent | str) -> AppVersion:
        """Return the AppVersion for a run triggered by *event*."""
        event = TriggerEvent(event)
        if event == TriggerEvent.PUSH:
            version = AppVersion(value=LATEST, source=VersionSource.PUSH, event=event)
        else:
            try:
                version = AppVersion(
                    value=self.describe(), source=VersionSource.DESCRIBE, event=event
                )
            except VersionResolutionError as exc:
                logger.warning(
                    "Version lookup failed (%s); using fallback %r", exc, self.fallback
                )
                version = AppVersion(
                    value=self.fallback, source=VersionSource.FALLBACK, event=event
                )

        logger.info(
            "Resolved app version %s (source=%s, event=%s)",
            version.value,
            version.source.value,
            event.value,
        )
        return version

    def describe(self) -> str:
        """Nearest reachable tag, or the abbreviated commit if there are none."""
        try:
            result = self._runner.run(
                ["git", "describe", "--tags", "--always"], cwd=self.source_dir
            )
        except CommandError as exc:
            raise VersionResolutionError(str(exc)) from exc

        described = result.stdout.strip()
        if not described:
            raise VersionResolutionError("git describe returned no output")
        return described
