"""Merge Trigger — the boundary to the external Manifest Merger.

The trigger fires exactly once per run, after the completion barrier.
Before handing over it checks that the collection holds exactly one
digest per declared target; a short (or surplus) collection fails the
run and nothing is published under the human-facing tag.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from archforge.backends.buildx import MergeError
from archforge.core.digest_collector import DigestCollector
from archforge.models.digests import ImageDigest
from archforge.models.manifest import MultiArchManifest
from archforge.models.versioning import AppVersion

logger = logging.getLogger(__name__)


class IncompleteDigestSetError(RuntimeError):
    """Raised when the collected digests do not cover every declared target."""


class MergeAlreadyTriggeredError(RuntimeError):
    """Raised when a second merge is attempted for the same run."""


@runtime_checkable
class ManifestMerger(Protocol):
    """Combines a run's digests into one manifest list tagged with the AppVersion.

    Implementations discover the digests from *collector*.  They must
    either publish a manifest referencing every digest or raise; a
    partial manifest is never published.
    """

    def merge(
        self, app_version: AppVersion, collector: DigestCollector
    ) -> MultiArchManifest:
        ...


class MergeTrigger:
    """Checks digest-set completeness and invokes the merger once.

    Parameters
    ----------
    merger:
        The Manifest Merger backend.
    declared_targets:
        Number of targets in the build matrix.
    """

    def __init__(self, merger: ManifestMerger, declared_targets: int) -> None:
        if declared_targets < 1:
            raise ValueError("declared_targets must be at least 1")
        self._merger = merger
        self.declared_targets = declared_targets
        self._fired = False
        self._lock = threading.Lock()

    @property
    def fired(self) -> bool:
        return self._fired

    def verify_complete(
        self,
        collector: DigestCollector,
        expected_digests: Iterable[ImageDigest] | None = None,
    ) -> list[ImageDigest]:
        """Return the collected digests if the set is complete.

        The count must equal ``declared_targets``.  When *expected_digests*
        (the digests reported by succeeded jobs) is given, the collected
        set must match it exactly as well.
        """
        found = collector.digests()
        if len(found) != self.declared_targets:
            raise IncompleteDigestSetError(
                f"Run {collector.run_id} declared {self.declared_targets} targets "
                f"but {len(found)} digest markers were collected; refusing to merge."
            )

        if expected_digests is not None:
            expected = set(expected_digests)
            if expected != set(found):
                unexpected = sorted(str(d) for d in set(found) - expected)
                missing = sorted(str(d) for d in expected - set(found))
                raise IncompleteDigestSetError(
                    f"Collected digests for run {collector.run_id} do not match the "
                    f"build jobs (missing={missing}, unexpected={unexpected})."
                )
        return found

    def fire(
        self,
        app_version: AppVersion,
        collector: DigestCollector,
        *,
        expected_digests: Iterable[ImageDigest] | None = None,
    ) -> MultiArchManifest:
        """Verify completeness and hand the run over to the merger."""
        with self._lock:
            if self._fired:
                raise MergeAlreadyTriggeredError(
                    f"Merge already triggered for run {collector.run_id}"
                )
            self._fired = True

        digests = self.verify_complete(collector, expected_digests)
        logger.info(
            "Merging %d digests for run %s as %s",
            len(digests),
            collector.run_id,
            app_version.value,
        )
        manifest = self._merger.merge(app_version, collector)

        if manifest.tag != app_version.value:
            raise MergeError(
                f"Merger published tag {manifest.tag!r}, expected {app_version.value!r}"
            )
        if set(manifest.digests) != set(digests):
            raise MergeError(
                f"Merger manifest for {manifest.reference} does not reference "
                f"exactly the {len(digests)} collected digests"
            )
        logger.info("Published %s", manifest.reference)
        return manifest
