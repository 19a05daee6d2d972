"""Digest Collector — run-scoped, append-only collection of digest markers.

Storage layout: {root}/{run_id}/{digest_hex}
Each marker is a zero-byte file named by the digest's hex payload, with
the algorithm prefix stripped.  There is no delete method: markers are
write-once, and a marker (not the registry push) is what makes a build
job "done".
"""

from __future__ import annotations

import logging
from pathlib import Path

from archforge.models.digests import DigestArtifact, ImageDigest, InvalidDigestError

logger = logging.getLogger(__name__)


class MarkerPersistenceError(RuntimeError):
    """Raised when a digest marker cannot be written or read back."""


class DigestCollisionError(RuntimeError):
    """Raised when a marker for the same digest already exists in the run.

    Two platforms producing the same digest means the build is not
    content-distinct; this is never silently merged.
    """


class EmptyCollectionError(RuntimeError):
    """Raised when a consumer expects markers and the collection is empty."""


class DigestCollector:
    """Records and lists the digest markers of one run.

    Parameters
    ----------
    root:
        Shared collection root, e.g. ``.archforge/digests``.
    run_id:
        Scopes the collection; markers from other runs are never seen.
    algorithm:
        Algorithm prefix re-attached when markers are read back.
    """

    def __init__(self, root: Path, run_id: str, *, algorithm: str = "sha256") -> None:
        self.run_id = run_id
        self.algorithm = algorithm
        self._dir = Path(root) / run_id

    @property
    def directory(self) -> Path:
        return self._dir

    def _marker_path(self, digest: ImageDigest) -> Path:
        return self._dir / digest.marker_name

    # ------------------------------------------------------------------
    # Record
    # ------------------------------------------------------------------

    def record(self, digest: ImageDigest, *, platform_tag: str = "") -> DigestArtifact:
        """Create the zero-byte marker for *digest*.

        Raises ``DigestCollisionError`` if the marker already exists and
        ``MarkerPersistenceError`` if it cannot be created or read back.
        """
        if digest.algorithm != self.algorithm:
            raise InvalidDigestError(
                f"Collection stores {self.algorithm} digests, got {digest}"
            )

        path = self._marker_path(digest)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            # Exclusive create: write-once per key.
            with path.open("xb"):
                pass
        except FileExistsError as exc:
            raise DigestCollisionError(
                f"Digest {digest} already recorded in run {self.run_id}"
            ) from exc
        except OSError as exc:
            raise MarkerPersistenceError(
                f"Could not persist marker for {digest} at {path}: {exc}"
            ) from exc

        if not path.is_file():
            raise MarkerPersistenceError(f"Marker for {digest} missing after write: {path}")

        logger.info(
            "Recorded digest %s for %s in run %s",
            digest,
            platform_tag or "<unknown platform>",
            self.run_id,
        )
        return DigestArtifact(
            run_id=self.run_id,
            digest=digest,
            marker_path=path,
            platform_tag=platform_tag,
        )

    # ------------------------------------------------------------------
    # Discover
    # ------------------------------------------------------------------

    def exists(self, digest: ImageDigest) -> bool:
        return self._marker_path(digest).is_file()

    def digests(self) -> list[ImageDigest]:
        """All recorded digests, sorted by hex.  Empty if nothing was recorded.

        Raises ``MarkerPersistenceError`` if the directory holds a file
        that is not a valid marker.
        """
        if not self._dir.is_dir():
            return []

        found: list[ImageDigest] = []
        for path in sorted(self._dir.iterdir()):
            if not path.is_file():
                continue
            try:
                found.append(ImageDigest(algorithm=self.algorithm, encoded=path.name))
            except ValueError as exc:
                raise MarkerPersistenceError(
                    f"Unexpected file in digest collection: {path}"
                ) from exc
        return found

    def count(self) -> int:
        return len(self.digests())

    def require_digests(self) -> list[ImageDigest]:
        """Like ``digests()`` but an empty collection is an error."""
        found = self.digests()
        if not found:
            raise EmptyCollectionError(
                f"No digest markers found for run {self.run_id} in {self._dir}"
            )
        return found
