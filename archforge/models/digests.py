"""Image digest and digest-marker models.

An ``ImageDigest`` is the content hash a registry returns for a pushed
platform image.  A ``DigestArtifact`` is the zero-byte marker file that
records one digest in the run's shared collection.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

_DIGEST_RE = re.compile(r"^(?P<algorithm>[a-z0-9]+):(?P<encoded>[a-f0-9]+)$")

# Expected hex length per algorithm.
_ENCODED_LENGTHS: dict[str, int] = {
    "sha256": 64,
    "sha512": 128,
}


class InvalidDigestError(ValueError):
    """Raised when a digest string is not ``<algorithm>:<hex>``."""


class ImageDigest(BaseModel):
    """Content hash of one platform image, e.g. ``sha256:<64 hex>``."""

    model_config = ConfigDict(frozen=True)

    algorithm: str = "sha256"
    encoded: str

    @model_validator(mode="after")
    def _check_encoded(self) -> ImageDigest:
        expected = _ENCODED_LENGTHS.get(self.algorithm)
        if expected is None:
            raise InvalidDigestError(f"Unsupported digest algorithm: {self.algorithm!r}")
        if len(self.encoded) != expected or not re.fullmatch(r"[a-f0-9]+", self.encoded):
            raise InvalidDigestError(
                f"{self.algorithm} digest must be {expected} lowercase hex "
                f"characters, got {self.encoded!r}"
            )
        return self

    @classmethod
    def parse(cls, value: str) -> ImageDigest:
        """Parse ``"sha256:<hex>"`` into an ImageDigest."""
        match = _DIGEST_RE.match(value.strip())
        if match is None:
            raise InvalidDigestError(f"Malformed image digest: {value!r}")
        try:
            return cls(algorithm=match["algorithm"], encoded=match["encoded"])
        except ValidationError as exc:
            raise InvalidDigestError(f"Invalid image digest {value!r}: {exc}") from exc

    @property
    def marker_name(self) -> str:
        """Marker file name: the hex payload without the algorithm prefix."""
        return self.encoded

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.encoded}"


class DigestArtifact(BaseModel):
    """A persisted, empty marker file named by the digest's hex payload.

    Write-once: created by exactly one build job, never mutated, read by
    the merge phase.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    digest: ImageDigest
    marker_path: Path
    platform_tag: str = ""  # known to the producing job only
    recorded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
