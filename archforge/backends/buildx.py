"""Registry-facing backends: platform image push, login, manifest merge.

``BuildxImageBuilder`` pushes each platform image *by digest*: the image
is uploaded without the human-facing tag and only its content digest is
returned.  The tag is attached exactly once, by the manifest merger, after
every platform digest is known.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from archforge.backends.commands import CommandError, CommandRunner
from archforge.models.digests import ImageDigest, InvalidDigestError
from archforge.models.manifest import MultiArchManifest
from archforge.models.targets import BuildTarget
from archforge.models.versioning import AppVersion

if TYPE_CHECKING:
    from archforge.core.digest_collector import DigestCollector

logger = logging.getLogger(__name__)

# Key written by `docker buildx build --metadata-file`.
_METADATA_DIGEST_KEY = "containerimage.digest"


class RegistryPushError(RuntimeError):
    """Raised when an image push fails or returns no usable digest."""


class MergeError(RuntimeError):
    """Raised when the manifest list cannot be created or verified."""


@runtime_checkable
class ImageBuilder(Protocol):
    """Builds a platform image from a context and pushes it by digest."""

    def build_and_push(self, target: BuildTarget, context_dir: Path) -> ImageDigest:
        ...


class BuildxImageBuilder:
    """Builds and pushes one platform image with ``docker buildx``.

    Parameters
    ----------
    image_id:
        Repository the digest-only image is pushed to.
    """

    def __init__(self, image_id: str, *, runner: CommandRunner | None = None) -> None:
        self.image_id = image_id
        self._runner = runner or CommandRunner()

    def output_spec(self) -> str:
        """The buildx ``--output`` value: push by digest, canonical name, no tag."""
        return (
            f"type=image,name={self.image_id},"
            "push-by-digest=true,name-canonical=true,push=true"
        )

    def build_and_push(self, target: BuildTarget, context_dir: Path) -> ImageDigest:
        with tempfile.TemporaryDirectory(prefix=f"archforge-{target.target_id}-") as tmp:
            metadata_file = Path(tmp) / "metadata.json"
            argv = [
                "docker", "buildx", "build", str(context_dir),
                "--platform", target.platform_tag,
                "--output", self.output_spec(),
                "--metadata-file", str(metadata_file),
            ]
            logger.info("Pushing %s image for %s by digest", self.image_id, target.platform_tag)
            try:
                self._runner.run(argv)
            except CommandError as exc:
                raise RegistryPushError(
                    f"Image build/push failed for {target.platform_tag}: {exc}"
                ) from exc

            return self._read_digest(metadata_file, target)

    @staticmethod
    def _read_digest(metadata_file: Path, target: BuildTarget) -> ImageDigest:
        try:
            metadata = json.loads(metadata_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise RegistryPushError(
                f"No build metadata for {target.platform_tag}: {exc}"
            ) from exc

        raw = metadata.get(_METADATA_DIGEST_KEY)
        if not raw:
            raise RegistryPushError(f"Push for {target.platform_tag} returned no digest")
        try:
            return ImageDigest.parse(raw)
        except InvalidDigestError as exc:
            raise RegistryPushError(str(exc)) from exc


class RegistryLogin:
    """Authenticates the local docker client against a registry."""

    def __init__(self, registry: str, *, runner: CommandRunner | None = None) -> None:
        self.registry = registry
        self._runner = runner or CommandRunner()

    def login(self, username: str, password: str) -> None:
        try:
            self._runner.run(
                ["docker", "login", self.registry, "--username", username, "--password-stdin"],
                input_text=password,
            )
        except CommandError as exc:
            raise RegistryPushError(f"Login to {self.registry} failed: {exc}") from exc
        logger.info("Logged in to %s as %s", self.registry, username)


class ImagetoolsManifestMerger:
    """Combines the collected platform digests into one tagged manifest list.

    Runs ``docker buildx imagetools create`` with every digest in the run's
    collection, then inspects the published tag.  Either every digest is
    in the published manifest or a ``MergeError`` is raised.
    """

    def __init__(self, image_id: str, *, runner: CommandRunner | None = None) -> None:
        self.image_id = image_id
        self._runner = runner or CommandRunner()

    def merge(
        self, app_version: AppVersion, collector: DigestCollector
    ) -> MultiArchManifest:
        digests = collector.require_digests()
        reference = f"{self.image_id}:{app_version.value}"
        sources = [f"{self.image_id}@{d}" for d in digests]

        logger.info("Creating manifest list %s from %d digests", reference, len(digests))
        try:
            self._runner.run(
                ["docker", "buildx", "imagetools", "create", "--tag", reference, *sources]
            )
            inspected = self._runner.run(
                ["docker", "buildx", "imagetools", "inspect", reference,
                 "--format", "{{json .Manifest}}"]
            )
        except CommandError as exc:
            raise MergeError(f"Manifest merge for {reference} failed: {exc}") from exc

        manifest_digest = self._verify(inspected.stdout, digests, reference)
        return MultiArchManifest(
            image=self.image_id,
            tag=app_version.value,
            digests=tuple(digests),
            manifest_digest=manifest_digest,
        )

    @staticmethod
    def _verify(
        inspect_json: str, expected: list[ImageDigest], reference: str
    ) -> ImageDigest | None:
        try:
            manifest = json.loads(inspect_json)
        except ValueError as exc:
            raise MergeError(f"Unreadable manifest for {reference}: {exc}") from exc

        entries = manifest.get("manifests") if isinstance(manifest, dict) else None
        if not isinstance(entries, list) or not all(isinstance(m, dict) for m in entries):
            raise MergeError(f"Manifest for {reference} is not a manifest list")

        listed = {m.get("digest") for m in entries}
        missing = [str(d) for d in expected if str(d) not in listed]
        if missing:
            raise MergeError(
                f"Published manifest {reference} is missing: {', '.join(missing)}"
            )
        raw = manifest.get("digest")
        if not raw:
            return None
        if not isinstance(raw, str):
            raise MergeError(f"Manifest digest for {reference} is not a string: {raw!r}")
        try:
            return ImageDigest.parse(raw)
        except InvalidDigestError as exc:
            raise MergeError(f"Manifest for {reference} has a bad digest: {exc}") from exc
