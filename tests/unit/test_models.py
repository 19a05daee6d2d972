"""Tests for the Pydantic data models — validation, immutability, defaults."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from archforge.models.config import PipelineConfig
from archforge.models.digests import ImageDigest, InvalidDigestError
from archforge.models.jobs import TERMINAL_STATES, VALID_TRANSITIONS, JobResult, JobState
from archforge.models.manifest import RunReport
from archforge.models.targets import DEFAULT_BUILD_TARGETS, BuildMatrix, BuildTarget
from archforge.models.versioning import AppVersion, TriggerEvent, VersionSource

HEX = "a" * 64


class TestBuildTargets:
    def test_default_matrix_is_amd64_and_arm64(self):
        matrix = PipelineConfig().matrix
        assert matrix.platforms == ["linux/amd64", "linux/arm64"]
        assert matrix.declared_count == 2

    def test_default_triples(self):
        triples = {t.platform_tag: t.compilation_triple for t in DEFAULT_BUILD_TARGETS}
        assert triples["linux/amd64"] == "x86_64-unknown-linux-gnu"
        assert triples["linux/arm64"] == "aarch64-unknown-linux-gnu"

    def test_target_id_is_path_safe(self):
        assert DEFAULT_BUILD_TARGETS[1].target_id == "linux-arm64"

    def test_target_is_frozen(self):
        with pytest.raises(ValidationError):
            DEFAULT_BUILD_TARGETS[0].platform_tag = "linux/riscv64"

    def test_empty_matrix_rejected(self):
        with pytest.raises(ValidationError, match="at least one target"):
            BuildMatrix(targets=())

    def test_duplicate_platform_rejected(self):
        amd64 = DEFAULT_BUILD_TARGETS[0]
        clone = amd64.model_copy(update={"compilation_triple": "x86_64-unknown-linux-musl"})
        with pytest.raises(ValidationError, match="declared more than once"):
            BuildMatrix(targets=(amd64, clone))

    def test_triple_must_determine_platform(self):
        amd64 = DEFAULT_BUILD_TARGETS[0]
        other = BuildTarget(
            cpu_architecture="386",
            compilation_triple=amd64.compilation_triple,
            platform_tag="linux/386",
            cross_image="i686-linux-gnu",
        )
        with pytest.raises(ValidationError, match="maps to both"):
            BuildMatrix(targets=(amd64, other))

    def test_get_by_platform(self):
        matrix = BuildMatrix(targets=tuple(DEFAULT_BUILD_TARGETS))
        assert matrix.get("linux/arm64").cpu_architecture == "arm64"
        with pytest.raises(KeyError):
            matrix.get("linux/s390x")


class TestImageDigest:
    def test_parse_strips_prefix_for_marker(self):
        digest = ImageDigest.parse(f"sha256:{HEX}")
        assert digest.algorithm == "sha256"
        assert digest.marker_name == HEX
        assert str(digest) == f"sha256:{HEX}"

    def test_parse_tolerates_trailing_newline(self):
        assert ImageDigest.parse(f"sha256:{HEX}\n").encoded == HEX

    @pytest.mark.parametrize(
        "raw",
        [HEX, f"sha256:{HEX[:12]}", f"sha256:{HEX.upper()}", f"md5:{HEX}", "", "sha256:"],
    )
    def test_parse_rejects_malformed(self, raw):
        with pytest.raises(InvalidDigestError):
            ImageDigest.parse(raw)

    def test_digests_hash_by_value(self):
        assert {ImageDigest.parse(f"sha256:{HEX}"), ImageDigest(encoded=HEX)} == {
            ImageDigest(encoded=HEX)
        }


class TestJobStates:
    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            assert VALID_TRANSITIONS[state] == set()

    def test_pending_can_be_cancelled_before_running(self):
        assert JobState.CANCELLED in VALID_TRANSITIONS[JobState.PENDING]
        assert JobState.SUCCEEDED not in VALID_TRANSITIONS[JobState.PENDING]


class TestAppVersion:
    def test_str_is_value(self):
        v = AppVersion(value="latest", source=VersionSource.PUSH, event=TriggerEvent.PUSH)
        assert str(v) == "latest"

    def test_empty_value_rejected(self):
        with pytest.raises(ValidationError):
            AppVersion(value="", source=VersionSource.FALLBACK)


class TestRunReport:
    def _job(self, state: JobState) -> JobResult:
        return JobResult(target=DEFAULT_BUILD_TARGETS[0], state=state)

    def test_not_succeeded_without_manifest(self, app_version):
        report = RunReport(
            run_id="r",
            app_version=app_version,
            declared_targets=1,
            jobs=(self._job(JobState.SUCCEEDED),),
        )
        assert report.succeeded is False

    def test_failed_jobs_include_cancelled(self, app_version):
        report = RunReport(
            run_id="r",
            app_version=app_version,
            declared_targets=2,
            jobs=(self._job(JobState.FAILED), self._job(JobState.CANCELLED)),
        )
        assert len(report.failed_jobs) == 2
