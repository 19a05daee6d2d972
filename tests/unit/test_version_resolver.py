"""Tests for the Version Resolver."""

from __future__ import annotations

import shutil
import subprocess

import pytest

from archforge.backends.commands import CommandRunner
from archforge.core.version_resolver import LATEST, VersionResolutionError, VersionResolver
from archforge.models.versioning import TriggerEvent, VersionSource


class TestResolve:
    def test_push_publishes_latest_without_git(self, tmp_dir, fake_runner_cls):
        runner = fake_runner_cls()
        resolver = VersionResolver(tmp_dir, runner=runner)
        version = resolver.resolve(TriggerEvent.PUSH)
        assert version.value == LATEST
        assert version.source == VersionSource.PUSH
        assert runner.calls == []

    def test_dispatch_uses_describe(self, tmp_dir, fake_runner_cls):
        runner = fake_runner_cls({("git", "describe"): "v1.2.3\n"})
        resolver = VersionResolver(tmp_dir, runner=runner)
        version = resolver.resolve("workflow_dispatch")
        assert version.value == "v1.2.3"
        assert version.source == VersionSource.DESCRIBE
        assert version.event == TriggerEvent.WORKFLOW_DISPATCH
        assert runner.calls == [["git", "describe", "--tags", "--always"]]

    def test_untagged_tree_yields_commit(self, tmp_dir, fake_runner_cls):
        runner = fake_runner_cls({("git", "describe"): "3f2c1ab"})
        version = VersionResolver(tmp_dir, runner=runner).resolve(
            TriggerEvent.WORKFLOW_DISPATCH
        )
        assert version.value == "3f2c1ab"

    def test_failed_lookup_falls_back(self, tmp_dir, fake_runner_cls, command_error):
        runner = fake_runner_cls(
            {("git", "describe"): command_error(["git", "describe"], 128, "not a git repository")}
        )
        version = VersionResolver(tmp_dir, fallback="dev", runner=runner).resolve(
            TriggerEvent.WORKFLOW_DISPATCH
        )
        assert version.value == "dev"
        assert version.source == VersionSource.FALLBACK

    def test_empty_output_falls_back(self, tmp_dir, fake_runner_cls):
        runner = fake_runner_cls({("git", "describe"): "  \n"})
        version = VersionResolver(tmp_dir, fallback="0.0.0-unknown", runner=runner).resolve(
            TriggerEvent.WORKFLOW_DISPATCH
        )
        assert version.value == "0.0.0-unknown"

    def test_unknown_event_rejected(self, tmp_dir, fake_runner_cls):
        with pytest.raises(ValueError):
            VersionResolver(tmp_dir, runner=fake_runner_cls()).resolve("schedule")

    def test_empty_fallback_rejected(self, tmp_dir):
        with pytest.raises(ValueError, match="non-empty"):
            VersionResolver(tmp_dir, fallback="")


class TestDescribe:
    def test_describe_raises_on_command_error(self, tmp_dir, fake_runner_cls, command_error):
        runner = fake_runner_cls({("git",): command_error(["git"], 127, "")})
        with pytest.raises(VersionResolutionError):
            VersionResolver(tmp_dir, runner=runner).describe()


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestAgainstRealRepository:
    def _git(self, cwd, *args):
        subprocess.run(
            ["git", "-c", "user.email=ci@example.com", "-c", "user.name=ci", *args],
            cwd=cwd,
            check=True,
            capture_output=True,
        )

    def test_tagged_commit(self, tmp_dir):
        self._git(tmp_dir, "init", "-q")
        self._git(tmp_dir, "commit", "-q", "--allow-empty", "-m", "initial")
        self._git(tmp_dir, "tag", "v1.2.3")

        version = VersionResolver(tmp_dir, runner=CommandRunner()).resolve(
            TriggerEvent.WORKFLOW_DISPATCH
        )
        assert version.value == "v1.2.3"
        assert version.source == VersionSource.DESCRIBE

    def test_not_a_repository(self, tmp_dir):
        version = VersionResolver(tmp_dir, runner=CommandRunner()).resolve(
            TriggerEvent.WORKFLOW_DISPATCH
        )
        assert version.source == VersionSource.FALLBACK
        assert version.value == "dev"
