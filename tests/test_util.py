"""Tests for shared utilities."""

import subprocess
from datetime import datetime
from unittest import mock

import pytest

from timevault.__util__ import (
    NICE_PREFIX,
    CommandRunner,
    RunMode,
    backup_day_for,
    has_parent_segment,
    is_safe_name,
    log_heading,
    path_starts_with,
    strip_trailing_slashes,
)


class TestBackupDay:
    """Tests for backup_day_for function."""

    def test_is_yesterday(self):
        assert backup_day_for(datetime(2024, 3, 1, 2, 30)) == "20240229"

    def test_year_boundary(self):
        assert backup_day_for(datetime(2024, 1, 1)) == "20231231"


class TestPathHelpers:
    """Tests for path helper functions."""

    @pytest.mark.parametrize(
        "path,prefix,expected",
        [
            ("/mnt/backup", "/mnt", True),
            ("/mnt", "/mnt/", True),
            ("/mnt/backup", "/mnt/back", False),
            ("/anything", "/", True),
            ("/mnt/backup", "", False),
        ],
    )
    def test_path_starts_with(self, path, prefix, expected):
        assert path_starts_with(path, prefix) is expected

    def test_strip_trailing_slashes(self):
        assert strip_trailing_slashes("/mnt/backup//") == "/mnt/backup"
        assert strip_trailing_slashes("///") == "/"

    def test_has_parent_segment(self):
        assert has_parent_segment("/mnt/../etc")
        assert not has_parent_segment("/mnt/a..b")

    @pytest.mark.parametrize("name", ["home", "web-1", "a_b.c"])
    def test_safe_names(self, name):
        assert is_safe_name(name)

    @pytest.mark.parametrize("name", ["", ".", "..", "a b", "a/b", "café"])
    def test_unsafe_names(self, name):
        assert not is_safe_name(name)

    def test_log_heading(self):
        assert log_heading("Job: home") == "--[ Job: home ]--"


class TestCommandRunner:
    """Tests for CommandRunner."""

    def test_run_returns_exit_code(self):
        with mock.patch("timevault.__util__.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess(["mount"], 32)
            assert CommandRunner().run(["mount", "/mnt/backup"]) == 32
        run.assert_called_once_with(["mount", "/mnt/backup"], check=False)

    def test_missing_executable(self):
        with mock.patch(
            "timevault.__util__.subprocess.run", side_effect=FileNotFoundError()
        ):
            assert CommandRunner().run(["nope"]) == 127

    def test_killed_by_signal(self):
        with mock.patch("timevault.__util__.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess(["rsync"], -9)
            assert CommandRunner().run(["rsync"]) == 1

    def test_run_heavy_is_niced(self):
        with mock.patch("timevault.__util__.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 0)
            CommandRunner().run_heavy(["rsync", "-ar"])
        assert run.call_args.args[0] == NICE_PREFIX + ["rsync", "-ar"]

    def test_run_heavy_without_nice(self):
        with mock.patch("timevault.__util__.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 0)
            CommandRunner(nice=False).run_heavy(["rsync"])
        assert run.call_args.args[0] == ["rsync"]

    def test_dry_run_heavy_not_executed(self):
        runner = CommandRunner(RunMode(dry_run=True))
        with mock.patch("timevault.__util__.subprocess.run") as run:
            assert runner.run_heavy(["rsync", "-ar"]) == 0
        run.assert_not_called()

    def test_dry_run_still_runs_mount_commands(self):
        runner = CommandRunner(RunMode(dry_run=True))
        with mock.patch("timevault.__util__.subprocess.run") as run:
            run.return_value = subprocess.CompletedProcess([], 0)
            runner.run(["mount", "/mnt/backup"])
        run.assert_called_once()
