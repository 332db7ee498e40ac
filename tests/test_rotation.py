"""Tests for retention rotation."""

import pytest

from helpers import make_job
from timevault import CURRENT_NAME, MARKER_NAME
from timevault.__util__ import RunMode
from timevault.core.rotation import list_snapshots, rotate


@pytest.fixture
def dest(tmp_path):
    """Destination with three dated snapshots and current -> newest."""
    dest = tmp_path / "home"
    dest.mkdir()
    for day in ("20240101", "20240102", "20240103"):
        (dest / day).mkdir()
        (dest / day / "file.txt").write_text(day)
    (dest / CURRENT_NAME).symlink_to("20240103")
    return dest


class TestListSnapshots:
    """Tests for list_snapshots function."""

    def test_oldest_first_without_reserved(self, dest):
        (dest / MARKER_NAME).touch()
        assert list_snapshots(dest) == ["20240101", "20240102", "20240103"]


class TestRotate:
    """Tests for rotate function."""

    def test_keeps_newest_copies(self, dest):
        (dest / MARKER_NAME).touch()
        job = make_job("home", copies=1)

        selected = rotate(job, dest)

        assert [p.name for p in selected] == ["20240101", "20240102"]
        assert sorted(p.name for p in dest.iterdir()) == [
            MARKER_NAME,
            "20240103",
            CURRENT_NAME,
        ]
        assert (dest / CURRENT_NAME).resolve() == (dest / "20240103").resolve()

    def test_nothing_to_expire(self, dest):
        job = make_job("home", copies=3)
        assert rotate(job, dest) == []
        assert len(list_snapshots(dest)) == 3

    def test_zero_copies_expires_all(self, dest):
        job = make_job("home", copies=0)
        rotate(job, dest)
        assert list_snapshots(dest) == []
        assert (dest / CURRENT_NAME).is_symlink()

    def test_missing_destination(self, tmp_path):
        job = make_job("home", copies=1)
        assert rotate(job, tmp_path / "absent") == []

    def test_dry_run_deletes_nothing(self, dest):
        job = make_job("home", copies=1)

        selected = rotate(job, dest, RunMode(dry_run=True))

        assert len(selected) == 2
        assert len(list_snapshots(dest)) == 3

    def test_safe_mode_deletes_nothing(self, dest):
        job = make_job("home", copies=1)

        rotate(job, dest, RunMode(safe_mode=True))

        assert len(list_snapshots(dest)) == 3

    def test_symlink_not_followed(self, dest, tmp_path):
        """Test that an old entry that is a symlink is skipped, not its target."""
        target = tmp_path / "precious"
        target.mkdir()
        (target / "keep.txt").write_text("keep")
        (dest / "20231231").symlink_to(target)
        job = make_job("home", copies=1)

        selected = rotate(job, dest)

        assert "20231231" not in [p.name for p in selected]
        assert (dest / "20231231").is_symlink()
        assert (target / "keep.txt").exists()

    def test_plain_file_skipped(self, dest):
        (dest / "20231231").write_text("not a snapshot")
        job = make_job("home", copies=1)

        rotate(job, dest)

        assert (dest / "20231231").is_file()
        assert list_snapshots(dest) == ["20231231", "20240103"]
