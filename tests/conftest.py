"""Pytest configuration and shared fixtures."""

import pytest

from helpers import FakeRunner, make_job
from timevault import MARKER_NAME
from timevault.core.mounts import MountController, MountRegistry, MountTable


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_toml():
    """Return a sample valid TOML configuration string."""
    return """
mount_prefix = "/mnt"
excludes = ["lost+found", ".cache/"]

[options]
rsync_args = ["--numeric-ids"]
lock_file = "/run/timevault-test.pid"
sync_attempts = 2
nice = false

[[jobs]]
name = "base"
source = "/"
dest = "/mnt/backup/base"
mount = "/mnt/backup"
copies = 7
excludes = ["/proc/", "/sys/"]

[[jobs]]
name = "web"
source = "/srv/www/"
dest = "/mnt/backup/web"
mount = "/mnt/backup"
copies = 3
run = "demand"
depends_on = ["base"]

[[jobs]]
name = "media"
source = "/srv/media/"
dest = "/mnt/archive/media"
mount = "/mnt/archive"
copies = 1
run = "off"
"""


@pytest.fixture
def sample_config_yaml():
    """Return the sample configuration as YAML."""
    return """
mount_prefix: /mnt
excludes:
  - lost+found
jobs:
  - name: base
    source: /
    dest: /mnt/backup/base
    mount: /mnt/backup
    copies: 7
  - name: web
    source: /srv/www/
    dest: /mnt/backup/web
    mount: /mnt/backup
    copies: 3
    run: demand
    depends_on: [base]
"""


@pytest.fixture
def minimal_config_toml():
    """Return a minimal valid TOML configuration string."""
    return """
[[jobs]]
name = "home"
source = "/home/"
dest = "/mnt/backup/home"
mount = "/mnt/backup"
"""


@pytest.fixture
def config_file(tmp_config_dir, sample_config_toml):
    """Create a temporary config file with sample content."""
    config_path = tmp_config_dir / "config.toml"
    config_path.write_text(sample_config_toml)
    return config_path


@pytest.fixture
def minimal_config_file(tmp_config_dir, minimal_config_toml):
    """Create a temporary config file with minimal content."""
    config_path = tmp_config_dir / "minimal.toml"
    config_path.write_text(minimal_config_toml)
    return config_path


@pytest.fixture
def device(tmp_path):
    """A fake backup device: a mount point listed in a fake fstab.

    Returns a dict with the mount point, the fstab and /proc/mounts paths.
    """
    mount = tmp_path / "mnt" / "backup"
    mount.mkdir(parents=True)
    fstab = tmp_path / "fstab"
    fstab.write_text(
        "# static table\n"
        "UUID=1234 / ext4 defaults 0 1\n"
        f"LABEL=backup {mount} ext4 noauto 0 2\n"
    )
    proc_mounts = tmp_path / "proc_mounts"
    proc_mounts.write_text("/dev/sda1 / ext4 rw,relatime 0 0\n")
    return {"mount": mount, "fstab": fstab, "proc_mounts": proc_mounts}


@pytest.fixture
def initialized_device(device):
    """A device carrying the marker and a job destination directory."""
    (device["mount"] / MARKER_NAME).touch()
    (device["mount"] / "home").mkdir()
    return device


@pytest.fixture
def table(device):
    return MountTable(str(device["proc_mounts"]), str(device["fstab"]))


@pytest.fixture
def runner(device):
    return FakeRunner(device["proc_mounts"])


@pytest.fixture
def controller(table, runner):
    return MountController(table, runner, MountRegistry())


@pytest.fixture
def home_job(device):
    mount = str(device["mount"])
    return make_job("home", source="/home/", mount=mount, dest=f"{mount}/home", copies=2)
