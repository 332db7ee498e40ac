"""TOML/YAML configuration loading and validation.

Handles config file discovery, parsing, and validation with helpful error messages.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

import yaml

from ..__util__ import (
    TimevaultError,
    has_parent_segment,
    is_safe_name,
    path_starts_with,
    strip_trailing_slashes,
)
from .schema import Config, GlobalOptions, Job, RunPolicy


class ConfigError(TimevaultError):
    """Configuration loading or validation error."""

    pass


# Config file search paths in priority order
CONFIG_PATHS = [
    Path.home() / ".config" / "timevault" / "config.toml",
    Path("/etc/timevault.toml"),
    Path("/etc/timevault.yaml"),
]

CONFIG_ENV = "TIMEVAULT_CONFIG"


def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    explicit_path = explicit_path or os.environ.get(CONFIG_ENV)
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def _string_list(value: Any, what: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{what} must be a list of strings")
    return tuple(value)


def _string(
    data: dict[str, Any], key: str, what: str, default: str | None = ""
) -> str | None:
    """Read a string value; ``None`` is accepted only when it is the default."""
    value = data.get(key, default)
    if value is None and default is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{what} must be a string")
    return value


def _parse_options(data: dict[str, Any]) -> GlobalOptions:
    """Parse global options from dict."""
    if not isinstance(data, dict):
        raise ConfigError("options must be a table")

    attempts = data.get("sync_attempts", 3)
    if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
        raise ConfigError("options.sync_attempts must be a positive integer")

    nice = data.get("nice", True)
    if not isinstance(nice, bool):
        raise ConfigError("options.nice must be true or false")

    return GlobalOptions(
        rsync_args=_string_list(data.get("rsync_args"), "options.rsync_args"),
        lock_file=_string(
            data, "lock_file", "options.lock_file", "/var/run/timevault.pid"
        ),
        excludes_dir=_string(data, "excludes_dir", "options.excludes_dir", None),
        sync_attempts=attempts,
        nice=nice,
        log_file=_string(data, "log_file", "options.log_file", None),
    )


def _validate_job_paths(job: Job, mount_prefix: str | None) -> None:
    """Check the static path invariants of a job."""
    if not job.source.strip():
        raise ConfigError(f"job {job.name}: source path is empty")
    if not job.dest:
        raise ConfigError(f"job {job.name}: destination path is empty")
    if not job.mount:
        raise ConfigError(f"job {job.name}: mount is required for all jobs")
    if not job.dest.startswith("/"):
        raise ConfigError(f"job {job.name}: destination path must be absolute")
    if not job.mount.startswith("/"):
        raise ConfigError(f"job {job.name}: mount path must be absolute")
    if has_parent_segment(job.dest):
        raise ConfigError(f"job {job.name}: destination path must not contain ..")
    if has_parent_segment(job.mount):
        raise ConfigError(f"job {job.name}: mount path must not contain ..")
    if mount_prefix and not path_starts_with(job.mount, mount_prefix):
        raise ConfigError(
            f"job {job.name}: mount {job.mount} does not start with "
            f"required prefix {mount_prefix}"
        )

    dest = strip_trailing_slashes(job.dest)
    mount = strip_trailing_slashes(job.mount)
    if dest == mount:
        raise ConfigError(
            f"job {job.name}: destination must be a subdirectory of mount"
        )
    if not path_starts_with(dest, mount):
        raise ConfigError(
            f"job {job.name}: destination {job.dest} is not under mount {job.mount}"
        )


def _parse_job(
    data: dict[str, Any], global_excludes: tuple[str, ...], mount_prefix: str | None
) -> Job:
    """Parse job configuration from dict."""
    if not isinstance(data, dict):
        raise ConfigError("each job must be a table")

    name = data.get("name") or ""
    if not isinstance(name, str) or not name.strip():
        raise ConfigError("job name is required")
    if not is_safe_name(name):
        raise ConfigError(
            f"job {name} name must use only letters, digits, '.', '-', '_'"
        )

    try:
        run_policy = RunPolicy.parse(data.get("run"))
    except ValueError as e:
        raise ConfigError(f"job {name}: {e}")

    copies = data.get("copies", 0)
    if isinstance(copies, bool) or not isinstance(copies, int) or copies < 0:
        raise ConfigError(f"job {name}: copies must be a non-negative integer")

    depends_on: list[str] = []
    for dep in _string_list(data.get("depends_on"), f"job {name}: depends_on"):
        if dep not in depends_on:
            depends_on.append(dep)

    job = Job(
        name=name,
        source=_string(data, "source", f"job {name}: source"),
        dest=_string(data, "dest", f"job {name}: dest"),
        mount=_string(data, "mount", f"job {name}: mount"),
        copies=copies,
        run_policy=run_policy,
        excludes=global_excludes
        + _string_list(data.get("excludes"), f"job {name}: excludes"),
        depends_on=tuple(depends_on),
    )
    _validate_job_paths(job, mount_prefix)
    return job


def parse_config(data: dict[str, Any]) -> Config:
    """Build a Config from already decoded TOML/YAML data.

    Raises:
        ConfigError: If a job is invalid, names collide, or the job graph
            references unknown jobs or contains a cycle
    """
    if not isinstance(data, dict):
        raise ConfigError("configuration root must be a table")

    mount_prefix = data.get("mount_prefix") or None
    if mount_prefix is not None and not str(mount_prefix).startswith("/"):
        raise ConfigError("mount_prefix must be absolute")

    global_excludes = _string_list(data.get("excludes"), "excludes")
    options = _parse_options(data.get("options", {}))

    jobs_data = data.get("jobs")
    if not isinstance(jobs_data, list):
        raise ConfigError("missing jobs")

    jobs = []
    names = set()
    for job_data in jobs_data:
        job = _parse_job(job_data, global_excludes, mount_prefix)
        if job.name in names:
            raise ConfigError(f"duplicate job name {job.name}")
        names.add(job.name)
        jobs.append(job)

    config = Config(
        jobs=tuple(jobs),
        excludes=global_excludes,
        mount_prefix=mount_prefix,
        options=options,
    )

    from ..core.graph import GraphError, validate_graph

    try:
        validate_graph(config)
    except GraphError as e:
        raise ConfigError(str(e)) from e

    return config


def _validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of warnings."""
    warnings = []

    if not config.jobs:
        warnings.append("No jobs configured")

    for job in config.jobs:
        if job.copies == 0:
            warnings.append(
                f"Job '{job.name}' keeps 0 copies; every older snapshot is pruned"
            )
        if job.run_policy is RunPolicy.OFF:
            dependants = [j.name for j in config.jobs if job.name in j.depends_on]
            if dependants:
                warnings.append(
                    f"Job '{job.name}' is off but required by: {', '.join(dependants)}"
                )

    # Several jobs writing into the same directory rotate each other's snapshots
    dests = [strip_trailing_slashes(j.dest) for j in config.jobs]
    if len(dests) != len(set(dests)):
        warnings.append("Duplicate destination paths detected")

    return warnings


def _read_data(path: Path) -> dict[str, Any]:
    if path.suffix in (".yaml", ".yml"):
        try:
            with open(path, encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read config file: {e}")

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load and validate configuration from a TOML or YAML file.

    The format is chosen by suffix: ``.yaml``/``.yml`` files are read as
    YAML, everything else as TOML.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)
    config = parse_config(_read_data(path))
    warnings = _validate_config(config)
    return config, warnings


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# timevault configuration
# See documentation for full options

# Every job mount must lie under this prefix
mount_prefix = "/mnt"

# Patterns excluded from every job (rsync --exclude-from syntax)
excludes = [
    "lost+found",
    ".cache/",
]

[options]
# lock_file = "/var/run/timevault.pid"
# excludes_dir = "/root/tmp"
# log_file = "/var/log/timevault.log"
sync_attempts = 3
nice = true
rsync_args = []

# System backup, runs every night
[[jobs]]
name = "system"
source = "/"
dest = "/mnt/backup/system"
mount = "/mnt/backup"
copies = 7
run = "auto"
excludes = ["/proc/", "/sys/", "/dev/", "/run/", "/tmp/", "/mnt/"]

# Home directories, after the system backup
[[jobs]]
name = "home"
source = "/home/"
dest = "/mnt/backup/home"
mount = "/mnt/backup"
copies = 14
depends_on = ["system"]

# Media archive, only when asked for with --job media
# [[jobs]]
# name = "media"
# source = "/srv/media/"
# dest = "/mnt/archive/media"
# mount = "/mnt/archive"
# copies = 2
# run = "demand"
"""
