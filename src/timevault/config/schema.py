"""Configuration schema definitions using dataclasses.

Defines the job graph model built from the TOML/YAML configuration.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class RunPolicy(Enum):
    """When a job is eligible to run."""

    AUTO = "auto"  # runs unattended
    DEMAND = "demand"  # runs only when selected explicitly
    OFF = "off"  # never runs, blocks its dependants

    @classmethod
    def parse(cls, value: Optional[str]) -> "RunPolicy":
        """Parse a policy name; a missing or empty value means auto."""
        text = (value or "").strip().lower()
        if not text:
            return cls.AUTO
        for policy in cls:
            if policy.value == text:
                return policy
        raise ValueError(f"invalid run policy {value}; expected auto, demand, or off")


@dataclass(frozen=True)
class Job:
    """One backup job.

    Attributes:
        name: Unique job name, used for dependency references
        source: Tree mirrored by rsync (rsync syntax, trailing slash matters)
        dest: Absolute directory holding the dated snapshots, under ``mount``
        mount: Absolute mount point of the backup device
        copies: Number of dated snapshots to retain
        run_policy: Eligibility for unattended runs
        excludes: Global excludes followed by the job's own patterns
        depends_on: Names of jobs that must run before this one
    """

    name: str
    source: str
    dest: str
    mount: str
    copies: int = 0
    run_policy: RunPolicy = RunPolicy.AUTO
    excludes: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()


@dataclass(frozen=True)
class GlobalOptions:
    """Global run options.

    Attributes:
        rsync_args: Extra arguments appended to every rsync invocation
        lock_file: PID file guarding against concurrent runs
        excludes_dir: Directory receiving the generated rsync exclude file
        sync_attempts: Maximum number of rsync attempts per job
        nice: Run rsync and cp under nice/ionice idle priority
        log_file: Path to log file (None for no file logging)
    """

    rsync_args: tuple[str, ...] = ()
    lock_file: str = "/var/run/timevault.pid"
    excludes_dir: Optional[str] = None
    sync_attempts: int = 3
    nice: bool = True
    log_file: Optional[str] = None


@dataclass(frozen=True)
class Config:
    """Root configuration object.

    Attributes:
        jobs: Jobs in configuration order
        excludes: Global exclude patterns, already prepended to every job
        mount_prefix: Path every job mount must lie under (None for no limit)
        options: Global run options
    """

    jobs: tuple[Job, ...] = ()
    excludes: tuple[str, ...] = ()
    mount_prefix: Optional[str] = None
    options: GlobalOptions = field(default_factory=GlobalOptions)

    def get_job(self, name: str) -> Optional[Job]:
        """Look up a job by name."""
        for job in self.jobs:
            if job.name == name:
                return job
        return None
