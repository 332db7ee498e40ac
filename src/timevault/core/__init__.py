"""Core backup engine for timevault.

Job graph resolution, mount lifecycle, retention rotation and mirroring.
"""

from .graph import (
    CyclicDependency,
    DependencyNotFound,
    GraphError,
    JobDisabled,
    JobNotFound,
    order,
    plan,
    resolve,
)
from .lock import AlreadyRunning, LockError, RunLock
from .mounts import (
    MountController,
    MountError,
    MountRegistry,
    MountTable,
    VerificationError,
    install_signal_handlers,
)
from .rotation import rotate
from .runner import JobResult, JobStatus, run_job, run_jobs
from .sync import sync

__all__ = [
    "resolve",
    "order",
    "plan",
    "GraphError",
    "JobNotFound",
    "JobDisabled",
    "DependencyNotFound",
    "CyclicDependency",
    "MountController",
    "MountRegistry",
    "MountTable",
    "MountError",
    "VerificationError",
    "install_signal_handlers",
    "rotate",
    "sync",
    "run_job",
    "run_jobs",
    "JobResult",
    "JobStatus",
    "RunLock",
    "LockError",
    "AlreadyRunning",
]
