"""Drive scheduled jobs through their mount, rotate and sync lifecycle."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .. import __util__
from ..__util__ import CommandRunner, RunMode, TimevaultError
from ..config.schema import Config, Job
from .mounts import MountController
from .rotation import rotate
from .sync import RSYNC_SUCCESS, excludes_path, sync

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    """Outcome of a single job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"  # the mirror ran but did not succeed
    SKIPPED = "skipped"  # the device could not be used


@dataclass
class JobResult:
    """Result of running one job."""

    name: str
    status: JobStatus
    reason: str = ""
    exit_code: Optional[int] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.SUCCEEDED


def describe_job(job: Job) -> list[str]:
    """Human readable lines describing a job."""
    return [
        f"job: {job.name}",
        f"  run: {job.run_policy.value}",
        f"  source: {job.source}",
        f"  dest: {job.dest}",
        f"  mount: {job.mount}",
        f"  copies: {job.copies}",
        f"  depends_on: {', '.join(job.depends_on) or '<none>'}",
        f"  excludes: {', '.join(job.excludes) or '<none>'}",
    ]


def run_job(
    job: Job,
    config: Config,
    controller: MountController,
    runner: CommandRunner,
    mode: RunMode | None = None,
    backup_day: Optional[str] = None,
) -> JobResult:
    """Run one job inside a mount session.

    Device and destination problems skip the job; they are reported in the
    result and never raised.
    """
    mode = mode or runner.mode
    backup_day = backup_day or __util__.backup_day_for()
    start = time.monotonic()

    logger.info(__util__.log_heading(f"Job: {job.name}"))
    if mode.verbose:
        for line in describe_job(job):
            logger.info("%s", line)
        logger.info("  backup day: %s", backup_day)

    try:
        with controller.session(job, config.mount_prefix) as dest:
            rotate(job, dest, mode)
            rc = sync(
                job,
                dest,
                backup_day,
                runner,
                mode=mode,
                options=config.options,
                exclude_file=excludes_path(config.options),
            )
    except TimevaultError as e:
        logger.error("skip job %s: %s", job.name, e)
        return JobResult(
            job.name, JobStatus.SKIPPED, str(e), duration_seconds=time.monotonic() - start
        )
    except OSError as e:
        logger.error("skip job %s: %s", job.name, e)
        return JobResult(
            job.name, JobStatus.SKIPPED, str(e), duration_seconds=time.monotonic() - start
        )

    duration = time.monotonic() - start
    if rc in RSYNC_SUCCESS:
        logger.info("Job %s finished in %.1fs", job.name, duration)
        return JobResult(job.name, JobStatus.SUCCEEDED, exit_code=rc, duration_seconds=duration)
    return JobResult(
        job.name,
        JobStatus.FAILED,
        f"rsync exited with {rc}",
        exit_code=rc,
        duration_seconds=duration,
    )


def run_jobs(
    jobs: list[Job],
    config: Config,
    controller: MountController,
    runner: CommandRunner,
    mode: RunMode | None = None,
    backup_day: Optional[str] = None,
) -> list[JobResult]:
    """Run jobs one after another in the given order."""
    mode = mode or runner.mode
    backup_day = backup_day or __util__.backup_day_for()
    results = [
        run_job(job, config, controller, runner, mode, backup_day) for job in jobs
    ]
    if not mode.dry_run:
        runner.run(["sync"])
    return results
