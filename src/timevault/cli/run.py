"""Run command: Execute the configured backup jobs in dependency order."""

import argparse
import dataclasses
import logging
import time

from .. import __util__
from ..__logger__ import create_logger
from ..config import ConfigError
from ..core.graph import GraphError
from ..core.lock import AlreadyRunning, LockError, RunLock
from ..core.mounts import (
    MountController,
    MountRegistry,
    MountTable,
    install_signal_handlers,
)
from ..core.runner import JobStatus, describe_job, run_jobs
from .common import (
    EXIT_ALREADY_RUNNING,
    EXIT_ERROR,
    EXIT_JOB_FAILED,
    EXIT_OK,
    get_log_level,
    load_cli_config,
)
from .order_cmd import report_graph_error, resolve_plan

logger = logging.getLogger(__name__)


def execute_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, 1 if a job failed or was skipped,
        2 for configuration errors, 3 if another run holds the lock)
    """
    # Initialize logger
    log_level = get_log_level(args)
    create_logger(level=log_level)

    # Find and load config
    try:
        config = load_cli_config(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_ERROR

    if config.options.log_file:
        try:
            create_logger(level=log_level, log_file=config.options.log_file)
        except OSError as e:
            logger.error("Cannot open log file %s: %s", config.options.log_file, e)
            return EXIT_ERROR

    extra_rsync = tuple(getattr(args, "rsync", None) or ())
    if extra_rsync:
        options = dataclasses.replace(
            config.options, rsync_args=config.options.rsync_args + extra_rsync
        )
        config = dataclasses.replace(config, options=options)

    try:
        jobs = resolve_plan(config, getattr(args, "job", None))
    except GraphError as e:
        report_graph_error(e)
        return EXIT_ERROR

    if not jobs:
        logger.error("no jobs matched (no auto jobs enabled); aborting")
        return EXIT_ERROR

    if getattr(args, "print_order", False):
        for job in jobs:
            print("\n".join(describe_job(job)))
        return EXIT_OK

    mode = __util__.RunMode(
        dry_run=getattr(args, "dry_run", False),
        safe_mode=getattr(args, "safe", False),
        verbose=getattr(args, "verbose", False),
    )

    lock = None
    if not mode.dry_run:
        lock = RunLock(config.options.lock_file)
        try:
            lock.acquire()
        except AlreadyRunning as e:
            logger.error("%s", e)
            return EXIT_ALREADY_RUNNING
        except LockError as e:
            logger.error("%s", e)
            return EXIT_ERROR

    runner = __util__.CommandRunner(mode, nice=config.options.nice)
    registry = MountRegistry()
    controller = MountController(MountTable(), runner, registry, mode)
    install_signal_handlers(registry, runner)

    logger.info(__util__.log_heading(f"Started at {time.ctime()}"))
    if mode.dry_run:
        logger.info("Dry run: nothing will be copied or deleted")
    if mode.safe_mode:
        logger.info("Safe mode: nothing will be deleted")
    logger.info("Running %d job(s): %s", len(jobs), ", ".join(j.name for j in jobs))

    try:
        results = run_jobs(jobs, config, controller, runner, mode)
    finally:
        registry.drain(lambda mount: runner.run(["umount", mount]))
        if lock is not None:
            lock.release()

    # Summary
    logger.info(__util__.log_heading(f"Finished at {time.ctime()}"))

    succeeded = [r for r in results if r.status is JobStatus.SUCCEEDED]
    failed = [r for r in results if r.status is JobStatus.FAILED]
    skipped = [r for r in results if r.status is JobStatus.SKIPPED]

    for result in failed + skipped:
        logger.warning("Job %s %s: %s", result.name, result.status.value, result.reason)

    if failed or skipped:
        logger.warning(
            "Completed with errors: %d succeeded, %d failed, %d skipped",
            len(succeeded),
            len(failed),
            len(skipped),
        )
        return EXIT_JOB_FAILED

    logger.info("All %d job(s) completed successfully", len(succeeded))
    return EXIT_OK
