"""Init command: Mark a backup device as a timevault target."""

import argparse
import logging

from .. import __util__
from ..__logger__ import create_logger
from ..config import ConfigError
from ..config.schema import GlobalOptions
from ..core.lock import AlreadyRunning, LockError, RunLock
from ..core.mounts import (
    MountController,
    MountRegistry,
    MountTable,
    install_signal_handlers,
)
from .common import (
    EXIT_ALREADY_RUNNING,
    EXIT_ERROR,
    EXIT_OK,
    get_log_level,
    load_cli_config,
)

logger = logging.getLogger(__name__)


def execute_init(args: argparse.Namespace) -> int:
    """Execute the init command.

    The configuration is optional here; when present its mount prefix and
    lock file apply.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    log_level = get_log_level(args)
    create_logger(level=log_level)

    try:
        config = load_cli_config(args, required=False)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_ERROR

    mount_prefix = config.mount_prefix if config else None
    options = config.options if config else GlobalOptions()

    mode = __util__.RunMode(
        dry_run=getattr(args, "dry_run", False),
        verbose=getattr(args, "verbose", False),
    )

    lock = None
    if not mode.dry_run:
        lock = RunLock(options.lock_file)
        try:
            lock.acquire()
        except AlreadyRunning as e:
            logger.error("%s", e)
            return EXIT_ALREADY_RUNNING
        except LockError as e:
            logger.error("%s", e)
            return EXIT_ERROR

    runner = __util__.CommandRunner(mode, nice=options.nice)
    registry = MountRegistry()
    controller = MountController(MountTable(), runner, registry, mode)
    install_signal_handlers(registry, runner)

    try:
        marker = controller.initialize(
            args.mount, mount_prefix, force=getattr(args, "force", False)
        )
    except __util__.TimevaultError as e:
        logger.error("init failed: %s", e)
        return EXIT_ERROR
    finally:
        registry.drain(lambda mount: runner.run(["umount", mount]))
        if lock is not None:
            lock.release()

    if mode.dry_run:
        logger.info("dry-run: would initialize timevault at %s", marker.parent)
    else:
        logger.info("initialized timevault at %s", marker.parent)
    return EXIT_OK
