"""Retention rotation of dated snapshots."""

import logging
import shutil
from pathlib import Path

from .. import CURRENT_NAME, MARKER_NAME
from ..__util__ import RunMode
from ..config.schema import Job

logger = logging.getLogger(__name__)

RESERVED_NAMES = frozenset({CURRENT_NAME, MARKER_NAME})


def list_snapshots(dest: Path) -> list[str]:
    """Names of the dated entries in ``dest``, oldest first."""
    return sorted(p.name for p in dest.iterdir() if p.name not in RESERVED_NAMES)


def rotate(job: Job, dest: Path | str, mode: RunMode | None = None) -> list[Path]:
    """Delete the oldest snapshots beyond ``job.copies``.

    Snapshot names are dates, so name order is age order. Only real
    directories are removed; symlinks and other files are left alone.
    Failures are logged and never abort the run.

    Returns:
        The entries selected for deletion (removed unless dry-run or safe mode)
    """
    mode = mode or RunMode()
    dest = Path(dest)
    if not dest.is_dir():
        logger.debug("No destination directory yet: %s", dest)
        return []

    try:
        backups = list_snapshots(dest)
    except OSError as e:
        logger.error("Cannot list %s: %s", dest, e)
        return []

    if len(backups) <= job.copies:
        logger.debug("Keeping all %d snapshot(s) of %s", len(backups), job.name)
        return []

    to_delete = len(backups) - job.copies
    logger.info("Keeping %d, expiring %d snapshot(s)", job.copies, to_delete)

    selected = []
    for name in backups[:to_delete]:
        target = dest / name
        if target.is_symlink():
            logger.warning("skip symlink delete: %s", target)
            continue
        if not target.is_dir():
            logger.warning("skip non-dir delete: %s", target)
            continue

        selected.append(target)
        if mode.dry_run:
            logger.info("dry-run: rm -rf %s", target)
        elif mode.safe_mode:
            logger.info("skip delete (safe-mode): %s", target)
        else:
            logger.info("delete: %s", target)
            try:
                shutil.rmtree(target)
            except OSError as e:
                logger.error("Failed to delete %s: %s", target, e)

    return selected
