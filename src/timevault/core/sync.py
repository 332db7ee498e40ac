"""Mirror a job's source into today's dated snapshot.

A new snapshot starts as a hardlink copy of ``current`` so unchanged files
take no extra space, rsync then brings it up to date, and ``current`` is
repointed at it once the mirror succeeded.
"""

import logging
import os
from pathlib import Path

from .. import CURRENT_NAME
from ..__util__ import CommandRunner, RunMode
from ..config.schema import GlobalOptions, Job

logger = logging.getLogger(__name__)

# rsync exit status 24: some source files vanished during the transfer
RSYNC_SUCCESS = frozenset({0, 24})

EXCLUDES_FILE_NAME = "timevault.excludes"


def excludes_path(options: GlobalOptions) -> Path:
    """Where the rsync exclude file of a job is written."""
    if options.excludes_dir:
        return Path(options.excludes_dir) / EXCLUDES_FILE_NAME
    return Path(os.environ.get("HOME", "/tmp")) / "tmp" / EXCLUDES_FILE_NAME


def write_excludes_file(job: Job, path: Path, mode: RunMode) -> None:
    """Write the job's exclude patterns, one per line."""
    if mode.dry_run:
        logger.info("dry-run: would write excludes file %s", path)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{pattern}\n" for pattern in job.excludes))


def delete_symlinks(root: Path) -> int:
    """Remove every symbolic link below ``root`` without following any."""
    removed = 0
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        for name in dirnames + filenames:
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                os.unlink(path)
                removed += 1
    return removed


def seed_snapshot(
    current: Path, backup_dir: Path, runner: CommandRunner, mode: RunMode
) -> None:
    """Start ``backup_dir`` as a hardlink copy of ``current``."""
    if mode.dry_run:
        logger.info("dry-run: mkdir -p %s", backup_dir)
    else:
        backup_dir.mkdir(parents=True, exist_ok=True)

    rc = runner.run_heavy(["cp", "-ralf", f"{current}/.", str(backup_dir)])
    if rc != 0:
        logger.warning("Hardlink copy of %s exited with %d", current, rc)

    # Hardlinked symlinks would share their targets between snapshots
    if mode.dry_run:
        logger.info("dry-run: find %s -type l -delete", backup_dir)
    elif mode.safe_mode:
        logger.info("skip symlink cleanup (safe-mode): %s", backup_dir)
    else:
        removed = delete_symlinks(backup_dir)
        logger.debug("Removed %d symlink(s) from %s", removed, backup_dir)


def build_rsync_command(
    job: Job,
    backup_dir: Path,
    exclude_file: Path,
    mode: RunMode,
    extra_args: tuple[str, ...] | list[str] = (),
) -> list[str]:
    """Build the rsync invocation mirroring ``job.source`` into ``backup_dir``."""
    cmd = ["rsync", "-ar", "--stats", f"--exclude-from={exclude_file}"]
    if not mode.safe_mode:
        cmd += ["--delete-after", "--delete-excluded"]
    cmd += list(extra_args)
    cmd += [job.source, str(backup_dir)]
    return cmd


def publish_current(dest: Path, backup_day: str, mode: RunMode) -> None:
    """Point ``dest/current`` at the snapshot ``backup_day``.

    An existing directory named ``current`` is never replaced.
    """
    current = dest / CURRENT_NAME
    absent = not current.is_symlink() and not current.exists()

    if current.is_symlink() or current.is_file():
        if mode.dry_run:
            logger.info("dry-run: rm -f %s", current)
            absent = True
        elif mode.safe_mode:
            logger.info("skip remove (safe-mode): %s", current)
        else:
            current.unlink()
            absent = True
    elif current.is_dir():
        logger.warning("skip updating current (directory exists): %s", current)

    if absent:
        if mode.dry_run:
            logger.info("dry-run: ln -s %s %s", backup_day, current)
        else:
            current.symlink_to(backup_day)
            logger.info("current -> %s", backup_day)


def sync(
    job: Job,
    dest: Path | str,
    backup_day: str,
    runner: CommandRunner,
    mode: RunMode | None = None,
    options: GlobalOptions | None = None,
    exclude_file: Path | None = None,
) -> int:
    """Mirror ``job.source`` into ``dest/backup_day`` and republish current.

    rsync is tried up to ``options.sync_attempts`` times and stops at the
    first success.

    Returns:
        Exit code of the last rsync attempt
    """
    mode = mode or runner.mode
    options = options or GlobalOptions()
    dest = Path(dest)
    exclude_file = exclude_file or excludes_path(options)

    current = dest / CURRENT_NAME
    backup_dir = dest / backup_day
    if current.exists() and not backup_dir.exists():
        seed_snapshot(current, backup_dir, runner, mode)

    write_excludes_file(job, exclude_file, mode)
    cmd = build_rsync_command(job, backup_dir, exclude_file, mode, options.rsync_args)

    rc = 1
    for attempt in range(1, options.sync_attempts + 1):
        rc = runner.run_heavy(cmd)
        if rc in RSYNC_SUCCESS:
            break
        if attempt < options.sync_attempts:
            logger.warning(
                "rsync failed with exit code %d; retrying (%d/%d)",
                rc,
                attempt + 1,
                options.sync_attempts,
            )

    if rc not in RSYNC_SUCCESS:
        logger.error("rsync failed with exit code %d; current not updated", rc)
        return rc

    if backup_dir.exists() or mode.dry_run:
        publish_current(dest, backup_day, mode)
    else:
        logger.warning("Snapshot %s missing after rsync; current not updated", backup_dir)
    return rc
