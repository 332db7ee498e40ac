# pyright: standard

"""timevault: timevault/__util__.py
Common utility code shared among modules.
"""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

NICE_PREFIX = ["nice", "-n", "19", "ionice", "-c", "3", "-n7"]


class TimevaultError(Exception):
    """Base class of every error raised by timevault."""


@dataclass(frozen=True)
class RunMode:
    """Flags controlling how much a run is allowed to change.

    Attributes:
        dry_run: Print mirror, copy and delete operations instead of running them
        safe_mode: Never delete anything (no rsync --delete, no pruning)
        verbose: Echo every external command before running it
    """

    dry_run: bool = False
    safe_mode: bool = False
    verbose: bool = False


class CommandRunner:
    """Run external commands synchronously and report their exit codes."""

    def __init__(self, mode: RunMode | None = None, nice: bool = True) -> None:
        self.mode = mode or RunMode()
        self.nice = nice

    def _echo(self, argv: list[str]) -> None:
        if self.mode.dry_run or self.mode.verbose:
            logger.info("%s", shlex.join(argv))

    def run(self, argv: list[str]) -> int:
        """Run ``argv`` and return its exit status.

        Mount commands go through here; they also run in dry-run mode so that
        the destination checks see the real device.
        """
        self._echo(argv)
        try:
            result = subprocess.run(argv, check=False)
        except OSError as e:
            logger.error("Cannot execute %s: %s", argv[0], e)
            return 127
        if result.returncode < 0:
            return 1
        return result.returncode

    def run_heavy(self, argv: list[str]) -> int:
        """Run a disk-heavy command at idle priority.

        In dry-run mode the command is only printed and reported as successful.
        """
        if self.nice:
            argv = NICE_PREFIX + list(argv)
        if self.mode.dry_run:
            self._echo(argv)
            return 0
        return self.run(argv)


def log_heading(msg: str) -> str:
    """Format a section heading for the log."""
    return f"--[ {msg} ]--"


def backup_day_for(now: datetime | None = None) -> str:
    """Return the name of the dated snapshot a run started at ``now`` fills.

    A nightly run backs up the day that just ended, so this is yesterday's date.
    """
    now = now or datetime.now()
    return (now - timedelta(days=1)).strftime("%Y%m%d")


def has_parent_segment(path: str) -> bool:
    """Whether ``path`` contains a ``..`` component."""
    return ".." in path.split("/")


def strip_trailing_slashes(path: str) -> str:
    stripped = path.rstrip("/")
    return stripped or "/"


def path_starts_with(path: str, prefix: str) -> bool:
    """Component-wise prefix test on absolute path strings.

    ``/mnt/back`` is not a prefix of ``/mnt/backup``; ``/`` is a prefix of
    every absolute path.
    """
    if not prefix:
        return False
    prefix = strip_trailing_slashes(prefix)
    if prefix == "/":
        return path.startswith("/")
    return path == prefix or path.startswith(prefix + "/")


def is_safe_name(name: str) -> bool:
    """Names usable as file name components: letters, digits, '.', '-', '_'."""
    if name in ("", ".", ".."):
        return False
    return all(c.isascii() and (c.isalnum() or c in "-_.") for c in name)
