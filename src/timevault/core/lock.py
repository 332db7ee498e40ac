"""PID file guarding against two timevault runs at once."""

import logging
import os
from pathlib import Path

from filelock import FileLock, Timeout

from ..__util__ import TimevaultError

logger = logging.getLogger(__name__)


class LockError(TimevaultError):
    """The run lock could not be taken."""

    pass


class AlreadyRunning(LockError):
    """Another live timevault process holds the lock."""

    def __init__(self, pid: int | None = None) -> None:
        self.pid = pid
        msg = "timevault is already running"
        if pid:
            msg += f" (pid {pid})"
        super().__init__(msg)


def pid_alive(pid: int) -> bool:
    return Path("/proc", str(pid)).exists()


def read_pid(path: Path) -> int | None:
    try:
        text = path.read_text().strip()
    except FileNotFoundError:
        return None
    try:
        pid = int(text)
    except ValueError:
        return None
    return pid if pid > 0 else None


class RunLock:
    """Process-wide run lock identified by the holder's PID.

    ``<path>`` records the PID of the holder; a PID file whose process is
    gone is stale and gets reclaimed. ``<path>.lock`` serialises the
    check-and-write so two starting processes cannot both succeed.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._guard = FileLock(f"{self.path}.lock", timeout=0)
        self.held = False

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            AlreadyRunning: Another live process holds it
            LockError: The lock files cannot be written
        """
        try:
            with self._guard:
                pid = read_pid(self.path)
                if pid and pid != os.getpid() and pid_alive(pid):
                    raise AlreadyRunning(pid)
                if pid:
                    logger.info("Reclaiming stale lock %s (pid %d)", self.path, pid)
                self.path.write_text(f"{os.getpid()}\n")
        except Timeout:
            raise AlreadyRunning(read_pid(self.path))
        except OSError as e:
            raise LockError(
                f"failed to lock {self.path}: {e.strerror} "
                "(need write permission; try sudo or adjust permissions)"
            ) from e
        self.held = True
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        """Drop the lock if this process still holds it."""
        if not self.held:
            return
        self.held = False
        if read_pid(self.path) == os.getpid():
            try:
                self.path.unlink()
            except OSError as e:
                logger.warning("Cannot remove lock %s: %s", self.path, e)

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
