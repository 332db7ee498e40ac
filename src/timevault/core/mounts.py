"""Mount lifecycle of backup devices.

Every job runs inside a mount session: the device is mounted, remounted
read-write, checked to be the right device, and after the job remounted
read-only and unmounted again. Mount points held open are kept in a
``MountRegistry`` so a signal handler can release them if the process is
interrupted mid-job.
"""

import logging
import os
import re
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from .. import MARKER_NAME
from ..__util__ import (
    CommandRunner,
    RunMode,
    TimevaultError,
    path_starts_with,
    strip_trailing_slashes,
)
from ..config.schema import Job

logger = logging.getLogger(__name__)

PROC_MOUNTS = "/proc/mounts"
FSTAB = "/etc/fstab"

# Entries a freshly formatted filesystem may carry and still count as empty
INIT_ALLOWED_ENTRIES = frozenset({"lost+found"})

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


class MountError(TimevaultError):
    """Mounting, remounting or unmounting a device failed."""

    pass


class VerificationError(TimevaultError):
    """The mounted device is not a valid destination for a job."""

    pass


def _unescape(field: str) -> str:
    """Decode the octal escapes used for blanks in mount tables."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


class MountTable:
    """Read access to the live and static mount tables."""

    def __init__(self, proc_mounts: str = PROC_MOUNTS, fstab: str = FSTAB) -> None:
        self.proc_mounts = proc_mounts
        self.fstab = fstab

    @staticmethod
    def _entries(path: str) -> list[list[str]]:
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                lines = f.readlines()
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            return []
        entries = []
        for line in lines:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split()
            if len(fields) >= 2:
                fields[1] = _unescape(fields[1])
                entries.append(fields)
        return entries

    def _live(self, mount: str) -> Optional[list[str]]:
        mount = strip_trailing_slashes(mount)
        found = None
        # Stacked mounts: the last entry is the visible one
        for fields in self._entries(self.proc_mounts):
            if fields[1] == mount:
                found = fields
        return found

    def is_mounted(self, mount: str) -> bool:
        """Whether ``mount`` is an active mount point."""
        return self._live(mount) is not None

    def is_readonly(self, mount: str) -> Optional[bool]:
        """Whether ``mount`` is mounted read-only; None when not mounted."""
        fields = self._live(mount)
        if fields is None:
            return None
        options = fields[3].split(",") if len(fields) >= 4 else []
        return "ro" in options

    def in_fstab(self, mount: str) -> bool:
        """Whether ``mount`` is declared in the static mount table."""
        mount = strip_trailing_slashes(mount)
        return any(fields[1] == mount for fields in self._entries(self.fstab))


class MountRegistry:
    """Mount points currently held open by this process."""

    def __init__(self) -> None:
        self._mounts: list[str] = []

    def add(self, mount: str) -> None:
        if mount and mount not in self._mounts:
            self._mounts.append(mount)

    def discard(self, mount: str) -> None:
        if mount in self._mounts:
            self._mounts.remove(mount)

    def __contains__(self, mount: object) -> bool:
        return mount in self._mounts

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._mounts))

    def __len__(self) -> int:
        return len(self._mounts)

    def drain(self, unmount: Callable[[str], object]) -> list[str]:
        """Unmount and forget every tracked mount point.

        This is the only entry point the signal handler uses.
        """
        mounts, self._mounts = self._mounts, []
        for mount in mounts:
            try:
                unmount(mount)
            except Exception as e:
                logger.error("Failed to unmount %s: %s", mount, e)
        return mounts


def install_signal_handlers(
    registry: MountRegistry,
    runner: CommandRunner,
    signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    """Unmount everything still tracked and exit when interrupted."""

    def _handler(signum, frame):
        logger.warning(
            "Interrupted by signal %d; unmounting %d tracked mount(s)",
            signum,
            len(registry),
        )
        registry.drain(lambda mount: runner.run(["umount", mount]))
        logging.shutdown()
        os._exit(1)

    for signum in signals:
        signal.signal(signum, _handler)


def verify_destination(
    job: Job, mount_prefix: Optional[str], table: MountTable
) -> Path:
    """Check that ``job.dest`` sits on the mounted, initialised backup device.

    Returns:
        The resolved destination directory

    Raises:
        VerificationError: With the reason the destination was rejected
    """
    if not job.dest:
        raise VerificationError("destination path is empty")
    if not job.mount:
        raise VerificationError("mount is required for all jobs")
    if mount_prefix and not path_starts_with(job.mount, mount_prefix):
        raise VerificationError(
            f"mount {job.mount} does not start with required prefix {mount_prefix}"
        )

    try:
        dest_real = os.path.realpath(job.dest, strict=True)
    except OSError as e:
        raise VerificationError(f"cannot access destination {job.dest}: {e.strerror}")
    if dest_real == "/":
        raise VerificationError("destination resolves to /")

    try:
        mount_real = os.path.realpath(job.mount, strict=True)
    except OSError as e:
        raise VerificationError(f"cannot access mount {job.mount}: {e.strerror}")
    if mount_real == "/":
        raise VerificationError("mount resolves to /")

    if dest_real == mount_real:
        raise VerificationError("destination must be a subdirectory of mount")
    if not path_starts_with(dest_real, mount_real):
        raise VerificationError(
            f"destination {dest_real} is not under mount {mount_real}"
        )
    if not table.is_mounted(mount_real):
        raise VerificationError(f"mount {mount_real} is not mounted")
    if not table.in_fstab(mount_real):
        raise VerificationError(f"mount {mount_real} not found in {table.fstab}")

    marker = Path(mount_real) / MARKER_NAME
    if not marker.exists():
        raise VerificationError(
            f"target device is not a timevault device (missing {MARKER_NAME} at {marker})"
        )
    return Path(dest_real)


class MountController:
    """Acquire, check and release backup device mounts."""

    def __init__(
        self,
        table: MountTable,
        runner: CommandRunner,
        registry: MountRegistry,
        mode: RunMode | None = None,
    ) -> None:
        self.table = table
        self.runner = runner
        self.registry = registry
        self.mode = mode or runner.mode

    def ensure_unmounted(self, mount: str) -> None:
        """Detach ``mount`` if something is mounted there."""
        if not self.table.is_mounted(mount):
            logger.debug("Mount not active, skip umount: %s", mount)
            return
        logger.info("Unmounting %s", mount)
        rc = self.runner.run(["umount", mount])
        if rc != 0:
            raise MountError(f"umount {mount} failed with exit code {rc}")
        if self.table.is_mounted(mount):
            raise MountError(f"umount {mount} did not detach")
        self.registry.discard(mount)

    def mount(self, mount: str) -> None:
        """Mount ``mount`` through its fstab entry and start tracking it."""
        rc = self.runner.run(["mount", mount])
        if not self.table.is_mounted(mount):
            raise MountError(f"mount {mount} failed (exit code {rc}); not mounted")
        self.registry.add(mount)

    def remount_rw(self, mount: str) -> None:
        """Remount read-write and confirm the filesystem accepted it."""
        self.runner.run(["mount", "-oremount,rw", mount])
        readonly = self.table.is_readonly(mount)
        if readonly is None:
            raise MountError(f"mount {mount} is not mounted")
        if readonly:
            raise MountError(f"mount {mount} is read-only")

    def release(self, mount: str) -> bool:
        """Remount read-only, unmount and stop tracking; best effort."""
        self.runner.run(["mount", "-oremount,ro", mount])
        rc = self.runner.run(["umount", mount])
        self.registry.discard(mount)
        if rc != 0:
            logger.warning("umount %s failed with exit code %d", mount, rc)
            return False
        return True

    @contextmanager
    def session(self, job: Job, mount_prefix: Optional[str] = None) -> Iterator[Path]:
        """Hold the job's device mounted read-write for the duration of the block.

        Yields the verified, resolved destination directory. The device is
        remounted read-only and unmounted when the block exits, whether it
        succeeded or not, and also when the checks fail.

        Raises:
            MountError: The device could not be mounted read-write
            VerificationError: The destination failed a safety check
        """
        mount = strip_trailing_slashes(job.mount)
        self.ensure_unmounted(mount)
        self.mount(mount)
        try:
            self.remount_rw(mount)
            dest = verify_destination(job, mount_prefix, self.table)
            yield dest
        finally:
            self.release(mount)

    def initialize(
        self, mount: str, mount_prefix: Optional[str] = None, force: bool = False
    ) -> Path:
        """Mark an empty device as a timevault backup target.

        Args:
            mount: Mount point declared in fstab
            mount_prefix: Path the mount point must lie under
            force: Initialise even when the device is not empty

        Returns:
            Path of the marker file

        Raises:
            MountError: The device could not be mounted read-write
            VerificationError: The device is not an acceptable target
        """
        if not mount:
            raise VerificationError("mount path is empty")
        if mount_prefix and not path_starts_with(mount, mount_prefix):
            raise VerificationError(
                f"mount {mount} does not start with required prefix {mount_prefix}"
            )
        try:
            mount_real = os.path.realpath(mount, strict=True)
        except OSError as e:
            raise VerificationError(f"cannot access mount {mount}: {e.strerror}")
        if mount_real == "/":
            raise VerificationError("mount resolves to /")
        if not self.table.in_fstab(mount_real):
            raise VerificationError(
                f"mount {mount_real} not found in {self.table.fstab}"
            )

        self.ensure_unmounted(mount_real)
        self.mount(mount_real)
        try:
            self.remount_rw(mount_real)

            root = Path(mount_real)
            try:
                entries = [p.name for p in root.iterdir()]
            except OSError as e:
                raise VerificationError(f"cannot read mount {mount_real}: {e.strerror}")
            unexpected = sorted(n for n in entries if n not in INIT_ALLOWED_ENTRIES)
            if unexpected and not force:
                raise VerificationError(
                    f"mount {mount_real} is not empty ({', '.join(unexpected)}); "
                    "aborting init (use --force to override)"
                )

            marker = root / MARKER_NAME
            if marker.exists():
                logger.info("timevault marker already exists: %s", marker)
            elif self.mode.dry_run:
                logger.info("dry-run: touch %s", marker)
            else:
                try:
                    marker.touch()
                except OSError as e:
                    raise VerificationError(f"create {marker}: {e.strerror}")
                logger.info("Created marker %s", marker)
            return marker
        finally:
            self.release(mount_real)
