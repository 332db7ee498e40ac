"""Fakes and builders shared by the test modules."""

from pathlib import Path

from timevault.__util__ import CommandRunner, RunMode
from timevault.config.schema import Config, Job, RunPolicy


class FakeRunner(CommandRunner):
    """Command runner that records commands and simulates mount(8).

    ``mount``, ``umount`` and remounts edit a fake /proc/mounts file so
    that a ``MountTable`` reading it sees the effect.
    """

    def __init__(
        self,
        proc_mounts: Path,
        mode: RunMode | None = None,
        rsync_codes=None,
        fail_mount=(),
        stuck_readonly=(),
        vanish_on_remount=(),
    ):
        super().__init__(mode, nice=False)
        self.proc_mounts = Path(proc_mounts)
        self.rsync_codes = list(rsync_codes or [])
        self.fail_mount = set(fail_mount)
        self.stuck_readonly = set(stuck_readonly)
        self.vanish_on_remount = set(vanish_on_remount)
        self.commands: list[list[str]] = []
        self.heavy: list[list[str]] = []

    def _lines(self) -> list[str]:
        if not self.proc_mounts.exists():
            return []
        return [l for l in self.proc_mounts.read_text().splitlines() if l.strip()]

    def _write(self, lines: list[str]) -> None:
        self.proc_mounts.write_text("".join(f"{l}\n" for l in lines))

    def _set_options(self, mount: str, options: str) -> None:
        lines = []
        for line in self._lines():
            fields = line.split()
            if fields[1] == mount:
                fields[3] = options
            lines.append(" ".join(fields))
        self._write(lines)

    def run(self, argv):
        self.commands.append(list(argv))
        if argv[0] == "mount" and len(argv) == 2:
            if argv[1] in self.fail_mount:
                return 32
            self._write(self._lines() + [f"/dev/sdz1 {argv[1]} ext4 ro 0 0"])
            return 0
        if argv[:2] == ["mount", "-oremount,rw"]:
            if argv[2] in self.vanish_on_remount:
                self._write([l for l in self._lines() if l.split()[1] != argv[2]])
                return 32
            if argv[2] not in self.stuck_readonly:
                self._set_options(argv[2], "rw")
            return 0
        if argv[:2] == ["mount", "-oremount,ro"]:
            self._set_options(argv[2], "ro")
            return 0
        if argv[0] == "umount":
            self._write([l for l in self._lines() if l.split()[1] != argv[1]])
            return 0
        return 0

    def run_heavy(self, argv):
        self.heavy.append(list(argv))
        if self.mode.dry_run:
            return 0
        if argv[0] == "rsync" and self.rsync_codes:
            return self.rsync_codes.pop(0)
        return 0


def make_job(name, depends_on=(), run_policy=RunPolicy.AUTO, **kwargs):
    """Build a job with usable default paths."""
    kwargs.setdefault("source", f"/srv/{name}/")
    kwargs.setdefault("mount", "/mnt/backup")
    kwargs.setdefault("dest", f"{kwargs['mount']}/{name}")
    return Job(
        name=name,
        run_policy=run_policy,
        depends_on=tuple(depends_on),
        **kwargs,
    )


def make_config(*jobs, **kwargs) -> Config:
    return Config(jobs=tuple(jobs), **kwargs)


