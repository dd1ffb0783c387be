"""
Built-in tasks - the concrete steps of a device run.

Each task holds the collaborators it needs (shell, cache, paths) and does one
thing in execute(). Dependencies are wired by the run plan, not here.
"""

import logging
from collections.abc import Callable, Sequence
from pathlib import Path, PurePosixPath

from ..cache import ContentCache
from ..constants import EXIT_MARKER, RETRIEVED_EXCLUDED, RETRIEVED_SUBDIRS, RETRIEVED_SUFFIXES
from ..errors import NotFound, TaskFailure
from ..model import DeviceLayout
from ..remote import RemoteShell
from .task import Task

logger = logging.getLogger(__name__)

Transformer = Callable[[Sequence[Path], Path], None]


class PrepareDeviceTask(Task):
    """Wait for the device and create the harness directories on it."""

    def __init__(
        self,
        shell: RemoteShell,
        layout: DeviceLayout,
        boot_timeout: float,
        clean_before: bool = True,
        remount: bool = False,
        first_monitor_port: int = 8787,
        num_runners: int = 1,
        debug_port: int | None = None,
    ):
        super().__init__("prepare device")
        self.shell = shell
        self.layout = layout
        self.boot_timeout = boot_timeout
        self.clean_before = clean_before
        self.remount = remount
        self.first_monitor_port = first_monitor_port
        self.num_runners = num_runners
        self.debug_port = debug_port

    def execute(self) -> None:
        self.shell.wait_for_device()
        # even if runner dir is /dth/run, the grandparent will be / (and non-empty once booted)
        self.shell.wait_for_non_empty_directory(self.layout.boot_marker_dir, self.boot_timeout)
        if self.remount:
            self.shell.remount()
        if self.clean_before:
            self.shell.remove(self.layout.runner_dir)
        self.shell.ensure_directory(self.layout.runner_dir)
        self.shell.mkdir(self.layout.temp_dir)
        self.shell.mkdir(self.layout.dalvik_cache)
        for i in range(self.num_runners):
            self.shell.forward_tcp(self.first_monitor_port + i, self.first_monitor_port + i)
        if self.debug_port is not None:
            self.shell.forward_tcp(self.debug_port, self.debug_port)
        self.shell.ensure_directory(self.layout.user_home)


class MkdirTask(Task):
    """Ensure a directory exists on the target."""

    def __init__(self, shell: RemoteShell, path: str):
        super().__init__(f"mkdir {path}")
        self.shell = shell
        self.path = path

    def execute(self) -> None:
        self.shell.ensure_directory(self.path)


class DexTask(Task):
    """
    Convert class files into a dex jar on the host.

    The output is fully determined by the input bytes and parameters, so a
    host cache hit replaces the whole transformation with a copy.
    """

    def __init__(
        self,
        name: str,
        inputs: Sequence[Path],
        output: Path,
        transformer: Transformer,
        cache: ContentCache | None = None,
        params: Sequence[str] = (),
    ):
        super().__init__(f"dex {name}")
        self.inputs = list(inputs)
        self.output_path = output
        self.transformer = transformer
        self.cache = cache
        self.params = list(params)
        self.cache_hit = False

    def execute(self) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        key = None
        if self.cache is not None:
            key = self.cache.fingerprint(*self.inputs, params=self.params)
            if self.cache.try_get(self.output_path, key):
                logger.debug(f"dex cache hit for {self.output_path.name}")
                self.cache_hit = True
                return

        self.transformer(self.inputs, self.output_path)
        if not self.output_path.exists():
            raise TaskFailure(f"transformation produced no output at {self.output_path}")

        if self.cache is not None:
            self.cache.insert(key, self.output_path)


class PushTask(Task):
    """
    Copy a local file to the target.

    Regular files go through the device cache: a hit is an on-device copy,
    a miss pushes and then records the pushed file. Directories are always
    pushed.
    """

    def __init__(self, shell: RemoteShell, local: Path, remote: str, cache: ContentCache | None = None):
        super().__init__(f"push {remote}")
        self.shell = shell
        self.local = local
        self.remote = remote
        self.cache = cache
        self.cache_hit = False

    def execute(self) -> None:
        self.shell.ensure_directory(str(PurePosixPath(self.remote).parent))

        if self.cache is None or not self.local.is_file():
            self.shell.push(self.local, self.remote)
            return

        key = self.cache.fingerprint(self.local)
        if self.cache.try_get(self.remote, key):
            logger.debug(f"device cache hit for {self.local}")
            self.cache_hit = True
            return

        self.shell.push(self.local, self.remote)
        self.cache.insert(key, self.remote)


class PrepareUserDirTask(Task):
    """Create an action's working directory on the target and push its resources."""

    def __init__(self, shell: RemoteShell, user_dir: str, resources_dir: Path | None = None):
        super().__init__(f"prepare {user_dir}")
        self.shell = shell
        self.user_dir = user_dir
        self.resources_dir = resources_dir

    def execute(self) -> None:
        self.shell.ensure_directory(self.user_dir)
        if self.resources_dir is not None:
            self.shell.push(self.resources_dir, self.user_dir)


def parse_exit_status(lines: list[str]) -> tuple[int | None, list[str]]:
    """
    Split the exit marker from command output.

    Returns:
        (exit status or None if no marker was printed, remaining output lines)
    """
    status = None
    output = []
    for line in lines:
        stripped = line.rstrip("\r")
        if stripped.startswith(EXIT_MARKER):
            try:
                status = int(stripped[len(EXIT_MARKER) :].strip())
            except ValueError:
                status = None
            continue
        output.append(stripped)
    return status, output


class RunActionTask(Task):
    """Execute an action's command on the target, bounded by a timeout."""

    def __init__(self, shell: RemoteShell, action_name: str, argv: Sequence[str], timeout_seconds: float):
        super().__init__(f"run {action_name}")
        self.shell = shell
        self.action_name = action_name
        self.argv = list(argv)
        self.timeout_seconds = timeout_seconds
        self.exit_status: int | None = None

    def execute(self) -> None:
        # adb shell does not propagate the exit status, so echo it
        lines = self.shell.run_with_timeout([*self.argv, ";", "echo", f"{EXIT_MARKER}$?"], self.timeout_seconds)
        self.exit_status, self.output = parse_exit_status(lines)

        if self.exit_status is None:
            raise TaskFailure(f"{self.action_name} did not report an exit status")
        if self.exit_status != 0:
            raise TaskFailure(f"{self.action_name} exited with status {self.exit_status}")


def retrieved_files_filter(extra_names: Sequence[str] = ()) -> Callable[[str], bool]:
    """
    Build the predicate for files worth bringing back from the target.

    Keeps XML and JSON results (but not java.util.prefs XML) and any
    explicitly named files such as profiler output.
    """
    extra = set(extra_names)

    def accept(path: str) -> bool:
        name = PurePosixPath(path).name
        if name in extra:
            return True
        return name not in RETRIEVED_EXCLUDED and PurePosixPath(name).suffix in RETRIEVED_SUFFIXES

    return accept


class RetrieveFilesTask(Task):
    """Pull result files from an action's directory on the target."""

    def __init__(self, shell: RemoteShell, remote_dir: str, local_dir: Path, accept: Callable[[str], bool]):
        super().__init__(f"retrieve files from {remote_dir}")
        self.shell = shell
        self.remote_dir = remote_dir
        self.local_dir = local_dir
        self.accept = accept
        self.retrieved: list[Path] = []

    def execute(self) -> None:
        try:
            self._retrieve(self.remote_dir, self.local_dir)
        except NotFound as e:
            # the action may have failed before creating anything
            logger.info(f"Nothing retrieved from {self.remote_dir}: {e}")

    def _retrieve(self, remote_dir: str, local_dir: Path) -> None:
        for entry in sorted(self.shell.list(remote_dir)):
            name = PurePosixPath(entry).name
            if name in RETRIEVED_SUBDIRS:
                self._retrieve(entry, local_dir / name)
            elif self.accept(entry):
                destination = local_dir / name
                logger.info(f"Moving {entry} to {destination}")
                self.shell.pull(entry, destination)
                self.retrieved.append(destination)


class DeleteTargetFilesTask(Task):
    """Best-effort recursive delete on the target; an absent path is already clean."""

    def __init__(self, shell: RemoteShell, path: str, name: str | None = None):
        super().__init__(name or f"delete {path}")
        self.shell = shell
        self.path = path

    def execute(self) -> None:
        self.shell.remove(self.path)
