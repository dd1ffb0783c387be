"""
Remote shell - idempotent filesystem and process primitives over adb.

adb shell has no recursive mkdir, no batching and no transactions, and it
reports most failures as ordinary output lines. This module turns that into:
- ensure_directory: parent-first creation with "already exists" as success
- list: NotFound distinguished from an empty directory
- run_with_timeout / wait_until: bounded blocking calls that raise Timeout
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from pathlib import Path, PurePosixPath

from ..constants import FILE_EXISTS, NO_SUCH_FILE, POLL_INTERVAL_SECONDS, REMOTE_ROOT_SENTINELS
from ..errors import NotFound, Timeout, TransportFailure
from .path_cache import RemotePathCache
from .transport import Transport

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"uid=\d+\((\S+)\) gid=\d+\(\S+\).*")

Listing = set[str]


def non_empty_directory(listing: Listing) -> bool:
    """Predicate: the directory has at least one entry (e.g. /sdcard is mounted)."""
    return bool(listing)


def exact_file(path: str) -> Callable[[Listing], bool]:
    """Predicate factory: the listing is exactly the single file at path."""

    def matches(listing: Listing) -> bool:
        return listing == {path}

    return matches


class RemoteShell:
    """
    Filesystem and process operations on the target.

    One instance is owned by a run; its RemotePathCache is per-instance state,
    so concurrent runs in one process do not share directory knowledge.
    """

    def __init__(
        self,
        transport: Transport,
        path_cache: RemotePathCache | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.path_cache = path_cache if path_cache is not None else RemotePathCache()
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    # Directories

    def mkdir(self, path: str) -> None:
        """Create a single directory whose parent must exist."""
        if path in self.path_cache:
            return
        argv = ["shell", "mkdir", path]
        lines = self.transport.execute(argv)
        # fail for any reason other than the directory already existing
        if lines and FILE_EXISTS not in lines[0]:
            if NO_SUCH_FILE in lines[0]:
                raise NotFound(path)
            raise TransportFailure(argv, lines)
        self.path_cache.add(path)

    def ensure_directory(self, path: str) -> None:
        """
        Create path and any missing ancestors, parents first.

        Stops walking up at a root sentinel (/ or /sdcard) or at a directory
        already known to exist.
        """
        missing: list[str] = []
        current = PurePosixPath(path)
        while str(current) not in REMOTE_ROOT_SENTINELS and str(current) not in self.path_cache:
            missing.append(str(current))
            if current.parent == current:
                break
            current = current.parent

        # one mkdir per directory, parents first
        for directory in reversed(missing):
            self.mkdir(directory)

    def list(self, path: str, timeout: float | None = None) -> Listing:
        """
        List a remote path.

        Returns:
            Absolute paths of the entries; {path} itself if path is a file

        Raises:
            NotFound: if path does not exist
        """
        lines = self.transport.execute(["shell", "ls", path], timeout=timeout)
        base = path.rstrip("/") or "/"
        entries: Listing = set()
        for line in lines:
            line = line.strip()
            if not line:
                continue
            if line.endswith(NO_SUCH_FILE):
                raise NotFound(path)
            if line in (path, base):
                entries.add(base)
            else:
                entries.add(str(PurePosixPath(base) / line))
        return entries

    def remove(self, path: str) -> bool:
        """
        Recursively delete path.

        Returns:
            False if path was already absent, True otherwise
        """
        argv = ["shell", "rm", "-r", path]
        lines = self.transport.execute(argv)
        if any(NO_SUCH_FILE in line for line in lines):
            logger.debug(f"nothing to remove at {path}")
            return False
        if lines:
            raise TransportFailure(argv, lines)
        return True

    # Files

    def push(self, local: Path | str, remote: str) -> None:
        """Copy a local file or directory to the target. The remote parent must exist."""
        self.transport.execute(["push", str(local), remote])

    def pull(self, remote: str, local: Path | str) -> None:
        """Copy a remote file to the host, creating the local parent directory."""
        Path(local).parent.mkdir(parents=True, exist_ok=True)
        self.transport.execute(["pull", remote, str(local)])

    def move(self, source: str, destination: str) -> None:
        argv = ["shell", "mv", source, destination]
        lines = self.transport.execute(argv)
        if lines:
            raise TransportFailure(argv, lines)

    def copy(self, source: str, destination: str) -> None:
        """Copy a file on the target (adb shell has no cp)."""
        argv = ["shell", "cat", source, ">", destination]
        lines = self.transport.execute(argv)
        if lines:
            if NO_SUCH_FILE in lines[0]:
                raise NotFound(source)
            raise TransportFailure(argv, lines)

    # Processes

    def run_with_timeout(self, argv: Sequence[str], timeout_seconds: float | None) -> list[str]:
        """
        Run a command on the target and return its output lines.

        A timeout of None or 0 waits forever.

        Raises:
            Timeout: if the command is still running at the deadline
        """
        return self.transport.execute(["shell", *argv], timeout=timeout_seconds or None)

    def wait_until(
        self,
        path: str,
        timeout_seconds: float,
        predicate: Callable[[Listing], bool],
    ) -> Listing:
        """
        Poll list(path) until predicate holds.

        A missing path counts as not ready. No remote call is made once the
        deadline has passed.

        Raises:
            Timeout: with the path and elapsed time
        """
        start = self._clock()
        deadline = start + timeout_seconds

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise Timeout(path, self._clock() - start, timeout_seconds)

            try:
                listing = self.list(path, timeout=remaining)
            except NotFound:
                listing = None
            except Timeout as e:
                raise Timeout(path, self._clock() - start, timeout_seconds) from e

            if listing is not None and predicate(listing):
                return listing

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise Timeout(path, self._clock() - start, timeout_seconds)
            self._sleep(min(self.poll_interval, remaining))

    def wait_for_non_empty_directory(self, path: str, timeout_seconds: float) -> Listing:
        """Wait until path is a directory with entries, e.g. /sdcard after boot."""
        return self.wait_until(path, timeout_seconds, non_empty_directory)

    def wait_for_file(self, path: str, timeout_seconds: float) -> Listing:
        """Wait until a single file exists at path."""
        return self.wait_until(path, timeout_seconds, exact_file(path))

    # Device management

    def wait_for_device(self) -> None:
        self.transport.execute(["wait-for-device"])

    def remount(self) -> None:
        self.transport.execute(["remount"])

    def forward_tcp(self, local_port: int, device_port: int) -> None:
        self.transport.execute(["forward", f"tcp:{local_port}", f"tcp:{device_port}"])

    def install(self, apk: Path | str) -> None:
        self.transport.execute(["install", "-r", str(apk)])

    def uninstall(self, package_name: str) -> None:
        self.transport.execute(["uninstall", package_name])

    def device_user_name(self) -> str:
        """Name of the shell user; the default device environment has no $USER."""
        lines = self.transport.execute(["shell", "id"])
        if lines:
            match = _ID_PATTERN.match(lines[0].strip())
            if match:
                return match.group(1)
        return "root"
