"""
Cache stores - where cached artifacts physically live.

HostCacheStore keeps artifacts in a local directory; DeviceCacheStore keeps
them on the target so a cache hit costs one on-device copy instead of a push.
Both write through a unique temporary name and rename into place, so a failed
or concurrent insert never leaves a partial entry under the real key.
"""

import logging
import os
import shutil
import threading
import uuid
from pathlib import Path, PurePosixPath
from typing import Protocol

from ..errors import NotFound
from ..remote import RemoteShell

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Filesystem operations a ContentCache needs from its backing store."""

    def is_available(self) -> bool: ...

    def exists(self, key: str) -> bool: ...

    def copy_from(self, key: str, destination: str | Path) -> None: ...

    def copy_to(self, source: str | Path, key: str) -> None: ...

    def prepare_destination(self, destination: str | Path) -> None: ...


def _temporary_name(key: str) -> str:
    return f"{key}.{uuid.uuid4().hex}.tmp"


class HostCacheStore:
    """Cache entries stored as files under a local directory."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def is_available(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Host cache unavailable at {self.root}: {e}")
            return False
        return os.access(self.root, os.W_OK)

    def exists(self, key: str) -> bool:
        return (self.root / key).exists()

    def prepare_destination(self, destination: str | Path) -> None:
        Path(destination).parent.mkdir(parents=True, exist_ok=True)

    def copy_from(self, key: str, destination: str | Path) -> None:
        shutil.copy2(self.root / key, destination)

    def copy_to(self, source: str | Path, key: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        # copy onto the same file system first, then atomically move into place
        temporary = self.root / _temporary_name(key)
        try:
            shutil.copy2(source, temporary)
            os.replace(temporary, self.root / key)
        finally:
            temporary.unlink(missing_ok=True)

    def keys(self) -> list[str]:
        """Names of all complete entries."""
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_file() and not p.name.endswith(".tmp"))

    def size_bytes(self) -> int:
        return sum((self.root / key).stat().st_size for key in self.keys())

    def clear(self) -> int:
        """Delete every entry. Returns the number of entries removed."""
        keys = self.keys()
        for key in keys:
            (self.root / key).unlink(missing_ok=True)
        return len(keys)


class DeviceCacheStore:
    """Cache entries stored as files in a directory on the target."""

    def __init__(self, shell: RemoteShell, root: str):
        self.shell = shell
        self.root = root
        # filled lazily by one listing of root
        self._index: set[str] | None = None
        self._lock = threading.Lock()

    def _path(self, key: str) -> str:
        return str(PurePosixPath(self.root) / key)

    def is_available(self) -> bool:
        return True

    def _load_index(self) -> set[str]:
        with self._lock:
            if self._index is None:
                try:
                    self._index = self.shell.list(self.root)
                    logger.debug(f"indexed on-device cache: {len(self._index)} entries")
                except NotFound:
                    # root just hasn't been created yet
                    self._index = set()
            return self._index

    def exists(self, key: str) -> bool:
        index = self._load_index()
        with self._lock:
            return self._path(key) in index

    def prepare_destination(self, destination: str | Path) -> None:
        self.shell.ensure_directory(str(PurePosixPath(str(destination)).parent))

    def copy_from(self, key: str, destination: str | Path) -> None:
        self.shell.copy(self._path(key), str(destination))

    def copy_to(self, source: str | Path, key: str) -> None:
        self.shell.ensure_directory(self.root)
        temporary = self._path(_temporary_name(key))
        self.shell.copy(str(source), temporary)
        self.shell.move(temporary, self._path(key))
        index = self._load_index()
        with self._lock:
            index.add(self._path(key))
