"""Memo of remote directories known to exist."""

import threading


class RemotePathCache:
    """
    Remembers which remote directories exist, to save adb round-trips.

    Entries are only dropped by reset(); a directory deleted out-of-band or by
    RemoteShell.remove stays cached until then.
    """

    def __init__(self):
        self._paths: set[str] = set()
        self._lock = threading.Lock()

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def add(self, path: str) -> None:
        with self._lock:
            self._paths.add(path)

    def reset(self) -> None:
        """Forget every entry (done once per run)."""
        with self._lock:
            self._paths.clear()
