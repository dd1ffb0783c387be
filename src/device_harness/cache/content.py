"""
Content-addressed cache for deterministic, expensive steps.

A key is derived from the bytes of every input plus string parameters. Equal
keys are assumed to produce byte-identical output; the cache never re-checks.
"""

import hashlib
import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from .stores import CacheStore

logger = logging.getLogger(__name__)

# Returned by fingerprint() when caching must be skipped entirely
UNCACHEABLE = None


def file_checksum(path: Path, chunk_size: int = 8192) -> str:
    """Compute SHA256 checksum of a file."""
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


class ContentCache:
    """
    Maps content fingerprints to stored artifacts.

    Concurrent try_get/insert on the same key is fine: artifacts are immutable
    once produced and a duplicate insert replaces an identical file atomically.
    """

    def __init__(self, name: str, store: CacheStore | None):
        self.name = name
        self.store = store
        self.hits = 0
        self.misses = 0
        self._counter_lock = threading.Lock()

    def fingerprint(self, *inputs: Path | str, params: Iterable[str] = ()) -> str | None:
        """
        Compute the key for a transformation of inputs.

        Returns:
            The key, or UNCACHEABLE if the store is unavailable or an input
            cannot be read
        """
        if self.store is None or not self.store.is_available():
            return UNCACHEABLE

        sha256 = hashlib.sha256()
        try:
            for path in inputs:
                sha256.update(file_checksum(Path(path)).encode())
                sha256.update(b"\0")
        except OSError as e:
            logger.warning(f"{self.name} cache disabled for {list(inputs)}: {e}")
            return UNCACHEABLE

        for param in params:
            sha256.update(param.encode())
            sha256.update(b"\0")

        return f"{self.name}-{sha256.hexdigest()}"

    def try_get(self, destination: Path | str, key: str | None) -> bool:
        """
        Materialize a cached artifact at destination.

        Returns:
            True on a hit; False on a miss, in which case nothing was touched.
            Only lookups in the store are counted; UNCACHEABLE is not a miss.
        """
        if key is UNCACHEABLE or self.store is None:
            return False
        if not self.store.exists(key):
            self._count(hit=False)
            return False

        self.store.prepare_destination(destination)
        self.store.copy_from(key, destination)
        self._count(hit=True)
        logger.debug(f"{self.name} cache hit for {destination}")
        return True

    def insert(self, key: str | None, source: Path | str) -> None:
        """Record source under key. Call only after a real execution succeeded."""
        if key is UNCACHEABLE or self.store is None:
            return
        self.store.copy_to(source, key)

    def _count(self, hit: bool) -> None:
        with self._counter_lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1
