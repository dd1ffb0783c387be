"""Cache layer - content-addressed artifact reuse across runs."""

from .content import UNCACHEABLE, ContentCache, file_checksum
from .stores import CacheStore, DeviceCacheStore, HostCacheStore

__all__ = [
    "UNCACHEABLE",
    "CacheStore",
    "ContentCache",
    "DeviceCacheStore",
    "HostCacheStore",
    "file_checksum",
]
