"""
Remote layer - Access to the target device over adb.

RemoteShell owns a RemotePathCache and talks to the device through a
Transport. Nothing here knows about tasks or scheduling.
"""

from .path_cache import RemotePathCache
from .shell import Listing, RemoteShell, exact_file, non_empty_directory
from .transport import AdbTransport, Transport

__all__ = [
    "AdbTransport",
    "Listing",
    "RemotePathCache",
    "RemoteShell",
    "Transport",
    "exact_file",
    "non_empty_directory",
]
