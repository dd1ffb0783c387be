"""
Toolchain module - Locate adb, dx and aapt and the Android bootclasspath.

We probably get adb from either a copy of the Android SDK or a copy of the
Android source tree:

    Android SDK < v9:   <sdk>/tools/adb, <sdk>/platforms/android-?/tools/{dx,aapt}
    Android SDK >= v9:  <sdk>/platform-tools/{adb,dx,aapt}
    Android build tree: <source>/out/host/linux-x86/bin/adb
"""

import logging
import shutil
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .errors import TaskFailure, Timeout, ToolchainError

logger = logging.getLogger(__name__)

# Standard user bin directory following XDG spec
USER_BIN_DIR = Path.home() / ".local" / "share" / "device-test-harness" / "bin"

# $BOOTCLASSPATH defined by system/core/rootdir/init.rc
BOOTCLASSPATH = [
    "core",
    "ext",
    "framework",
    "android.policy",
    "services",
    "core-junit",
    "bouncycastle",
]

DEX_TIMEOUT_SECONDS = 30 * 60


def get_tool_path(tool_name: str) -> Path | None:
    """
    Find a tool in standard locations.

    Search order:
    1. User local bin (~/.local/share/device-test-harness/bin)
    2. System PATH
    """
    user_path = USER_BIN_DIR / tool_name
    if user_path.exists():
        return user_path

    sys_path = shutil.which(tool_name)
    if sys_path:
        return Path(sys_path)

    return None


@dataclass
class Toolchain:
    """Resolved external tools, handed to tasks as opaque configuration."""

    adb: Path
    dx: Path
    aapt: Path
    layout: str  # "sdk", "legacy-sdk" or "build-tree"
    root: Path
    android_classes: list[Path] = field(default_factory=list)

    def dex(self, inputs: Sequence[Path], output: Path, timeout: float = DEX_TIMEOUT_SECONDS) -> None:
        """
        Convert the .class files in inputs into a dex jar at output.

        --core-library lets tests live in the package they test, even for
        core library packages. Memory options match the platform build.

        Raises:
            TaskFailure: if dx exits non-zero
            Timeout: if dx runs longer than timeout
        """
        cmd = [
            str(self.dx),
            "-JXms16M",
            "-JXmx1536M",
            "--dex",
            f"--output={output}",
            "--core-library",
            *[str(path) for path in inputs],
        ]
        output.parent.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise Timeout(f"dx {output.name}", time.monotonic() - start, timeout) from e
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise TaskFailure(f"dx failed for {output.name}: {detail}")


def _newest_platform(sdk_root: Path) -> Path:
    platforms_dir = sdk_root / "platforms"
    platforms = []
    if platforms_dir.is_dir():
        # TODO: order numerically once platform names reach android-10
        platforms = sorted((p for p in platforms_dir.iterdir() if p.is_dir()), key=lambda p: p.name)
    if not platforms:
        raise ToolchainError(f"No platforms found under {platforms_dir}")
    return platforms[-1]


def locate_toolchain(adb: Path | None = None) -> Toolchain:
    """
    Derive the toolchain layout from where adb lives.

    Args:
        adb: Explicit adb path (default: search user bin dir and PATH)

    Raises:
        ToolchainError: if adb is missing or its layout is unrecognized
    """
    adb = adb or get_tool_path("adb")
    if adb is None:
        raise ToolchainError("adb not found")
    adb = Path(adb).absolute()
    parent_name = adb.parent.name

    if parent_name in ("tools", "platform-tools"):
        sdk_root = adb.parent.parent
        platform = _newest_platform(sdk_root)
        logger.debug(f"using android platform: {platform}")

        # don't assume dx and aapt are on the PATH for old SDKs
        if parent_name == "tools":
            dx = platform / "tools" / "dx"
            aapt = platform / "tools" / "aapt"
            layout = "legacy-sdk"
        else:
            dx = get_tool_path("dx") or Path("dx")
            aapt = get_tool_path("aapt") or Path("aapt")
            layout = "sdk"

        logger.debug(f"using android sdk: {sdk_root}")
        return Toolchain(
            adb=adb,
            dx=dx,
            aapt=aapt,
            layout=layout,
            root=sdk_root,
            android_classes=[platform / "android.jar"],
        )

    if parent_name == "bin" and len(adb.parents) > 4:
        source_root = adb.parents[4]
        logger.debug(f"using android build tree: {source_root}")
        intermediates = source_root / "out" / "target" / "common" / "obj" / "JAVA_LIBRARIES"
        return Toolchain(
            adb=adb,
            dx=get_tool_path("dx") or Path("dx"),
            aapt=get_tool_path("aapt") or Path("aapt"),
            layout="build-tree",
            root=source_root,
            android_classes=[intermediates / f"{jar}_intermediates" / "classes.jar" for jar in BOOTCLASSPATH],
        )

    raise ToolchainError(f"Couldn't derive Android home from {adb}")


def check_tools_status() -> dict[str, Path | None]:
    """
    Check status of all external tools.

    Returns:
        Dict mapping tool name to path (None if not found)
    """
    return {
        "adb": get_tool_path("adb"),
        "dx": get_tool_path("dx"),
        "aapt": get_tool_path("aapt"),
    }
