"""Actions and the on-device directory layout."""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .constants import BANNED_JAR_NAMES


@dataclass
class Action:
    """A single compiled test unit to install and execute."""

    name: str
    jar: Path
    main_class: str | None = None
    resources_dir: Path | None = None
    # Large actions get a longer timeout
    large: bool = False

    @property
    def entry_point(self) -> str:
        return self.main_class or self.name


def basename_of_jar(jar: Path) -> str:
    """
    Recognizable name for a build product, for naming derived files.

    Examples:
        out/core_intermediates/javalib.jar -> core_intermediates
        libs/junit.jar                     -> junit
    """
    name = jar.stem
    while name in BANNED_JAR_NAMES and jar.parent != jar:
        jar = jar.parent
        name = jar.name
    return name


@dataclass
class DeviceLayout:
    """Where the harness keeps its files on the target."""

    device_dir: str

    @property
    def runner_dir(self) -> str:
        return str(PurePosixPath(self.device_dir) / "run")

    @property
    def temp_dir(self) -> str:
        return str(PurePosixPath(self.runner_dir) / "tmp")

    @property
    def dalvik_cache(self) -> str:
        return str(PurePosixPath(self.device_dir) / "dalvik-cache")

    @property
    def user_home(self) -> str:
        return str(PurePosixPath(self.device_dir) / "user.home")

    @property
    def boot_marker_dir(self) -> str:
        """Directory that must be non-empty before the device is usable (grandparent of runner_dir)."""
        return str(PurePosixPath(self.runner_dir).parent.parent)

    def dex_file(self, name: str) -> str:
        return str(PurePosixPath(self.runner_dir) / f"{name}.jar")

    def user_dir(self, action: Action) -> str:
        return str(PurePosixPath(self.runner_dir) / action.name)
