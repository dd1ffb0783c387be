"""
Profiler capability - optional sampling profiler on the target.

The variant is chosen once from configuration. A profiler contributes
arguments to each action's command line and names the file it writes, so
the retrieve step brings it back.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class ProfilerMode(Enum):
    DISABLED = "disabled"
    SAMPLING = "sampling"


class Profiler(Protocol):
    """Capability every profiler variant provides."""

    mode: ProfilerMode

    def target_args(self) -> list[str]:
        """Arguments passed to the target runner to start and stop profiling."""
        ...

    def output_file(self) -> str | None:
        """Name of the file the profiler writes in the action's user dir, if any."""
        ...


class DisabledProfiler:
    mode = ProfilerMode.DISABLED

    def target_args(self) -> list[str]:
        return []

    def output_file(self) -> str | None:
        return None


@dataclass
class SamplingProfiler:
    """Stack-sampling profiler; the target writes an hprof file on shutdown."""

    depth: int = 4
    interval_ms: int = 10
    thread_group: bool = False
    file_name: str = "java.hprof.txt"

    mode = ProfilerMode.SAMPLING

    def target_args(self) -> list[str]:
        args = [
            "--profile",
            "--profile-depth",
            str(self.depth),
            "--profile-interval",
            str(self.interval_ms),
            "--profile-file",
            self.file_name,
        ]
        if self.thread_group:
            args.append("--profile-thread-group")
        return args

    def output_file(self) -> str | None:
        return self.file_name


def create_profiler(
    mode: ProfilerMode | str,
    depth: int = 4,
    interval_ms: int = 10,
    thread_group: bool = False,
    file_name: str = "java.hprof.txt",
) -> Profiler:
    """
    Build the profiler variant for a configured mode.

    Raises:
        ValueError: for an unknown mode name
    """
    mode = ProfilerMode(mode)
    if mode == ProfilerMode.SAMPLING:
        return SamplingProfiler(depth=depth, interval_ms=interval_ms, thread_group=thread_group, file_name=file_name)
    return DisabledProfiler()
