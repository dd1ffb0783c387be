"""
Runners layer - Execution engines for task graphs.

Runners execute graphs, deciding which tasks start, which are skipped, and
reporting progress through callbacks.
"""

from .base import RunnerCallbacks, RunnerProtocol, RunnerResult, TaskReport
from .pool import PoolRunner
from .sequential import SequentialRunner

__all__ = [
    "PoolRunner",
    "RunnerCallbacks",
    "RunnerProtocol",
    "RunnerResult",
    "SequentialRunner",
    "TaskReport",
]
