"""
Tasks layer - units of work and the graph that orders them.

Graphs are DATA STRUCTURES that define what to do and in which order.
They do NOT schedule anything - that's the runner's job.
"""

from .builtin import (
    DeleteTargetFilesTask,
    DexTask,
    MkdirTask,
    PrepareDeviceTask,
    PrepareUserDirTask,
    PushTask,
    RetrieveFilesTask,
    RunActionTask,
    parse_exit_status,
    retrieved_files_filter,
)
from .graph import TaskGraph
from .task import CallableTask, Task, TaskResult, TaskState

__all__ = [
    "CallableTask",
    "DeleteTargetFilesTask",
    "DexTask",
    "MkdirTask",
    "PrepareDeviceTask",
    "PrepareUserDirTask",
    "PushTask",
    "RetrieveFilesTask",
    "RunActionTask",
    "Task",
    "TaskGraph",
    "TaskResult",
    "TaskState",
    "parse_exit_status",
    "retrieved_files_filter",
]
