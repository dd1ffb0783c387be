"""Base runner classes and protocols, plus the scheduling rules every runner shares."""

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from ..cache import ContentCache
from ..manifest import RunManifest
from ..tasks import Task, TaskGraph, TaskState

logger = logging.getLogger(__name__)

ABORTED_REASON = "run aborted"
RUNNER_ERROR_REASON = "runner error"


@dataclass
class TaskReport:
    """A task that did not succeed, and why."""

    name: str
    state: TaskState
    reason: str | None = None


@dataclass
class RunnerResult:
    """Result of running a task graph."""

    success: bool
    graph_name: str
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    tasks_skipped: int = 0
    aborted: bool = False
    runner_error: str | None = None
    cache_hits: int = 0
    cache_misses: int = 0
    duration_seconds: float = 0.0
    non_success: list[TaskReport] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def cache_hit_ratio(self) -> float:
        """Fraction of cache lookups that hit."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return self.cache_hits / total


@dataclass
class RunnerCallbacks:
    """
    Callbacks for runner progress reporting.

    Allows CLI to display progress without coupling runner to Rich/UI.
    All callbacks are optional - if None, no callback is made.
    Task callbacks may be invoked from worker threads.
    """

    # Run lifecycle
    on_run_start: Callable[[str, int], None] | None = None  # graph name, total_tasks
    on_run_complete: Callable[[RunnerResult], None] | None = None

    # Task lifecycle
    on_task_start: Callable[[str], None] | None = None  # task name
    on_task_complete: Callable[[str, TaskState], None] | None = None  # task name, terminal state
    on_task_skipped: Callable[[str, str], None] | None = None  # task name, reason


class RunnerProtocol(Protocol):
    """Protocol for task graph runners."""

    def run(self, graph: TaskGraph, callbacks: RunnerCallbacks | None = None) -> RunnerResult:
        """
        Execute every task of a graph.

        Args:
            graph: The graph to execute (once)
            callbacks: Optional callbacks for progress reporting

        Returns:
            RunnerResult with execution summary
        """
        ...


def begin(graph: TaskGraph) -> None:
    """
    Claim a graph for execution.

    Raises:
        RuntimeError: if the graph was already executed
        CycleError: if the graph has a cycle
    """
    if graph.executed:
        raise RuntimeError(f"Task graph {graph.name} was already executed")
    graph.validate()
    graph.executed = True


def skip_reason(blocker: Task) -> str:
    return f"{blocker.name} {blocker.state.value}"


def resolve_ready(graph: TaskGraph, cb: RunnerCallbacks, exclude: Iterable[Task] = ()) -> list[Task]:
    """
    Skip every blocked task and return the tasks that may start now.

    Skips are propagated to a fixed point: a skipped task can in turn block
    tasks inserted before it. Ready tasks are returned in insertion order.
    """
    excluded = set(id(task) for task in exclude)
    while True:
        changed = False
        ready = []
        for task in graph.get_pending_tasks():
            if id(task) in excluded or not task.dependencies_terminal():
                continue
            blocker = task.blocking_dependency()
            if blocker is None:
                ready.append(task)
                continue
            reason = skip_reason(blocker)
            task.skip(reason)
            logger.info(f"Skipping {task.name}: {reason}")
            if cb.on_task_skipped:
                cb.on_task_skipped(task.name, reason)
            changed = True
        if not changed:
            return ready


def abort_pending(graph: TaskGraph, cb: RunnerCallbacks, reason: str = ABORTED_REASON) -> None:
    """Skip every task that never started."""
    for task in graph.get_pending_tasks():
        task.skip(reason)
        if cb.on_task_skipped:
            cb.on_task_skipped(task.name, reason)


def summarize(
    graph: TaskGraph,
    started: float,
    aborted: bool = False,
    caches: Sequence[ContentCache] = (),
) -> RunnerResult:
    """Aggregate the terminal states of a graph into a result."""
    result = RunnerResult(
        success=False,
        graph_name=graph.name,
        tasks_succeeded=graph.count(TaskState.SUCCESS),
        tasks_failed=graph.count(TaskState.FAILURE),
        tasks_skipped=graph.count(TaskState.SKIPPED),
        aborted=aborted,
        cache_hits=sum(cache.hits for cache in caches),
        cache_misses=sum(cache.misses for cache in caches),
        duration_seconds=time.monotonic() - started,
    )
    for task in graph.non_success_tasks():
        reason = task.result.error if task.result else None
        result.non_success.append(TaskReport(name=task.name, state=task.state, reason=reason))
        if task.state is TaskState.FAILURE:
            result.errors.append(f"Task {task.name}: {reason}")
    result.success = not aborted and not result.non_success
    return result


def write_manifest(manifest: RunManifest | None, graph: TaskGraph, result: RunnerResult) -> None:
    if manifest is None:
        return
    manifest.start(graph.name)
    manifest.record_tasks(graph.tasks)
    manifest.finish(
        result.success,
        aborted=result.aborted,
        cache_stats={"cache_hits": result.cache_hits, "cache_misses": result.cache_misses},
    )
    manifest.save()
