"""Sequential runner - Executes graph tasks one at a time."""

import logging
import time
from collections.abc import Sequence

from ..cache import ContentCache
from ..manifest import RunManifest
from ..tasks import TaskGraph
from .base import (
    RUNNER_ERROR_REASON,
    RunnerCallbacks,
    RunnerResult,
    abort_pending,
    begin,
    resolve_ready,
    summarize,
    write_manifest,
)

logger = logging.getLogger(__name__)


class SequentialRunner:
    """
    Sequential task graph runner.

    Executes tasks one at a time in the calling thread, always picking the
    first ready task in insertion order. Same skip rules as PoolRunner.
    """

    def __init__(self, manifest: RunManifest | None = None, caches: Sequence[ContentCache] = ()):
        """
        Initialize the runner.

        Args:
            manifest: Optional manifest to record the run in
            caches: Caches whose hit/miss counts go into the result
        """
        self.manifest = manifest
        self.caches = list(caches)

    def run(self, graph: TaskGraph, callbacks: RunnerCallbacks | None = None) -> RunnerResult:
        """
        Execute a task graph.

        Args:
            graph: The graph to execute
            callbacks: Optional callbacks for progress reporting

        Returns:
            RunnerResult with execution summary
        """
        cb = callbacks or RunnerCallbacks()
        begin(graph)
        started = time.monotonic()

        if cb.on_run_start:
            cb.on_run_start(graph.name, len(graph))

        aborted = False
        runner_error = None
        try:
            while True:
                ready = resolve_ready(graph, cb)
                if not ready:
                    break
                task = ready[0]

                if cb.on_task_start:
                    cb.on_task_start(task.name)

                task.run()

                if cb.on_task_complete:
                    cb.on_task_complete(task.name, task.state)
        except KeyboardInterrupt:
            aborted = True
            logger.warning("Interrupted, skipping remaining tasks")
            abort_pending(graph, cb)
        except Exception as e:
            runner_error = f"{type(e).__name__}: {e}"
            logger.exception("Runner error, skipping remaining tasks")
            abort_pending(graph, RunnerCallbacks(), RUNNER_ERROR_REASON)

        result = summarize(graph, started, aborted=aborted, caches=self.caches)
        if runner_error:
            result.success = False
            result.runner_error = runner_error
            result.errors.append(f"Runner error: {runner_error}")
        write_manifest(self.manifest, graph, result)

        if cb.on_run_complete:
            cb.on_run_complete(result)

        return result
