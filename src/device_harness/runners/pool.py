"""Pool runner - Executes independent tasks concurrently on a bounded thread pool."""

import logging
import time
from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from ..cache import ContentCache
from ..manifest import RunManifest
from ..tasks import Task, TaskGraph
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


class PoolRunner:
    """
    Concurrent task graph runner.

    Starts every ready task (in insertion order) up to max_concurrency,
    then waits for the first one to finish before looking again. A failing
    task never stops its running siblings; tasks that needed it are skipped.
    """

    def __init__(
        self,
        max_concurrency: int = 4,
        manifest: RunManifest | None = None,
        caches: Sequence[ContentCache] = (),
    ):
        """
        Initialize the runner.

        Args:
            max_concurrency: Maximum number of tasks running at once
            manifest: Optional manifest to record the run in
            caches: Caches whose hit/miss counts go into the result
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self.manifest = manifest
        self.caches = list(caches)

    def run(self, graph: TaskGraph, callbacks: RunnerCallbacks | None = None) -> RunnerResult:
        cb = callbacks or RunnerCallbacks()
        begin(graph)
        started = time.monotonic()

        if cb.on_run_start:
            cb.on_run_start(graph.name, len(graph))

        running: dict[Future, Task] = {}
        aborted = False
        runner_error = None

        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="dth") as pool:
            try:
                while True:
                    ready = resolve_ready(graph, cb, exclude=running.values())
                    for task in ready[: self.max_concurrency - len(running)]:
                        if cb.on_task_start:
                            cb.on_task_start(task.name)
                        running[pool.submit(task.run)] = task

                    if not running:
                        break

                    done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                    for future in done:
                        self._complete(running.pop(future), future, cb)
            except KeyboardInterrupt:
                aborted = True
                logger.warning(f"Interrupted, waiting for {len(running)} running task(s)")
                self._drain(running, cb)
                abort_pending(graph, cb)
            except Exception as e:
                runner_error = f"{type(e).__name__}: {e}"
                logger.exception(f"Runner error, waiting for {len(running)} running task(s)")
                # the callbacks may be what failed
                self._drain(running, RunnerCallbacks())
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

    def _complete(self, task: Task, future: Future, cb: RunnerCallbacks) -> None:
        # Task.run records task failures itself; anything raised here is a runner error
        future.result()
        if cb.on_task_complete:
            cb.on_task_complete(task.name, task.state)

    def _drain(self, running: dict[Future, Task], cb: RunnerCallbacks) -> None:
        """Wait for in-flight tasks; queued ones are cancelled and stay pending."""
        for future in running:
            future.cancel()
        wait(list(running))
        for future, task in running.items():
            if not future.cancelled() and cb.on_task_complete:
                cb.on_task_complete(task.name, task.state)
        running.clear()
