"""Task definitions - units of work and their state machine."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import CycleError, IllegalTransitionError

logger = logging.getLogger(__name__)


class TaskState(Enum):
    """State of a task in a graph."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCESS, TaskState.FAILURE, TaskState.SKIPPED)


_TRANSITIONS = {
    TaskState.PENDING: {TaskState.RUNNING, TaskState.SKIPPED},
    TaskState.RUNNING: {TaskState.SUCCESS, TaskState.FAILURE},
}


@dataclass
class TaskResult:
    """Terminal outcome of a task."""

    state: TaskState
    error: str | None = None
    duration_seconds: float = 0.0
    output: list[str] = field(default_factory=list)


class Task:
    """
    A named unit of work.

    Subclasses override execute(). Returning normally (or True) is success;
    returning False or raising is failure. A task runs at most once.

    Dependencies come in two kinds:
    - after_success: the predecessor must succeed, otherwise this task is skipped
    - after_completion: the predecessor only has to finish, in any state
    """

    def __init__(self, name: str):
        self.name = name
        self.state = TaskState.PENDING
        self.result: TaskResult | None = None
        self.output: list[str] = []
        self.success_dependencies: list[Task] = []
        self.completion_dependencies: list[Task] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.state.value})"

    def __str__(self) -> str:
        return self.name

    # Graph wiring

    @property
    def dependencies(self) -> list[Task]:
        """All predecessors, after-success ones first, without duplicates."""
        seen: list[Task] = []
        for task in self.success_dependencies + self.completion_dependencies:
            if task not in seen:
                seen.append(task)
        return seen

    def after_success(self, *tasks: Task) -> Task:
        """Run only after every given task succeeded. Returns self for chaining."""
        for task in tasks:
            self._add_dependency(task, self.success_dependencies)
        return self

    def after_completion(self, *tasks: Task) -> Task:
        """Run after every given task finished, whatever its state. Returns self for chaining."""
        for task in tasks:
            self._add_dependency(task, self.completion_dependencies)
        return self

    def _add_dependency(self, task: Task, into: list[Task]) -> None:
        if self.state is not TaskState.PENDING:
            raise IllegalTransitionError(f"cannot add dependencies to {self.name}: already {self.state.value}")
        path = task.path_to(self)
        if path is not None:
            raise CycleError([self.name, *[t.name for t in path]])
        if task not in into:
            into.append(task)

    def path_to(self, target: Task) -> list[Task] | None:
        """Dependency chain from self down to target (inclusive), or None."""
        stack: list[tuple[Task, list[Task]]] = [(self, [self])]
        visited: set[int] = set()
        while stack:
            task, path = stack.pop()
            if task is target:
                return path
            if id(task) in visited:
                continue
            visited.add(id(task))
            for dependency in reversed(task.dependencies):
                stack.append((dependency, [*path, dependency]))
        return None

    # Scheduling queries

    def dependencies_terminal(self) -> bool:
        return all(task.state.is_terminal for task in self.dependencies)

    def blocking_dependency(self) -> Task | None:
        """First after-success predecessor that failed or was skipped."""
        for task in self.success_dependencies:
            if task.state in (TaskState.FAILURE, TaskState.SKIPPED):
                return task
        return None

    def is_runnable(self) -> bool:
        return (
            self.state is TaskState.PENDING and self.dependencies_terminal() and self.blocking_dependency() is None
        )

    # Execution

    def execute(self) -> bool | None:
        raise NotImplementedError

    def run(self) -> TaskResult:
        """Execute the body once and record the terminal result."""
        self._transition(TaskState.RUNNING)
        logger.debug(f"running {self.name}")
        start = time.monotonic()

        error = None
        try:
            outcome = self.execute()
        except KeyboardInterrupt:
            self._finish(TaskState.FAILURE, "interrupted", start)
            raise
        except Exception as e:
            state = TaskState.FAILURE
            error = str(e) or type(e).__name__
        except BaseException as e:
            # SystemExit and friends still leave a terminal task behind
            self._finish(TaskState.FAILURE, type(e).__name__, start)
            raise
        else:
            if outcome is False:
                state = TaskState.FAILURE
                error = "task reported failure"
            else:
                state = TaskState.SUCCESS

        self._finish(state, error, start)

        if state is TaskState.SUCCESS:
            logger.debug(f"success {self.name}")
        else:
            logger.warning(f"{self.name} failed: {error}")
        return self.result

    def _finish(self, state: TaskState, error: str | None, start: float) -> None:
        try:
            output = [str(line) for line in self.output]
        except TypeError:
            logger.warning(f"{self.name}: output is not a list of lines: {self.output!r}")
            output = []
        self.result = TaskResult(
            state=state,
            error=error,
            duration_seconds=time.monotonic() - start,
            output=output,
        )
        self._transition(state)

    def skip(self, reason: str) -> TaskResult:
        """Mark the task skipped without running it."""
        self.result = TaskResult(state=TaskState.SKIPPED, error=reason)
        self._transition(TaskState.SKIPPED)
        logger.debug(f"skipped {self.name}: {reason}")
        return self.result

    def _transition(self, state: TaskState) -> None:
        with self._lock:
            if state not in _TRANSITIONS.get(self.state, set()):
                raise IllegalTransitionError(f"{self.name}: {self.state.value} -> {state.value}")
            self.state = state


class CallableTask(Task):
    """A task whose body is a plain function."""

    def __init__(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any):
        super().__init__(name)
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def execute(self) -> bool | None:
        return self.func(*self.args, **self.kwargs)
