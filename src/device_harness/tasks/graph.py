"""Task graph - the full set of tasks for one run."""

from ..errors import CycleError
from .task import Task, TaskState


class TaskGraph:
    """
    An insertion-ordered collection of tasks and their dependency edges.

    The graph is data: it does not execute anything, that is the runner's job.
    Insertion order is the tie-break when several tasks are ready at once.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.tasks: list[Task] = []
        self._by_name: dict[str, Task] = {}
        self.executed = False

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    def __contains__(self, task: Task) -> bool:
        return self._by_name.get(task.name) is task

    def add_task(self, task: Task) -> Task:
        """Add a task to the graph. Adding the same task twice is a no-op."""
        existing = self._by_name.get(task.name)
        if existing is task:
            return task
        if existing is not None:
            raise ValueError(f"Duplicate task name in graph {self.name}: {task.name}")
        self.tasks.append(task)
        self._by_name[task.name] = task
        return task

    def add_tasks(self, tasks) -> None:
        for task in tasks:
            self.add_task(task)

    def add_edge(self, task: Task, dependency: Task, on_success: bool = True) -> None:
        """
        Make task depend on dependency, adding either to the graph if needed.

        Raises:
            CycleError: if dependency already depends on task
        """
        if on_success:
            task.after_success(dependency)
        else:
            task.after_completion(dependency)
        self.add_task(dependency)
        self.add_task(task)

    def get_task(self, name: str) -> Task | None:
        """Get a task by name."""
        return self._by_name.get(name)

    def edges(self) -> list[tuple[str, str, str]]:
        """(task, dependency, kind) triples in insertion order."""
        result = []
        for task in self.tasks:
            for dependency in task.success_dependencies:
                result.append((task.name, dependency.name, "success"))
            for dependency in task.completion_dependencies:
                result.append((task.name, dependency.name, "completion"))
        return result

    def validate(self) -> None:
        """
        Check the graph before execution.

        Raises:
            ValueError: if a task depends on a task outside the graph
            CycleError: if the dependency relation has a cycle
        """
        for task in self.tasks:
            for dependency in task.dependencies:
                if dependency not in self:
                    raise ValueError(f"{task.name} depends on {dependency.name}, which is not in graph {self.name}")

        visiting: list[Task] = []
        done: set[int] = set()

        def visit(task: Task) -> None:
            if id(task) in done:
                return
            if task in visiting:
                start = visiting.index(task)
                raise CycleError([t.name for t in visiting[start:]] + [task.name])
            visiting.append(task)
            for dependency in task.dependencies:
                visit(dependency)
            visiting.pop()
            done.add(id(task))

        for task in self.tasks:
            visit(task)

    def get_pending_tasks(self) -> list[Task]:
        """Get all pending tasks."""
        return [t for t in self.tasks if t.state is TaskState.PENDING]

    def is_complete(self) -> bool:
        """Check if every task reached a terminal state."""
        return all(t.state.is_terminal for t in self.tasks)

    def non_success_tasks(self) -> list[Task]:
        return [t for t in self.tasks if t.state is not TaskState.SUCCESS]

    def count(self, state: TaskState) -> int:
        return sum(1 for t in self.tasks if t.state is state)
