"""
Run record persisted next to the results.

Manifest is stored in the RESULTS directory (.dth/manifest.json) to:
- Keep the record of the last run with the files it produced
- Let `dth status` report on a run after the process exited
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path

from .tasks import Task

logger = logging.getLogger(__name__)


@dataclass
class TaskRecord:
    """Terminal state of a single task."""

    name: str
    state: str  # "success", "failure", "skipped" (or "pending" if never reached)
    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TaskRecord:
        return cls(**data)

    @classmethod
    def from_task(cls, task: Task) -> TaskRecord:
        result = task.result
        return cls(
            name=task.name,
            state=task.state.value,
            error=result.error if result else None,
            duration_seconds=round(result.duration_seconds, 3) if result else 0.0,
        )


@dataclass
class ManifestData:
    """Full manifest data structure."""

    graph_name: str
    results_path: str
    started_at: str
    finished_at: str
    version: str = "1.0"
    success: bool = False
    aborted: bool = False
    tasks: dict[str, TaskRecord] = field(default_factory=dict)
    stats: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "graph_name": self.graph_name,
            "results_path": self.results_path,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "version": self.version,
            "success": self.success,
            "aborted": self.aborted,
            "tasks": {k: v.to_dict() for k, v in self.tasks.items()},
            "stats": self.stats,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ManifestData:
        tasks = {k: TaskRecord.from_dict(v) for k, v in data.get("tasks", {}).items()}
        return cls(
            graph_name=data.get("graph_name", ""),
            results_path=data.get("results_path", ""),
            started_at=data.get("started_at", ""),
            finished_at=data.get("finished_at", ""),
            version=data.get("version", "1.0"),
            success=data.get("success", False),
            aborted=data.get("aborted", False),
            tasks=tasks,
            stats=data.get("stats", {}),
        )


class RunManifest:
    """
    Record of the last run.

    Stored in RESULTS directory: <results>/.dth/manifest.json
    """

    STATE_DIR = ".dth"
    MANIFEST_FILE = "manifest.json"

    def __init__(self, results_path: Path):
        self.results_path = results_path
        self.state_dir = results_path / self.STATE_DIR
        self.manifest_path = self.state_dir / self.MANIFEST_FILE
        self.data: ManifestData | None = None

    def ensure_dir(self):
        """Create .dth directory if it doesn't exist."""
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.manifest_path.exists()

    def load(self) -> ManifestData | None:
        """Load the manifest from disk, or None if no run was recorded."""
        if not self.manifest_path.exists():
            self.data = None
            return None
        with open(self.manifest_path) as f:
            self.data = ManifestData.from_dict(json.load(f))
        return self.data

    def start(self, graph_name: str) -> ManifestData:
        """Begin a fresh record, discarding the previous run."""
        now = datetime.now().isoformat()
        self.data = ManifestData(
            graph_name=graph_name,
            results_path=str(self.results_path),
            started_at=now,
            finished_at=now,
        )
        return self.data

    def record_tasks(self, tasks: list[Task]):
        """Record the current state of every task."""
        if self.data is None:
            self.start("")
        for task in tasks:
            self.data.tasks[task.name] = TaskRecord.from_task(task)

    def finish(self, success: bool, aborted: bool = False, cache_stats: dict[str, int] | None = None):
        if self.data is None:
            return
        self.data.success = success
        self.data.aborted = aborted
        self.data.stats = {
            "total_tasks": len(self.data.tasks),
            "succeeded": self._count("success"),
            "failed": self._count("failure"),
            "skipped": self._count("skipped"),
            **(cache_stats or {}),
        }

    def save(self):
        """Persist manifest to disk."""
        if self.data is None:
            return

        self.ensure_dir()
        self.data.finished_at = datetime.now().isoformat()

        with open(self.manifest_path, "w") as f:
            json.dump(self.data.to_dict(), f, indent=2)
        logger.debug(f"Wrote run manifest to {self.manifest_path}")

    def non_success(self) -> list[TaskRecord]:
        """Every recorded task that did not succeed, in recorded order."""
        if self.data is None:
            return []
        return [record for record in self.data.tasks.values() if record.state != "success"]

    def get_summary(self) -> dict:
        """Get run summary statistics."""
        if self.data is None:
            return {}

        return {
            "graph": self.data.graph_name,
            "results": self.data.results_path,
            "success": self.data.success,
            "aborted": self.data.aborted,
            "total_tasks": len(self.data.tasks),
            "succeeded": self._count("success"),
            "failed": self._count("failure"),
            "skipped": self._count("skipped"),
            "started": self.data.started_at,
            "finished": self.data.finished_at,
        }

    def _count(self, state: str) -> int:
        if self.data is None:
            return 0
        return sum(1 for record in self.data.tasks.values() if record.state == state)
