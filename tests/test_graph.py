"""Tests for TaskGraph."""

import pytest

from device_harness.errors import CycleError
from device_harness.tasks import CallableTask, TaskGraph, TaskState


def noop(name):
    return CallableTask(name, lambda: None)


class TestTaskGraphBuild:
    """Tests for adding tasks and edges."""

    def test_insertion_order(self):
        graph = TaskGraph("g")
        graph.add_tasks([noop("b"), noop("a"), noop("c")])
        assert [t.name for t in graph] == ["b", "a", "c"]
        assert len(graph) == 3

    def test_adding_same_task_twice_is_noop(self):
        graph = TaskGraph("g")
        task = noop("a")
        graph.add_task(task)
        graph.add_task(task)
        assert len(graph) == 1

    def test_duplicate_name_rejected(self):
        graph = TaskGraph("g")
        graph.add_task(noop("a"))
        with pytest.raises(ValueError, match="Duplicate task name"):
            graph.add_task(noop("a"))

    def test_add_edge_adds_both_tasks(self):
        graph = TaskGraph("g")
        a, b = noop("a"), noop("b")
        graph.add_edge(b, a)
        assert a in graph
        assert b in graph
        assert graph.edges() == [("b", "a", "success")]

    def test_completion_edge_kind(self):
        graph = TaskGraph("g")
        a, b = noop("a"), noop("b")
        graph.add_edge(b, a, on_success=False)
        assert graph.edges() == [("b", "a", "completion")]

    def test_add_edge_rejects_cycle(self):
        graph = TaskGraph("g")
        a, b = noop("a"), noop("b")
        graph.add_edge(b, a)
        with pytest.raises(CycleError) as exc_info:
            graph.add_edge(a, b)
        assert "a" in exc_info.value.cycle
        assert "b" in exc_info.value.cycle

    def test_get_task(self):
        graph = TaskGraph("g")
        a = graph.add_task(noop("a"))
        assert graph.get_task("a") is a
        assert graph.get_task("missing") is None


class TestTaskGraphValidate:
    """Tests for TaskGraph.validate."""

    def test_valid_graph(self):
        graph = TaskGraph("g")
        a = noop("a")
        b = noop("b").after_success(a)
        c = noop("c").after_completion(a, b)
        graph.add_tasks([c, b, a])
        graph.validate()

    def test_dependency_outside_graph(self):
        graph = TaskGraph("g")
        outside = noop("outside")
        graph.add_task(noop("inside").after_success(outside))
        with pytest.raises(ValueError, match="not in graph"):
            graph.validate()

    def test_cycle_detected(self):
        graph = TaskGraph("g")
        a, b = noop("a"), noop("b")
        # Bypass incremental checks to build a cycle
        a.success_dependencies.append(b)
        b.success_dependencies.append(a)
        graph.add_tasks([a, b])
        with pytest.raises(CycleError):
            graph.validate()


class TestTaskGraphQueries:
    """Tests for state queries."""

    def test_pending_and_complete(self):
        graph = TaskGraph("g")
        a, b = noop("a"), noop("b")
        graph.add_tasks([a, b])
        assert graph.get_pending_tasks() == [a, b]
        assert not graph.is_complete()

        a.run()
        b.skip("test")
        assert graph.get_pending_tasks() == []
        assert graph.is_complete()

    def test_counts_and_non_success(self):
        graph = TaskGraph("g")
        ok = noop("ok")
        bad = CallableTask("bad", lambda: False)
        skipped = noop("skipped")
        graph.add_tasks([ok, bad, skipped])
        ok.run()
        bad.run()
        skipped.skip("bad failure")

        assert graph.count(TaskState.SUCCESS) == 1
        assert graph.count(TaskState.FAILURE) == 1
        assert graph.count(TaskState.SKIPPED) == 1
        assert graph.non_success_tasks() == [bad, skipped]
