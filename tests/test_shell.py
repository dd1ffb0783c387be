"""Tests for RemoteShell - directory creation, listing and bounded waiting."""

import threading

import pytest

from device_harness.errors import NotFound, Timeout, TransportFailure
from device_harness.remote import RemotePathCache, RemoteShell, exact_file, non_empty_directory


class ScriptedTransport:
    """Transport returning canned output per argv, recording each call."""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default or []
        self.calls = []

    def execute(self, argv, timeout=None):
        self.calls.append((list(argv), timeout))
        response = self.responses.get(tuple(argv), self.default)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return list(response)


class FakeClock:
    """Monotonic clock advanced only by sleep() and explicit ticks."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class TestPredicates:
    def test_non_empty_directory(self):
        assert non_empty_directory({"/sdcard/a"})
        assert not non_empty_directory(set())

    def test_exact_file(self):
        predicate = exact_file("/sdcard/x")
        assert predicate({"/sdcard/x"})
        assert not predicate(set())
        assert not predicate({"/sdcard/x", "/sdcard/y"})


class TestMkdir:
    """Tests for RemoteShell.mkdir."""

    def test_creates_and_caches(self, shell, fake_adb, device_root):
        shell.mkdir("/sdcard/a")
        assert (device_root / "sdcard" / "a").is_dir()
        assert "/sdcard/a" in shell.path_cache

    def test_cached_path_issues_no_command(self, shell, fake_adb):
        shell.path_cache.add("/sdcard/a")
        shell.mkdir("/sdcard/a")
        assert fake_adb.calls == []

    def test_file_exists_is_success(self, shell, device_root):
        (device_root / "sdcard" / "a").mkdir()
        shell.mkdir("/sdcard/a")
        assert "/sdcard/a" in shell.path_cache

    def test_missing_parent_is_not_found(self, shell):
        with pytest.raises(NotFound):
            shell.mkdir("/sdcard/missing/child")
        assert "/sdcard/missing/child" not in shell.path_cache

    def test_other_output_is_transport_failure(self):
        transport = ScriptedTransport(default=["mkdir failed for /x, Read-only file system"])
        shell = RemoteShell(transport)
        with pytest.raises(TransportFailure) as exc_info:
            shell.mkdir("/x")
        assert exc_info.value.argv == ["shell", "mkdir", "/x"]
        assert "/x" not in shell.path_cache


class TestEnsureDirectory:
    """Tests for RemoteShell.ensure_directory."""

    def test_creates_parents_first(self, shell, fake_adb, device_root):
        shell.ensure_directory("/sdcard/a/b/c")
        assert (device_root / "sdcard" / "a" / "b" / "c").is_dir()
        assert [call[2] for call in fake_adb.shell_calls("mkdir")] == ["/sdcard/a", "/sdcard/a/b", "/sdcard/a/b/c"]

    def test_stops_at_cached_ancestor(self):
        """/a known to exist: exactly two mkdirs, /a/b before /a/b/c."""
        transport = ScriptedTransport()
        cache = RemotePathCache()
        cache.add("/a")
        shell = RemoteShell(transport, path_cache=cache)

        shell.ensure_directory("/a/b/c")

        assert [argv for argv, _ in transport.calls] == [
            ["shell", "mkdir", "/a/b"],
            ["shell", "mkdir", "/a/b/c"],
        ]
        assert "/a/b/c" in cache

    def test_never_creates_root_sentinels(self):
        transport = ScriptedTransport()
        shell = RemoteShell(transport)
        shell.ensure_directory("/sdcard/x")
        shell.ensure_directory("/top")
        assert [argv[2] for argv, _ in transport.calls] == ["/sdcard/x", "/top"]

    def test_second_call_is_free(self, shell, fake_adb):
        shell.ensure_directory("/sdcard/a/b")
        count = len(fake_adb.calls)
        shell.ensure_directory("/sdcard/a/b")
        shell.ensure_directory("/sdcard/a")
        assert len(fake_adb.calls) == count

    def test_reset_forgets_directories(self, shell, fake_adb):
        shell.ensure_directory("/sdcard/a")
        shell.path_cache.reset()
        assert len(shell.path_cache) == 0

        shell.ensure_directory("/sdcard/a")
        assert len(fake_adb.shell_calls("mkdir")) == 2

    def test_existing_directories_are_fine(self, shell, device_root):
        (device_root / "sdcard" / "a" / "b").mkdir(parents=True)
        shell.ensure_directory("/sdcard/a/b/c")
        assert (device_root / "sdcard" / "a" / "b" / "c").is_dir()

    def test_concurrent_overlapping_calls(self, shell, device_root):
        errors = []

        def worker(leaf):
            try:
                shell.ensure_directory(f"/sdcard/x/y/{leaf}")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(f"leaf{i}",)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        for i in range(8):
            assert (device_root / "sdcard" / "x" / "y" / f"leaf{i}").is_dir()


class TestList:
    """Tests for RemoteShell.list."""

    def test_directory_entries_are_absolute(self, shell, device_root):
        (device_root / "sdcard" / "d").mkdir()
        (device_root / "sdcard" / "d" / "one.xml").write_text("1")
        (device_root / "sdcard" / "d" / "two").mkdir()
        assert shell.list("/sdcard/d") == {"/sdcard/d/one.xml", "/sdcard/d/two"}

    def test_empty_directory(self, shell, device_root):
        (device_root / "sdcard" / "empty").mkdir()
        assert shell.list("/sdcard/empty") == set()

    def test_missing_raises_not_found(self, shell):
        with pytest.raises(NotFound) as exc_info:
            shell.list("/sdcard/nope")
        assert exc_info.value.path == "/sdcard/nope"

    def test_file_lists_itself(self, shell, device_root):
        (device_root / "sdcard" / "f.txt").write_text("x")
        assert shell.list("/sdcard/f.txt") == {"/sdcard/f.txt"}


class TestRemove:
    """Tests for RemoteShell.remove."""

    def test_removes_tree(self, shell, device_root):
        (device_root / "sdcard" / "t" / "u").mkdir(parents=True)
        assert shell.remove("/sdcard/t") is True
        assert not (device_root / "sdcard" / "t").exists()

    def test_absent_is_not_an_error(self, shell):
        assert shell.remove("/sdcard/never") is False

    def test_does_not_invalidate_path_cache(self, shell):
        shell.ensure_directory("/sdcard/t")
        shell.remove("/sdcard/t")
        assert "/sdcard/t" in shell.path_cache

    def test_other_output_raises(self):
        shell = RemoteShell(ScriptedTransport(default=["rm failed for /x, Permission denied"]))
        with pytest.raises(TransportFailure):
            shell.remove("/x")


class TestFiles:
    """Tests for push, pull, move and copy."""

    def test_push_and_pull(self, shell, device_root, tmp_path):
        local = tmp_path / "in.txt"
        local.write_text("payload")
        shell.push(local, "/sdcard/in.txt")
        assert (device_root / "sdcard" / "in.txt").read_text() == "payload"

        pulled = tmp_path / "out" / "nested" / "in.txt"
        shell.pull("/sdcard/in.txt", pulled)
        assert pulled.read_text() == "payload"

    def test_copy_and_move(self, shell, device_root):
        (device_root / "sdcard" / "a").write_text("A")
        shell.copy("/sdcard/a", "/sdcard/b")
        shell.move("/sdcard/b", "/sdcard/c")
        assert (device_root / "sdcard" / "a").read_text() == "A"
        assert (device_root / "sdcard" / "c").read_text() == "A"
        assert not (device_root / "sdcard" / "b").exists()

    def test_copy_missing_source(self, shell):
        with pytest.raises(NotFound):
            shell.copy("/sdcard/missing", "/sdcard/b")


class TestRunWithTimeout:
    """Tests for RemoteShell.run_with_timeout."""

    def test_returns_output_and_passes_timeout(self):
        transport = ScriptedTransport(default=["hello"])
        shell = RemoteShell(transport)
        assert shell.run_with_timeout(["echo", "hello"], 5) == ["hello"]
        assert transport.calls == [(["shell", "echo", "hello"], 5)]

    def test_zero_timeout_waits_forever(self):
        transport = ScriptedTransport()
        RemoteShell(transport).run_with_timeout(["true"], 0)
        assert transport.calls[0][1] is None

    def test_timeout_propagates(self):
        transport = ScriptedTransport(default=Timeout("adb shell sleep 100", 5.0, 5))
        with pytest.raises(Timeout) as exc_info:
            RemoteShell(transport).run_with_timeout(["sleep", "100"], 5)
        assert exc_info.value.timeout == 5


class TestWaitUntil:
    """Tests for RemoteShell.wait_until."""

    def test_ready_immediately(self, shell, device_root):
        assert shell.wait_for_non_empty_directory("/sdcard", 10) == {"/sdcard/DCIM"}

    def test_not_found_counts_as_not_ready(self):
        clock = FakeClock()
        attempts = iter([["/data/f: No such file or directory"], ["/data/f"]])
        transport = ScriptedTransport(default=lambda: next(attempts))
        shell = RemoteShell(transport, clock=clock, sleep=clock.sleep)

        assert shell.wait_for_file("/data/f", 10) == {"/data/f"}
        assert len(transport.calls) == 2

    def test_timeout_has_path_and_no_calls_after_deadline(self):
        clock = FakeClock()
        call_times = []

        def empty():
            call_times.append(clock.now)
            return []

        transport = ScriptedTransport(default=empty)
        shell = RemoteShell(transport, poll_interval=1.0, clock=clock, sleep=clock.sleep)

        with pytest.raises(Timeout) as exc_info:
            shell.wait_for_non_empty_directory("/sdcard", 3.5)

        deadline = 100.0 + 3.5
        assert call_times
        assert all(t < deadline for t in call_times)
        assert exc_info.value.target == "/sdcard"
        assert exc_info.value.elapsed >= 3.5
        assert "/sdcard" in str(exc_info.value)

    def test_each_poll_bounded_by_remaining_time(self):
        clock = FakeClock()
        transport = ScriptedTransport(default=[])
        shell = RemoteShell(transport, poll_interval=1.0, clock=clock, sleep=clock.sleep)

        with pytest.raises(Timeout):
            shell.wait_for_non_empty_directory("/sdcard", 2.5)

        timeouts = [timeout for _, timeout in transport.calls]
        assert timeouts[0] == 2.5
        assert all(0 < t <= 2.5 for t in timeouts)
        assert timeouts == sorted(timeouts, reverse=True)

    def test_listing_timeout_becomes_wait_timeout(self):
        clock = FakeClock()
        transport = ScriptedTransport(default=Timeout("adb shell ls /sdcard", 2.0, 2.0))
        shell = RemoteShell(transport, clock=clock, sleep=clock.sleep)
        with pytest.raises(Timeout) as exc_info:
            shell.wait_for_non_empty_directory("/sdcard", 2.0)
        assert exc_info.value.target == "/sdcard"


class TestDeviceHelpers:
    """Tests for device management helpers."""

    def test_forward_and_wait_for_device(self, shell, fake_adb):
        shell.wait_for_device()
        shell.remount()
        shell.forward_tcp(8787, 8788)
        assert fake_adb.calls == [["wait-for-device"], ["remount"], ["forward", "tcp:8787", "tcp:8788"]]

    def test_install_and_uninstall(self, shell, fake_adb):
        shell.install("/tmp/app.apk")
        shell.uninstall("com.example")
        assert fake_adb.calls == [["install", "-r", "/tmp/app.apk"], ["uninstall", "com.example"]]

    def test_device_user_name(self, shell):
        assert shell.device_user_name() == "shell"

    def test_device_user_name_defaults_to_root(self):
        shell = RemoteShell(ScriptedTransport(default=["garbage"]))
        assert shell.device_user_name() == "root"
