"""Shared pytest fixtures for device-test-harness tests."""

import os
import shutil
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from device_harness.config import AppConfig
from device_harness.constants import EXIT_MARKER
from device_harness.remote import RemoteShell


class FakeAdb:
    """
    Transport that emulates adb against a local directory standing in for the device.

    Device path /sdcard/x maps to <root>/sdcard/x. Output lines mimic what
    adb shell prints for the commands the harness issues. Every call is
    recorded in `calls`.
    """

    def __init__(self, root: Path):
        self.root = root
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()
        # Handles any shell command not emulated below
        self.run_handler = lambda argv: [f"{EXIT_MARKER}0"]

    def local(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def shell_calls(self, command: str) -> list[list[str]]:
        return [call for call in self.calls if call[:2] == ["shell", command]]

    def execute(self, argv, timeout=None):
        argv = list(argv)
        with self._lock:
            self.calls.append(argv)

        if argv[0] == "shell":
            return self._shell(argv[1:])
        if argv[0] == "push":
            return self._push(argv[1], argv[2])
        if argv[0] == "pull":
            shutil.copy2(self.local(argv[1]), argv[2])
            return []
        return []

    def _push(self, local: str, remote: str):
        target = self.local(remote)
        if Path(local).is_dir():
            shutil.copytree(local, target, dirs_exist_ok=True)
        else:
            shutil.copy2(local, target)
        return []

    def _shell(self, args):
        command = args[0]
        if command == "mkdir":
            path = args[1]
            try:
                self.local(path).mkdir()
            except FileExistsError:
                return [f"mkdir failed for {path}, File exists"]
            except FileNotFoundError:
                return [f"mkdir failed for {path}, No such file or directory"]
            return []

        if command == "ls":
            path = args[1]
            target = self.local(path)
            if not target.exists():
                return [f"{path}: No such file or directory"]
            if target.is_file():
                return [path]
            return sorted(p.name for p in target.iterdir())

        if command == "rm":
            path = args[-1]
            target = self.local(path)
            if not target.exists():
                return [f"rm failed for {path}, No such file or directory"]
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink()
            return []

        if command == "mv":
            os.replace(self.local(args[1]), self.local(args[2]))
            return []

        if command == "cat" and len(args) == 4 and args[2] == ">":
            source = self.local(args[1])
            if not source.exists():
                return [f"{args[1]}: No such file or directory"]
            shutil.copyfile(source, self.local(args[3]))
            return []

        if command == "id":
            return ["uid=2000(shell) gid=2000(shell) groups=1003(graphics),1004(input)"]

        return self.run_handler(args)


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def device_root(tmp_path):
    """A fake device filesystem with a mounted, non-empty /sdcard."""
    root = tmp_path / "device"
    (root / "sdcard" / "DCIM").mkdir(parents=True)
    return root


@pytest.fixture
def fake_adb(device_root):
    return FakeAdb(device_root)


@pytest.fixture
def shell(fake_adb):
    """RemoteShell over the fake device that never really sleeps."""
    return RemoteShell(fake_adb, poll_interval=0.01, sleep=lambda _seconds: None)


@pytest.fixture
def fake_dex():
    """Transformer standing in for dx: output is a marker plus the input bytes."""
    calls = []

    def dex(inputs, output):
        calls.append([Path(p) for p in inputs])
        output.write_bytes(b"dex\n" + b"".join(Path(p).read_bytes() for p in inputs))

    dex.calls = calls
    return dex


@pytest.fixture
def app_config(tmp_path):
    """Config pointing every local path into tmp_path."""
    config = AppConfig()
    config.paths.results_dir = tmp_path / "results"
    config.paths.local_temp = tmp_path / "local"
    config.cache.host_dir = tmp_path / "host-cache"
    config.device.boot_timeout = 5
    config.run.max_concurrency = 2
    return config


@pytest.fixture
def action_jars(tmp_path):
    """Two small action jars."""
    jars_dir = tmp_path / "jars"
    jars_dir.mkdir()
    first = jars_dir / "alpha.jar"
    second = jars_dir / "beta.jar"
    first.write_bytes(b"alpha classes")
    second.write_bytes(b"beta classes")
    return [first, second]


@pytest.fixture
def sample_config(tmp_path):
    """Create a sample config file."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    config_file = config_dir / "config.yaml"
    config_file.write_text(
        f"""
paths:
  results_dir: "{tmp_path / "results"}"
  local_temp: "{tmp_path / "local"}"

device:
  serial: "emulator-5554"
  boot_timeout: 120

run:
  max_concurrency: 8
  timeout_seconds: 30
  clean_after: false

cache:
  host_dir: "{tmp_path / "host-cache"}"

profiler:
  mode: "sampling"
  depth: 6
"""
    )

    return config_file


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for tests that call external tools."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock_run


@pytest.fixture(name="_mock_shutil_which")
def mock_shutil_which():
    """Mock shutil.which to simulate available tools."""

    def which_side_effect(tool):
        available = {"adb", "dx"}
        return f"/usr/bin/{tool}" if tool in available else None

    with patch("shutil.which", side_effect=which_side_effect) as mock:
        yield mock
