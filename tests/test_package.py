"""Tests that every module of the package imports cleanly."""

import importlib

import pytest

import device_harness

MODULES = [
    "device_harness.cache",
    "device_harness.cache.content",
    "device_harness.cache.stores",
    "device_harness.cli",
    "device_harness.config",
    "device_harness.constants",
    "device_harness.errors",
    "device_harness.manifest",
    "device_harness.model",
    "device_harness.plan",
    "device_harness.profiler",
    "device_harness.remote",
    "device_harness.remote.path_cache",
    "device_harness.remote.shell",
    "device_harness.remote.transport",
    "device_harness.runners",
    "device_harness.runners.base",
    "device_harness.runners.pool",
    "device_harness.runners.sequential",
    "device_harness.tasks",
    "device_harness.tasks.builtin",
    "device_harness.tasks.graph",
    "device_harness.tasks.task",
    "device_harness.toolchain",
]


class TestPackage:
    def test_version(self):
        assert device_harness.__version__ == "0.1.0"

    @pytest.mark.parametrize("module_name", MODULES)
    def test_module_imports(self, module_name):
        assert importlib.import_module(module_name) is not None

    def test_remote_shell_annotations_resolve(self):
        """The list() method must not shadow the builtin in annotations."""
        from device_harness.remote import RemoteShell

        assert RemoteShell.run_with_timeout.__annotations__["return"] == "list[str]"
