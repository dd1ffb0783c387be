"""
Run plan - builds the task graph for one run against a device.

The graph for N actions looks like:

    prepare device
      -> dex/push for every classpath jar
      -> per action: dex -> push, prepare user dir
           -> run (after all installs) -> retrieve -> clean
    -> shutdown

Retrieve, clean and shutdown hang off after_completion edges so they still
happen when a run fails.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .cache import ContentCache, DeviceCacheStore, HostCacheStore
from .config import ActionConfig, AppConfig
from .model import Action, DeviceLayout, basename_of_jar
from .profiler import DisabledProfiler, Profiler, create_profiler
from .remote import AdbTransport, RemoteShell, Transport
from .tasks import (
    DeleteTargetFilesTask,
    DexTask,
    PrepareDeviceTask,
    PrepareUserDirTask,
    PushTask,
    RetrieveFilesTask,
    RunActionTask,
    Task,
    TaskGraph,
    retrieved_files_filter,
)
from .tasks.builtin import Transformer

logger = logging.getLogger(__name__)

# Mixed into every dex cache key; bump when the dx invocation changes
DEX_PARAMS = ("dx", "--core-library")

CommandBuilder = Callable[["RunContext", Action, Sequence[str]], list[str]]


def default_command_builder(context: RunContext, action: Action, classpath: Sequence[str]) -> list[str]:
    """
    Minimal VM command line for an action.

    Runs in the action's user dir with the harness dirs as home, tmp and
    dalvik-cache, followed by any profiler arguments.
    """
    layout = context.layout
    return [
        "cd",
        layout.user_dir(action),
        "&&",
        f"ANDROID_DATA={layout.device_dir}",
        "dalvikvm",
        "-classpath",
        ":".join(classpath),
        f"-Duser.home={layout.user_home}",
        f"-Duser.dir={layout.user_dir(action)}",
        f"-Djava.io.tmpdir={layout.temp_dir}",
        *context.config.run.vm_args,
        context.config.run.runner_class,
        action.entry_point,
        *context.profiler.target_args(),
    ]


@dataclass
class RunContext:
    """Everything one run owns: the shell, its caches and where files go."""

    shell: RemoteShell
    config: AppConfig
    dex: Transformer
    host_cache: ContentCache | None = None
    device_cache: ContentCache | None = None
    profiler: Profiler = field(default_factory=DisabledProfiler)
    command_builder: CommandBuilder = default_command_builder

    @property
    def layout(self) -> DeviceLayout:
        return DeviceLayout(self.config.device.device_dir)

    @property
    def caches(self) -> list[ContentCache]:
        return [cache for cache in (self.host_cache, self.device_cache) if cache is not None]

    @classmethod
    def from_config(cls, config: AppConfig, dex: Transformer, transport: Transport | None = None) -> RunContext:
        """Wire a run from configuration, talking to the device through adb unless a transport is given."""
        if transport is None:
            transport = AdbTransport(adb=config.paths.adb or "adb", serial=config.device.serial)
        shell = RemoteShell(transport)

        host_cache = device_cache = None
        if config.cache.enabled:
            host_cache = ContentCache("dex", HostCacheStore(config.cache.host_dir))
            device_cache = ContentCache("device-dex", DeviceCacheStore(shell, config.cache.device_dir))

        profiler = create_profiler(
            config.profiler.mode,
            depth=config.profiler.depth,
            interval_ms=config.profiler.interval_ms,
            thread_group=config.profiler.thread_group,
            file_name=config.profiler.file_name,
        )
        return cls(
            shell=shell,
            config=config,
            dex=dex,
            host_cache=host_cache,
            device_cache=device_cache,
            profiler=profiler,
        )


def action_timeout(config: AppConfig, action: Action) -> float:
    timeout = config.run.timeout_seconds
    if action.large:
        timeout *= config.run.large_timeout_multiplier
    return timeout


def actions_from_jars(jars: Sequence[Path], settings: Mapping[str, ActionConfig] | None = None) -> list[Action]:
    """
    One action per jar, named after it.

    Args:
        jars: Action jars, in run order
        settings: Per-action main class, resources and size, keyed by action name
    """
    actions = []
    for jar in jars:
        name = basename_of_jar(jar)
        extra = (settings or {}).get(name) or ActionConfig()
        actions.append(
            Action(
                name=name,
                jar=jar,
                main_class=extra.main_class,
                resources_dir=extra.resources_dir,
                large=extra.large,
            )
        )
    return actions


def check_unique_names(actions: Sequence[Action], classpath: Sequence[Path] = ()) -> None:
    """
    Reject jars that would be installed under the same name.

    Raises:
        ValueError: naming both jars
    """
    seen: dict[str, Path] = {}
    named = [(basename_of_jar(jar), jar) for jar in classpath] + [(action.name, action.jar) for action in actions]
    for name, jar in named:
        if name in seen:
            raise ValueError(f"{seen[name]} and {jar} would both be installed as {name}.jar")
        seen[name] = jar


def create_run_graph(context: RunContext, actions: Sequence[Action], classpath: Sequence[Path] = ()) -> TaskGraph:
    """
    Build the task graph for one run.

    Args:
        context: Collaborators for the run
        actions: Actions to install and execute, in order
        classpath: Jars every action needs installed first

    Returns:
        A validated TaskGraph, not yet executed

    Raises:
        ValueError: if two jars map to the same action or classpath name
    """
    check_unique_names(actions, classpath)
    config = context.config
    layout = context.layout
    shell = context.shell
    local_temp = config.paths.local_temp
    graph = TaskGraph("run", f"{len(actions)} action(s) on {config.device.serial or 'default device'}")

    prepare = PrepareDeviceTask(
        shell,
        layout,
        boot_timeout=config.device.boot_timeout,
        clean_before=config.run.clean_before,
        remount=config.device.remount,
        first_monitor_port=config.device.first_monitor_port,
        num_runners=1 if config.run.sequential else config.run.max_concurrency,
        debug_port=config.device.debug_port,
    )
    graph.add_task(prepare)

    installs: list[Task] = []
    device_classpath: list[str] = []
    for jar in classpath:
        name = basename_of_jar(jar)
        output = local_temp / "classpath" / f"{name}.jar"
        dex = DexTask(name, [jar], output, context.dex, context.host_cache, DEX_PARAMS)
        push = PushTask(shell, dex.output_path, layout.dex_file(name), context.device_cache)
        push.after_success(dex, prepare)
        graph.add_tasks([dex, push])
        installs.append(push)
        device_classpath.append(layout.dex_file(name))

    accept = retrieved_files_filter([f for f in [context.profiler.output_file()] if f])
    cleans: list[Task] = []
    for action in actions:
        user_dir = layout.user_dir(action)
        dex = DexTask(
            action.name,
            [action.jar],
            local_temp / "actions" / f"{action.name}.jar",
            context.dex,
            context.host_cache,
            DEX_PARAMS,
        )
        push = PushTask(shell, dex.output_path, layout.dex_file(action.name), context.device_cache).after_success(
            dex, prepare
        )
        prepare_user_dir = PrepareUserDirTask(shell, user_dir, action.resources_dir).after_success(prepare)

        argv = context.command_builder(context, action, [*device_classpath, layout.dex_file(action.name)])
        run = RunActionTask(shell, action.name, argv, action_timeout(config, action)).after_success(
            push, prepare_user_dir, *installs
        )
        retrieve = (
            RetrieveFilesTask(shell, user_dir, config.paths.results_dir / action.name, accept)
            .after_success(prepare_user_dir)
            .after_completion(run)
        )
        graph.add_tasks([dex, push, prepare_user_dir, run, retrieve])

        if config.run.clean_after:
            clean = DeleteTargetFilesTask(shell, user_dir, name=f"clean {action.name}").after_completion(retrieve)
            graph.add_task(clean)
            cleans.append(clean)

    if config.run.clean_after:
        shutdown = DeleteTargetFilesTask(shell, layout.runner_dir, name="shutdown")
        shutdown.after_completion(*(cleans or [prepare]))
        graph.add_task(shutdown)

    graph.validate()
    logger.debug(f"Planned {len(graph)} tasks for {len(actions)} action(s)")
    return graph
