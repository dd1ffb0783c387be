"""
CLI module - Command line interface for Device Test Harness

Entry point for the `dth` command using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .cache import HostCacheStore
from .config import AppConfig, load_config, validate_config
from .errors import ConfigError, ToolchainError
from .manifest import RunManifest
from .plan import RunContext, actions_from_jars, create_run_graph
from .profiler import ProfilerMode
from .remote import AdbTransport
from .runners import PoolRunner, RunnerCallbacks, RunnerResult, SequentialRunner
from .tasks import TaskState
from .toolchain import check_tools_status, locate_toolchain

logger = logging.getLogger(__name__)

EXIT_ABORTED = 130

console = Console()
app = typer.Typer(
    name="dth",
    help="Device Test Harness - run compiled test actions on an Android device with cached installs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Global options callback for version and config
def version_callback(value: bool):
    if value:
        console.print(f"dth version {__version__}")
        raise typer.Exit()


# Type aliases for common options
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config file", exists=True, dir_okay=False),
]


def get_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration, exiting with a message if the file is unusable."""
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def setup_logging(cfg: AppConfig, verbose: bool = False) -> None:
    """Route log records to stderr through rich, and to a file when enabled."""
    level = logging.DEBUG if verbose else logging.getLevelName(str(cfg.logging.level).upper())
    handlers: list[logging.Handler] = []

    if cfg.logging.console_logging:
        handlers.append(RichHandler(console=Console(stderr=True), show_path=False))

    if cfg.logging.file_logging:
        logs_dir = cfg.paths.logs_dir or cfg.paths.results_dir / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logs_dir / "dth.log")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        handlers.append(file_handler)

    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True)


@app.callback()
def main(
    version: Annotated[
        bool, typer.Option("--version", "-v", callback=version_callback, is_eager=True, help="Show version")
    ] = False,
):
    """Device Test Harness - run compiled test actions on an Android device with cached installs."""
    pass


def print_non_success(result: RunnerResult) -> None:
    """Every task that did not succeed, not just the first."""
    table = Table(title="Unsuccessful tasks")
    table.add_column("Task", style="cyan")
    table.add_column("State")
    table.add_column("Reason", style="dim")

    for report in result.non_success:
        color = "red" if report.state is TaskState.FAILURE else "yellow"
        table.add_row(report.name, f"[{color}]{report.state.value}[/{color}]", report.reason or "-")

    console.print(table)


@app.command()
def run(
    jars: Annotated[list[Path], typer.Argument(help="Action jars to run", exists=True, dir_okay=False)],
    classpath: Annotated[
        list[Path] | None,
        typer.Option("--classpath", help="Jar installed before any action (repeatable)", exists=True),
    ] = None,
    config: ConfigOption = None,
    serial: Annotated[str | None, typer.Option("--serial", "-s", help="Device serial number")] = None,
    max_concurrency: Annotated[
        int | None, typer.Option("--max-concurrency", "-j", help="Maximum tasks running at once", min=1)
    ] = None,
    timeout: Annotated[float | None, typer.Option("--timeout", "-t", help="Per-action timeout in seconds")] = None,
    clean: Annotated[
        bool | None, typer.Option("--clean/--no-clean", help="Remove harness files from the device before and after")
    ] = None,
    profile: Annotated[bool, typer.Option("--profile", help="Run actions under the sampling profiler")] = False,
    sequential: Annotated[bool, typer.Option("--sequential", help="Run one task at a time")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Debug logging")] = False,
):
    """
    Install and run action jars on a device.

    Each jar is converted to dex (cached by content), pushed (cached on the
    device), executed with a timeout, and its result files are pulled back.
    Main class, resources and large timeouts per action come from the
    [cyan]actions:[/cyan] section of the config file, keyed by action name.

    [bold]Examples:[/bold]

        dth run out/tests/core-tests.jar

        dth run a.jar b.jar --classpath junit.jar -j 8 --timeout 120

        dth run bench.jar --profile --sequential
    """
    cfg = get_config(config)

    # Command line overrides config
    if serial:
        cfg.device.serial = serial
    if max_concurrency is not None:
        cfg.run.max_concurrency = max_concurrency
    if timeout is not None:
        cfg.run.timeout_seconds = timeout
    if clean is not None:
        cfg.run.clean_before = clean
        cfg.run.clean_after = clean
    if profile:
        cfg.profiler.mode = ProfilerMode.SAMPLING.value
    if sequential:
        cfg.run.sequential = True

    errors = validate_config(cfg)
    if errors:
        for err in errors:
            console.print(f"[red]Error:[/red] {err}")
        raise typer.Exit(1)

    setup_logging(cfg, verbose)

    try:
        toolchain = locate_toolchain(cfg.paths.adb)
    except ToolchainError as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print("Run [cyan]dth check[/cyan] to see which tools are missing")
        raise typer.Exit(1) from None

    transport = AdbTransport(toolchain.adb, cfg.device.serial)
    context = RunContext.from_config(cfg, toolchain.dex, transport)
    actions = actions_from_jars(jars, cfg.actions)
    try:
        graph = create_run_graph(context, actions, classpath or [])
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    console.print(f"\n[bold]Running:[/bold] {len(actions)} action(s), {len(graph)} tasks")
    console.print(f"  Device:   {cfg.device.serial or 'default'}")
    console.print(f"  Results:  {cfg.paths.results_dir}")
    console.print(f"  Runner:   {'sequential' if cfg.run.sequential else f'pool ({cfg.run.max_concurrency})'}")
    console.print()

    def on_task_complete(name: str, state: TaskState):
        if state is TaskState.SUCCESS:
            console.print(f"  [green]✓[/green] {name}")
        else:
            console.print(f"  [red]✗[/red] {name}")

    def on_task_skipped(name: str, reason: str):
        console.print(f"  [yellow]-[/yellow] {name} [dim]({reason})[/dim]")

    callbacks = RunnerCallbacks(on_task_complete=on_task_complete, on_task_skipped=on_task_skipped)

    manifest = RunManifest(cfg.paths.results_dir)
    if cfg.run.sequential:
        runner = SequentialRunner(manifest=manifest, caches=context.caches)
    else:
        runner = PoolRunner(cfg.run.max_concurrency, manifest=manifest, caches=context.caches)

    result = runner.run(graph, callbacks)

    # Summary
    console.print()
    console.print(
        f"[bold]Complete:[/bold] {result.tasks_succeeded} succeeded, {result.tasks_failed} failed, "
        f"{result.tasks_skipped} skipped in {result.duration_seconds:.1f}s"
    )
    if result.cache_hits or result.cache_misses:
        console.print(f"  Cache: {result.cache_hits} hits, {result.cache_misses} misses")

    if result.non_success:
        console.print()
        print_non_success(result)

    if result.runner_error:
        console.print(f"\n[red]Runner error:[/red] {result.runner_error}")

    if result.aborted:
        console.print("\n[yellow]Run aborted[/yellow]")
        raise typer.Exit(EXIT_ABORTED)
    if not result.success:
        raise typer.Exit(1)


@app.command()
def status(
    results: Annotated[Path | None, typer.Argument(help="Results directory (default: from config)")] = None,
    config: ConfigOption = None,
):
    """Show the outcome of the last run."""
    cfg = get_config(config)
    results_dir = results or cfg.paths.results_dir

    manifest = RunManifest(results_dir)
    if manifest.load() is None:
        console.print(f"No run recorded in {results_dir}")
        raise typer.Exit(1)

    summary = manifest.get_summary()

    table = Table(title=f"Last run: {summary['graph']}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Results", summary["results"])
    table.add_row("Outcome", "aborted" if summary["aborted"] else ("success" if summary["success"] else "failed"))
    table.add_row("Tasks", str(summary["total_tasks"]))
    table.add_row("Succeeded", str(summary["succeeded"]))
    table.add_row("Failed", str(summary["failed"]))
    table.add_row("Skipped", str(summary["skipped"]))
    table.add_row("Finished", summary["finished"])

    console.print(table)

    for record in manifest.non_success():
        console.print(f"  [red]✗[/red] {record.name} [dim]{record.state}: {record.error or '-'}[/dim]")


@app.command()
def check():
    """Check external tools and show their locations."""
    tools = check_tools_status()

    table = Table(title="Android Tools")
    table.add_column("Tool", style="cyan")
    table.add_column("Status")
    table.add_column("Path", style="dim")

    for tool, path in tools.items():
        if path:
            status_str = "[green]Available[/green]"
            path_str = str(path)
        else:
            status_str = "[red]Missing[/red]"
            path_str = "-"
        table.add_row(tool, status_str, path_str)

    console.print(table)

    try:
        toolchain = locate_toolchain(tools["adb"])
    except ToolchainError as e:
        console.print(f"\n[yellow]Warning:[/yellow] {e}")
        console.print("Install the Android SDK platform-tools and put adb on PATH")
        raise typer.Exit(1) from None

    console.print(f"\nLayout: {toolchain.layout} ({toolchain.root})")


@app.command("cache-info")
def cache_info(config: ConfigOption = None):
    """Show the host dex cache."""
    cfg = get_config(config)
    store = HostCacheStore(cfg.cache.host_dir)
    keys = store.keys()
    size_mb = store.size_bytes() / (1024 * 1024)

    table = Table(title="Host Cache")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Path", str(store.root))
    table.add_row("Enabled", "yes" if cfg.cache.enabled else "no")
    table.add_row("Entries", str(len(keys)))
    table.add_row("Size", f"{size_mb:.1f}MB")
    console.print(table)


@app.command("cache-clear")
def cache_clear(config: ConfigOption = None):
    """Delete every entry of the host dex cache."""
    cfg = get_config(config)
    removed = HostCacheStore(cfg.cache.host_dir).clear()
    console.print(f"Removed {removed} cache entries from {cfg.cache.host_dir}")


def main_cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main_cli()
