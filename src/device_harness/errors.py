"""Exception taxonomy for the harness."""


class HarnessError(Exception):
    """Base class for all harness errors."""


class NotFound(HarnessError):
    """A remote path or resource is absent (distinct from an empty result)."""

    def __init__(self, path: str):
        super().__init__(f"File or directory {path} not found")
        self.path = path


class Timeout(HarnessError):
    """A deadline elapsed waiting for remote readiness or command completion."""

    def __init__(self, target: str, elapsed: float, timeout: float):
        super().__init__(f"Timed out after {elapsed:.1f}s (limit {timeout:.0f}s) waiting for {target}")
        self.target = target
        self.elapsed = elapsed
        self.timeout = timeout


class TransportFailure(HarnessError):
    """The remote-shell invocation itself failed."""

    def __init__(self, argv: list[str], output: list[str] | None = None, reason: str | None = None):
        self.argv = list(argv)
        self.output = list(output or [])
        detail = reason or (self.output[0] if self.output else "no output")
        super().__init__(f"Command failed: {' '.join(self.argv)}: {detail}")


class TaskFailure(HarnessError):
    """A task body reported failure for domain reasons."""


class CycleError(HarnessError):
    """Adding a dependency edge would create a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__("Dependency cycle: " + " -> ".join(cycle))
        self.cycle = cycle


class IllegalTransitionError(HarnessError):
    """A task was moved to a state its current state cannot reach."""


class ToolchainError(HarnessError):
    """Required external tools could not be located."""


class ConfigError(HarnessError):
    """Configuration is missing or invalid."""
