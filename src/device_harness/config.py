"""
Configuration management with YAML loading and environment variable support.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .constants import BOOT_TIMEOUT_SECONDS, DEVICE_CACHE_DIR, DEVICE_DIR, HOST_CACHE_DIR, LARGE_TIMEOUT_MULTIPLIER
from .errors import ConfigError
from .profiler import ProfilerMode

logger = logging.getLogger(__name__)

SECTIONS = ("paths", "device", "run", "cache", "profiler", "logging")


def _env_path(env_var: str, default: Path | None = None) -> Path | None:
    """Get path from environment variable or return default."""
    if value := os.environ.get(env_var):
        return Path(value)
    return default


def _default_local_temp() -> Path:
    return Path(tempfile.gettempdir()) / f"dth-{os.getpid()}"


@dataclass
class PathsConfig:
    """Paths configuration - all paths can be overridden via environment variables."""

    results_dir: Path = field(default_factory=lambda: _env_path("DTH_RESULTS_DIR", Path.cwd() / "dth-results"))
    local_temp: Path = field(default_factory=lambda: _env_path("DTH_LOCAL_TEMP", _default_local_temp()))

    # Optional paths with sensible defaults
    logs_dir: Path | None = None
    adb: Path | None = None


@dataclass
class DeviceConfig:
    serial: str | None = field(default_factory=lambda: os.environ.get("DTH_DEVICE_SERIAL") or None)
    device_dir: str = DEVICE_DIR
    boot_timeout: float = BOOT_TIMEOUT_SECONDS
    remount: bool = False
    first_monitor_port: int = 8787
    debug_port: int | None = None


@dataclass
class RunConfig:
    max_concurrency: int = 4
    timeout_seconds: float = 60.0
    large_timeout_multiplier: int = LARGE_TIMEOUT_MULTIPLIER
    clean_before: bool = True
    clean_after: bool = True
    sequential: bool = False
    runner_class: str = "dalvik.runner.TestRunner"
    vm_args: list[str] = field(default_factory=list)


@dataclass
class CacheConfig:
    enabled: bool = True
    host_dir: Path = field(default_factory=lambda: Path(HOST_CACHE_DIR))
    device_dir: str = DEVICE_CACHE_DIR


@dataclass
class ProfilerConfig:
    mode: str = "disabled"  # "disabled" or "sampling"
    depth: int = 4
    interval_ms: int = 10
    thread_group: bool = False
    file_name: str = "java.hprof.txt"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file_logging: bool = False
    console_logging: bool = True


@dataclass
class ActionConfig:
    """Per-action settings, keyed by action name under `actions:`."""

    main_class: str | None = None
    resources_dir: Path | None = None
    large: bool = False


_PATH_FIELDS = {
    ("paths", "results_dir"),
    ("paths", "local_temp"),
    ("paths", "logs_dir"),
    ("paths", "adb"),
    ("cache", "host_dir"),
}


@dataclass
class AppConfig:
    paths: PathsConfig = field(default_factory=PathsConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    run: RunConfig = field(default_factory=RunConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    profiler: ProfilerConfig = field(default_factory=ProfilerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    actions: dict[str, ActionConfig] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: Path) -> AppConfig:
        """
        Load configuration from YAML file.

        Raises:
            ConfigError: if the file is not valid YAML or not a mapping
        """
        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> AppConfig:
        """Create config from dictionary. Unknown keys are ignored."""
        config = cls()

        for section_name in SECTIONS:
            values = data.get(section_name)
            if not values:
                continue
            section = getattr(config, section_name)
            for key, value in values.items():
                if not hasattr(section, key):
                    logger.debug(f"Ignoring unknown config key {section_name}.{key}")
                    continue
                if (section_name, key) in _PATH_FIELDS and isinstance(value, str):
                    value = Path(value).expanduser()
                setattr(section, key, value)

        actions = data.get("actions") or {}
        if not isinstance(actions, dict):
            raise ConfigError("actions must map action names to settings")
        for name, values in actions.items():
            values = values or {}
            if not isinstance(values, dict):
                raise ConfigError(f"actions.{name} must be a mapping")
            action = ActionConfig()
            for key, value in values.items():
                if not hasattr(action, key):
                    logger.debug(f"Ignoring unknown config key actions.{name}.{key}")
                    continue
                if key == "resources_dir" and isinstance(value, str):
                    value = Path(value).expanduser()
                setattr(action, key, value)
            config.actions[str(name)] = action

        return config

    def _to_dict(self) -> dict:
        """Convert config to dictionary."""
        result = {}
        for attr in SECTIONS:
            section = getattr(self, attr)
            result[attr] = {
                key: str(value) if isinstance(value, Path) else value for key, value in vars(section).items()
            }
        result["actions"] = {
            name: {key: str(value) if isinstance(value, Path) else value for key, value in vars(action).items()}
            for name, action in self.actions.items()
        }
        return result


def _get_default_config_dir() -> Path:
    """Get default config directory."""
    # Check environment variable first
    if config_dir := os.environ.get("DTH_CONFIG_DIR"):
        return Path(config_dir)

    # Check XDG config home
    if xdg_config := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_config) / "device-test-harness"

    # Fall back to ~/.config
    return Path.home() / ".config" / "device-test-harness"


def load_config(config_path: Path | None = None, config_dir: Path | None = None) -> AppConfig:
    """
    Load configuration.

    Args:
        config_path: Path to config file (default: searches standard locations)
        config_dir: Config directory to search (default: $DTH_CONFIG_DIR, XDG, ~/.config)

    Returns:
        AppConfig (defaults when no file is found)
    """
    if config_path is None:
        if config_dir is None:
            config_dir = _get_default_config_dir()

        # Search for config in standard locations
        search_paths = [
            config_dir / "config.yaml",
            Path.cwd() / "dth.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    return AppConfig.from_yaml(config_path) if config_path else AppConfig()


def validate_config(config: AppConfig) -> list[str]:
    """
    Validate settings that would otherwise fail mid-run.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    if config.run.max_concurrency < 1:
        errors.append(f"run.max_concurrency must be at least 1, got {config.run.max_concurrency}")

    if config.run.timeout_seconds <= 0:
        errors.append(f"run.timeout_seconds must be positive, got {config.run.timeout_seconds}")

    if config.run.large_timeout_multiplier < 1:
        errors.append(f"run.large_timeout_multiplier must be at least 1, got {config.run.large_timeout_multiplier}")

    if config.device.boot_timeout <= 0:
        errors.append(f"device.boot_timeout must be positive, got {config.device.boot_timeout}")

    if not config.device.device_dir.startswith("/"):
        errors.append(f"device.device_dir must be an absolute path: {config.device.device_dir}")

    try:
        ProfilerMode(config.profiler.mode)
    except ValueError:
        modes = ", ".join(m.value for m in ProfilerMode)
        errors.append(f"profiler.mode must be one of {modes}, got {config.profiler.mode}")

    if logging.getLevelName(str(config.logging.level).upper()) not in (
        logging.DEBUG,
        logging.INFO,
        logging.WARNING,
        logging.ERROR,
        logging.CRITICAL,
    ):
        errors.append(f"logging.level is not a logging level: {config.logging.level}")

    if config.paths.results_dir.exists() and not config.paths.results_dir.is_dir():
        errors.append(f"results_dir is not a directory: {config.paths.results_dir}")

    for name, action in config.actions.items():
        if action.resources_dir is not None and not action.resources_dir.is_dir():
            errors.append(f"actions.{name}.resources_dir is not a directory: {action.resources_dir}")

    return errors
