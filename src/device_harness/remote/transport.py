"""Line-oriented transports that carry remote-shell commands."""

import logging
import subprocess
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from ..errors import Timeout, TransportFailure

logger = logging.getLogger(__name__)

# Output of shell commands is inspected by callers; other adb commands fail on a non-zero exit
_SHELL = "shell"


class Transport(Protocol):
    """A request/response channel to the target."""

    def execute(self, argv: Sequence[str], timeout: float | None = None) -> list[str]:
        """
        Run a command and return its captured output lines.

        Raises:
            Timeout: the command did not finish before the timeout
            TransportFailure: the command could not be run at all
        """
        ...


class AdbTransport:
    """Runs commands through the adb binary."""

    def __init__(self, adb: Path | str = "adb", serial: str | None = None):
        self.adb = str(adb)
        self.serial = serial

    def command(self, argv: Sequence[str]) -> list[str]:
        """Build the full adb command line for argv."""
        cmd = [self.adb]
        if self.serial:
            cmd.extend(["-s", self.serial])
        cmd.extend(argv)
        return cmd

    def execute(self, argv: Sequence[str], timeout: float | None = None) -> list[str]:
        cmd = self.command(argv)
        logger.debug(f"executing {' '.join(cmd)}")
        start = time.monotonic()
        try:
            # subprocess.run kills and reaps the child when the timeout fires
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise Timeout(" ".join(cmd), time.monotonic() - start, timeout or 0) from e
        except OSError as e:
            raise TransportFailure(cmd, reason=str(e)) from e

        lines = result.stdout.splitlines() if result.stdout else []
        if result.returncode != 0 and (not argv or argv[0] != _SHELL):
            raise TransportFailure(cmd, lines)
        return lines
