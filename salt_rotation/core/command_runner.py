"""
External rotation command runner.

Output content decides success, not the exit code: any success marker found
anywhere in the merged stdout/stderr (case-insensitive) counts as success.
Unrelated text that happens to contain "success" is therefore a known false
positive.
"""

import os
import shutil
import subprocess
import time
from typing import List, Optional, Sequence

from .config import (
    DEFAULT_WPCLI_PATH,
    SUCCESS_MARKERS,
    get_command_timeout,
    get_php_binary,
    get_wpcli_path_override,
    is_command_execution_enabled,
)
from .schema import CommandResult
from .secret_store import RotationError
from ..util.logging import logger


class ExecutorUnavailable(RotationError):
    """Process spawning is disabled or the launcher cannot be found."""
    pass


class ExecutableMissing(RotationError):
    pass


class CommandFailure(RotationError):
    """The command ran but reported no success marker."""
    pass


class CommandCrashed(RotationError):
    """The command could not run or produced no output at all."""
    pass


class CommandTimeout(RotationError):
    pass


def resolve_executable_path() -> Optional[str]:
    """Explicit WPCLI_PATH when it exists, else the default install location, else None."""
    override = get_wpcli_path_override()
    if override and os.path.exists(override):
        return override

    if os.path.exists(DEFAULT_WPCLI_PATH):
        return DEFAULT_WPCLI_PATH

    return None


def is_success_output(output: str, markers: Sequence[str] = SUCCESS_MARKERS) -> bool:
    lowered = output.lower()
    return any(marker.lower() in lowered for marker in markers)


class CommandRunner:
    """Runs the rotation tool with a bounded timeout and classifies the outcome."""

    def __init__(self, interpreter: Optional[str] = "default", timeout_sec: Optional[float] = None,
                 success_markers: Sequence[str] = SUCCESS_MARKERS):
        self.interpreter = get_php_binary() if interpreter == "default" else interpreter
        self.timeout_sec = timeout_sec if timeout_sec is not None else get_command_timeout()
        self.success_markers = list(success_markers)

    def build_command(self, executable_path: str, args: Sequence[str]) -> List[str]:
        command = [executable_path, *args]
        if self.interpreter:
            command.insert(0, shutil.which(self.interpreter) or self.interpreter)
        return command

    def check_preconditions(self, executable_path: Optional[str]):
        """
        Verify the command can be attempted at all.

        Raises:
            ExecutorUnavailable: spawning disabled or interpreter not on PATH
            ExecutableMissing: executable absent, or not executable when run directly
        """
        if not is_command_execution_enabled():
            raise ExecutorUnavailable("command execution disabled")

        if self.interpreter and shutil.which(self.interpreter) is None:
            raise ExecutorUnavailable(f"{self.interpreter} not found")

        if not executable_path or not os.path.isfile(executable_path):
            raise ExecutableMissing("WP-CLI not found")

        if not self.interpreter and not os.access(executable_path, os.X_OK):
            raise ExecutableMissing(f"{executable_path} is not executable")

    def _invoke(self, command: List[str]) -> str:
        try:
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self.timeout_sec,
                text=True,
                errors="replace",
            )
        except subprocess.TimeoutExpired as e:
            raise CommandTimeout("timed out") from e
        except OSError as e:
            raise CommandCrashed("execution failed") from e

        output = (completed.stdout or "").strip()
        if not output:
            raise CommandCrashed("execution failed")
        return output

    def run(self, executable_path: Optional[str], args: Sequence[str]) -> CommandResult:
        """Run the command. Never raises; failures come back as an unsuccessful result."""
        try:
            self.check_preconditions(executable_path)
        except RotationError as e:
            logger.log_command([str(executable_path), *args], False, type(e).__name__)
            return CommandResult(output="", succeeded=False, error=str(e), error_kind=type(e).__name__)

        command = self.build_command(executable_path, args)
        start = time.monotonic()
        try:
            output = self._invoke(command)
            if not is_success_output(output, self.success_markers):
                raise CommandFailure(output)
        except CommandFailure as e:
            logger.log_command(command, False, "CommandFailure", time.monotonic() - start)
            return CommandResult(output=str(e), succeeded=False, error=str(e), error_kind="CommandFailure")
        except RotationError as e:
            logger.log_command(command, False, type(e).__name__, time.monotonic() - start)
            return CommandResult(output="", succeeded=False, error=str(e), error_kind=type(e).__name__)

        logger.log_command(command, True, duration=time.monotonic() - start)
        return CommandResult(output=output, succeeded=True)
