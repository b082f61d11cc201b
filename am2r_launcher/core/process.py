"""External process invocation.

All external tools (xdelta3, appimagetool, java) are started through a
ProcessRunner so arguments are always built as lists and tests can
substitute a fake runner.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from am2r_launcher.core.errors import JavaMissingError, ToolMissingError

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a finished child process.

    Attributes:
        exit_code: Process exit status
        stdout: Captured standard output
        stderr: Captured standard error
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner:
    """Runs external tools synchronously and captures their output."""

    def run(
        self,
        executable: str | Path,
        args: Sequence[str | Path],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        """Run a tool and wait for it to finish.

        Args:
            executable: Tool name on PATH or path to the tool
            args: Argument vector, never shell-quoted
            cwd: Working directory for the child process
            env: Extra environment variables merged over the current environment

        Returns:
            Exit code and captured output

        Raises:
            ToolMissingError: If the executable cannot be started
        """
        cmd = [str(executable), *(str(arg) for arg in args)]
        child_env = {**os.environ, **env} if env else None

        logger.debug("process_start", cmd=cmd, cwd=str(cwd) if cwd else None)
        try:
            completed = subprocess.run(
                cmd,
                cwd=cwd,
                env=child_env,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as e:
            logger.error("process_start_failed", executable=str(executable), error=str(e))
            raise ToolMissingError(
                f"Cannot start {executable}: {e}",
                tool=str(executable),
            ) from e

        logger.debug("process_finished", executable=str(executable), exit_code=completed.returncode)
        return ProcessResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def is_available(self, executable: str | Path, args: Sequence[str] = ()) -> bool:
        """Check whether a tool can be started at all."""
        try:
            self.run(executable, args)
        except ToolMissingError:
            return False
        return True


def ensure_java(runner: ProcessRunner) -> None:
    """Check that a Java runtime is on PATH.

    Raises:
        JavaMissingError: If ``java -version`` cannot be started
    """
    if not runner.is_available("java", ["-version"]):
        raise JavaMissingError(
            "Java is not installed or not on PATH; it is required to create Android packages",
            tool="java",
        )
