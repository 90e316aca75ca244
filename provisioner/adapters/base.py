"""
Runner base — the contract between installer steps and external tools.

Every external command (apt-get, dpkg, systemctl, uv, ...) goes through
a CommandRunner.  Steps never call ``subprocess`` themselves, which keeps
them testable with the MockRunner.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass


# Exit codes used for failures that never reached the child process
EXIT_NOT_FOUND = 127
EXIT_CANNOT_EXECUTE = 126
EXIT_TIMEOUT = 124


@dataclass
class CommandResult:
    """Outcome of a single command invocation."""

    cmd: list[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout/stderr, stripped."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)

    def tail(self, limit: int = 2000) -> str:
        """Last ``limit`` characters of stderr, falling back to stdout."""
        text = self.stderr.strip() or self.stdout.strip()
        return text[-limit:]


class CommandError(Exception):
    """A checked command exited non-zero."""

    def __init__(self, result: CommandResult):
        self.result = result
        cmd = " ".join(result.cmd)
        detail = result.tail(500)
        message = f"Command failed (exit {result.returncode}): {cmd}"
        if detail:
            message = f"{message}\n{detail}"
        super().__init__(message)


class CommandRunner(ABC):
    """Abstract command runner.

    Implementations MUST NOT raise for a non-zero exit unless
    ``check=True``; a missing binary or a timeout is reported as a
    non-zero CommandResult, and so is any other OSError raised while
    starting it (permission denied, bad interpreter). Undecodable
    output bytes are replaced, never raised.
    """

    @abstractmethod
    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        """Run ``cmd`` to completion and return its result.

        Args:
            cmd: Command argv.
            check: Raise CommandError on a non-zero exit.
            timeout: Seconds before the command is killed (None = wait forever).
            env: Extra environment variables layered over ``os.environ``.
            cwd: Working directory.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
