"""
Mock runner — universal test double for external commands.

Used in tests (and ``--dry-run`` style previews) to simulate command
behaviour without touching the host.  Configurable to return success,
failure, or custom responses per command prefix.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from provisioner.adapters.base import CommandError, CommandResult, CommandRunner

Handler = Callable[[list[str]], "CommandResult | None"]


@dataclass
class MockCall:
    """One recorded invocation."""

    cmd: list[str]
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    timeout: float | None = None


class MockRunner(CommandRunner):
    """Scriptable runner that records every call.

    By default every command succeeds with ``default_output`` on stdout.
    Responses are matched by argv prefix; the most recently registered
    matching prefix wins.
    """

    def __init__(self, default_output: str = "[mock] ok"):
        self._default_output = default_output
        self._rules: list[tuple[tuple[str, ...], CommandResult | Handler]] = []
        self._call_log: list[MockCall] = []

    @property
    def call_log(self) -> list[MockCall]:
        """All calls this mock has received, oldest first."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[list[str]]:
        """Just the argv of every call."""
        return [c.cmd for c in self._call_log]

    def set_response(
        self,
        prefix: Sequence[str],
        response: CommandResult | Handler,
    ) -> None:
        """Register a fixed result or a handler for commands starting with ``prefix``.

        A handler receives the full argv and may return None to fall
        through to the default success response (useful for side effects).
        """
        self._rules.append((tuple(prefix), response))

    def set_output(self, prefix: Sequence[str], stdout: str) -> None:
        """Make matching commands succeed with the given stdout."""
        self.set_response(prefix, CommandResult(cmd=list(prefix), stdout=stdout))

    def set_failure(
        self,
        prefix: Sequence[str],
        returncode: int = 1,
        stderr: str = "mock failure",
    ) -> None:
        """Make matching commands exit non-zero."""
        self.set_response(
            prefix,
            CommandResult(cmd=list(prefix), returncode=returncode, stderr=stderr),
        )

    def calls_matching(self, prefix: Sequence[str]) -> list[MockCall]:
        """Recorded calls whose argv starts with ``prefix``."""
        p = list(prefix)
        return [c for c in self._call_log if c.cmd[: len(p)] == p]

    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        argv = [str(part) for part in cmd]
        self._call_log.append(MockCall(cmd=argv, env=dict(env or {}), cwd=cwd, timeout=timeout))

        result: CommandResult | None = None
        for prefix, response in reversed(self._rules):
            if tuple(argv[: len(prefix)]) != prefix:
                continue
            if callable(response):
                result = response(argv)
            else:
                result = CommandResult(
                    cmd=argv,
                    returncode=response.returncode,
                    stdout=response.stdout,
                    stderr=response.stderr,
                )
            break

        if result is None:
            result = CommandResult(cmd=argv, stdout=self._default_output)

        if check and not result.ok:
            raise CommandError(result)
        return result

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._rules.clear()
