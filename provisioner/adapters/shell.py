"""
Subprocess runner — the SINGLE PLACE where ``subprocess.run`` is called.

All logging, timing, and error shaping for external commands is
centralised here.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Mapping, Sequence

from provisioner.adapters.base import (
    EXIT_CANNOT_EXECUTE,
    EXIT_NOT_FOUND,
    EXIT_TIMEOUT,
    CommandError,
    CommandResult,
    CommandRunner,
)

logger = logging.getLogger(__name__)


class SubprocessRunner(CommandRunner):
    """Run commands on the local host and capture their output.

    Args:
        default_timeout: Timeout applied when a call passes none.
            None means no timeout at all.
    """

    def __init__(self, default_timeout: float | None = None):
        self._default_timeout = default_timeout

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
        effective_timeout = timeout if timeout is not None else self._default_timeout

        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        logger.debug("Executing: %s (cwd=%s)", " ".join(argv), cwd)
        start = time.monotonic()

        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=effective_timeout,
                env=full_env,
                cwd=cwd,
            )
            result = CommandResult(
                cmd=argv,
                returncode=proc.returncode,
                stdout=proc.stdout or "",
                stderr=proc.stderr or "",
            )
        except FileNotFoundError:
            result = CommandResult(
                cmd=argv,
                returncode=EXIT_NOT_FOUND,
                stderr=f"{argv[0]}: command not found",
            )
        except OSError as e:
            result = CommandResult(
                cmd=argv,
                returncode=EXIT_CANNOT_EXECUTE,
                stderr=f"{argv[0]}: {e.strerror or e}",
            )
        except subprocess.TimeoutExpired:
            result = CommandResult(
                cmd=argv,
                returncode=EXIT_TIMEOUT,
                stderr=f"Command timed out after {effective_timeout}s",
            )

        result.elapsed_ms = int((time.monotonic() - start) * 1000)

        if result.ok:
            logger.debug("✓ %s (%dms)", argv[0], result.elapsed_ms)
        else:
            logger.debug("✗ %s exited %d: %s", argv[0], result.returncode, result.tail(300))

        if check and not result.ok:
            raise CommandError(result)
        return result
