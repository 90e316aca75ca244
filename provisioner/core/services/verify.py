"""
Post-install verification — run a trivial command against a fresh install.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from provisioner.core.errors import ProvisionError

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext

logger = logging.getLogger(__name__)


class VerificationError(ProvisionError):
    """A freshly installed runtime did not respond as expected."""


def verify_runtime(ctx: ProvisionContext, label: str, cmd: Sequence[str]) -> str:
    """Run ``cmd``; it must exit 0 and print something.

    Returns:
        The command's combined output.

    Raises:
        VerificationError: On a non-zero exit or empty output.
    """
    logger.info("Verifying %s...", label)
    result = ctx.runner.run(cmd, check=False, timeout=ctx.config.command_timeout)
    if not result.ok:
        raise VerificationError(
            f"Verification of {label} failed (exit {result.returncode}): {result.tail(300)}"
        )
    output = result.output
    if not output:
        raise VerificationError(f"Verification of {label} produced no output: {' '.join(cmd)}")
    return output
