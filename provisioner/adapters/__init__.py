"""Adapters — bindings to the host's external tools.

Public re-exports for convenient access.
"""

from provisioner.adapters.base import CommandError, CommandResult, CommandRunner
from provisioner.adapters.mock import MockRunner
from provisioner.adapters.shell import SubprocessRunner

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "MockRunner",
    "SubprocessRunner",
]
