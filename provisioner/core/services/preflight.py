"""
Preflight — privilege check and CPU architecture detection.

Read-only probes that must pass before anything touches the host.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from provisioner.adapters.base import CommandRunner
from provisioner.core.errors import PreconditionError, UnsupportedArchitectureError

logger = logging.getLogger(__name__)

# dpkg architecture → token used in Posit .deb artifact names
_DEB_ARCH: dict[str, str] = {
    "amd64": "amd64",
    "arm64": "arm64",
}

# dpkg architecture → token used in Quarto release asset names
_QUARTO_ARCH: dict[str, str] = {
    "amd64": "linux-amd64",
    "arm64": "linux-arm64",
}


@dataclass(frozen=True)
class Architecture:
    """Detected architecture, in each downstream provider's vocabulary."""

    deb: str
    quarto: str

    def to_dict(self) -> dict[str, str]:
        return {"deb": self.deb, "quarto": self.quarto}


def require_root() -> None:
    """Raise PreconditionError unless running with effective uid 0."""
    if os.geteuid() != 0:
        raise PreconditionError("Please run as root (or via sudo).")


def deb_arch(native: str) -> str:
    """Map a dpkg architecture to the package-artifact token."""
    try:
        return _DEB_ARCH[native]
    except KeyError:
        raise UnsupportedArchitectureError(f"Unsupported architecture: {native}") from None


def quarto_asset_arch(native: str) -> str:
    """Map a dpkg architecture to the Quarto release-asset token."""
    try:
        return _QUARTO_ARCH[native]
    except KeyError:
        raise UnsupportedArchitectureError(f"Unsupported arch for quarto: {native}") from None


def resolve_architecture(native: str) -> Architecture:
    """Translate a native dpkg architecture string into provider tokens."""
    native = native.strip()
    return Architecture(deb=deb_arch(native), quarto=quarto_asset_arch(native))


def detect_architecture(runner: CommandRunner) -> Architecture:
    """Ask dpkg for the native architecture and translate it.

    Raises:
        UnsupportedArchitectureError: For anything but amd64 / arm64.
        CommandError: If dpkg itself fails.
    """
    result = runner.run(["dpkg", "--print-architecture"])
    arch = resolve_architecture(result.stdout)
    logger.info("Detected architecture: %s", arch.deb)
    return arch
