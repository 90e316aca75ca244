"""
Provision context — everything a step needs to act on the host.

One context is built per run by the use case and handed to every step.
The host-facing seams (command runner, HTTP fetch, HTTP probe) are
fields, so tests swap them without patching modules.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from provisioner.adapters.base import CommandRunner
from provisioner.core.errors import PreconditionError
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.services.download import download
from provisioner.core.services.preflight import Architecture
from provisioner.core.services.service_status import probe_http

Fetcher = Callable[..., Path]
Prober = Callable[..., int]


@dataclass
class ProvisionContext:
    """Shared state for one provisioning run."""

    config: ProvisionConfig
    runner: CommandRunner
    fetch: Fetcher = download
    probe: Prober = probe_http
    arch: Architecture | None = None

    @property
    def workdir(self) -> Path:
        return Path(self.config.workdir)

    @property
    def bin_dir(self) -> Path:
        return Path(self.config.bin_dir)

    def require_arch(self) -> Architecture:
        """The architecture detected during preflight."""
        if self.arch is None:
            raise PreconditionError("Architecture has not been detected yet (preflight did not run)")
        return self.arch

    def fetch_to(self, url: str, dest: Path) -> Path:
        """Download ``url`` into ``dest`` honouring the configured timeout."""
        return self.fetch(url, dest, timeout=self.config.download_timeout)
