"""
System package installation — base dependencies and local .deb files.

All apt/dpkg invocations go through the context's runner.  Installing
a local .deb uses a two-tier strategy: apt first, and if apt refuses,
a forced ``dpkg -i`` followed by ``apt-get -f install`` to pull in
whatever dependencies dpkg left unresolved.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from provisioner.core.errors import MissingArtifactError

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def apt_update(ctx: ProvisionContext) -> None:
    """Refresh the package index."""
    ctx.runner.run(
        ["apt-get", "update", "-y"],
        env=APT_ENV,
        timeout=ctx.config.command_timeout,
    )


def apt_install(
    ctx: ProvisionContext,
    packages: Sequence[str],
    *,
    no_recommends: bool = False,
) -> None:
    """Install named packages from the configured repositories."""
    cmd = ["apt-get", "install", "-y"]
    if no_recommends:
        cmd.append("--no-install-recommends")
    cmd.extend(packages)
    ctx.runner.run(cmd, env=APT_ENV, timeout=ctx.config.command_timeout)


def install_base_deps(ctx: ProvisionContext) -> list[str]:
    """Install the fixed allow-list of OS packages every later step relies on.

    Idempotent: apt treats already-installed packages as a no-op.

    Returns:
        The package names requested.
    """
    packages = list(ctx.config.base_packages or [])
    logger.info("Installing base dependencies...")
    apt_update(ctx)
    apt_install(ctx, packages, no_recommends=True)
    return packages


def install_local_deb(ctx: ProvisionContext, deb_path: Path) -> str:
    """Install a downloaded .deb, falling back to dpkg + dependency repair.

    Returns:
        ``"apt"`` if the primary install worked, ``"dpkg-fallback"`` if
        the fallback path was needed.

    Raises:
        MissingArtifactError: If ``deb_path`` does not exist.
        CommandError: If the final ``apt-get -f install`` fails.
    """
    if not deb_path.is_file():
        raise MissingArtifactError(f"local deb not found: {deb_path}")

    logger.info("Installing local deb: %s", deb_path)
    apt_update(ctx)

    primary = ctx.runner.run(
        ["apt-get", "install", "-y", str(deb_path)],
        check=False,
        env=APT_ENV,
        timeout=ctx.config.command_timeout,
    )
    if primary.ok:
        return "apt"

    logger.info("apt install failed; falling back to dpkg -i + apt-get -f install")
    ctx.runner.run(
        ["dpkg", "-i", str(deb_path)],
        check=False,
        env=APT_ENV,
        timeout=ctx.config.command_timeout,
    )
    ctx.runner.run(
        ["apt-get", "-f", "install", "-y"],
        env=APT_ENV,
        timeout=ctx.config.command_timeout,
    )
    return "dpkg-fallback"


def fetch_and_install_deb(ctx: ProvisionContext, url: str, filename: str) -> Path:
    """Download a .deb into the work directory and install it."""
    dest = ctx.workdir / filename
    logger.info("Downloading from: %s", url)
    ctx.fetch_to(url, dest)
    install_local_deb(ctx, dest)
    return dest
