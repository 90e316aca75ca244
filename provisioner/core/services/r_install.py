"""
R runtimes — one Posit-built .deb per version, installed side by side.

Each package installs itself under ``<install_root>/<version>``; the
location is dictated by the package, the config only tells us where
to look for it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from provisioner.core.services.aliases import create_default_links
from provisioner.core.services.packages import fetch_and_install_deb
from provisioner.core.services.verify import verify_runtime

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext
    from provisioner.core.models.config import RConfig

logger = logging.getLogger(__name__)


def r_deb_name(version: str, arch: str) -> str:
    return f"r-{version}_1_{arch}.deb"


def r_deb_url(cfg: RConfig, version: str, arch: str) -> str:
    return f"{cfg.base_url.rstrip('/')}/{r_deb_name(version, arch)}"


def r_bin(cfg: RConfig, version: str, tool: str = "R") -> Path:
    """Path of an R executable for one installed version."""
    return Path(cfg.install_root) / version / "bin" / tool


def install_r_versions(ctx: ProvisionContext) -> list[str]:
    """Install, verify, and optionally alias every configured R version.

    Returns:
        The versions installed, in order.
    """
    cfg = ctx.config.r
    arch = ctx.require_arch().deb
    logger.info("Installing R versions: %s", " ".join(cfg.versions))

    for version in cfg.versions:
        logger.info("Installing R %s...", version)
        fetch_and_install_deb(ctx, r_deb_url(cfg, version, arch), r_deb_name(version, arch))
        verify_runtime(ctx, f"R {version}", [str(r_bin(cfg, version)), "--version"])

    if cfg.create_symlinks:
        first = cfg.versions[0]
        create_default_links({
            ctx.bin_dir / "R": r_bin(cfg, first, "R"),
            ctx.bin_dir / "Rscript": r_bin(cfg, first, "Rscript"),
        })

    return list(cfg.versions)
