"""
Posit Pro ODBC drivers — package install plus odbcinst.ini registration.

The system driver registry is backed up exactly once (the first
backup is the pristine original and is never overwritten), then the
vendor's sample driver block is appended.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from provisioner.core.services.packages import apt_install, apt_update, fetch_and_install_deb

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext
    from provisioner.core.models.config import DriversConfig

logger = logging.getLogger(__name__)

ODBC_PACKAGES = ["unixodbc", "unixodbc-dev", "odbcinst"]


def drivers_url(cfg: DriversConfig, arch: str) -> str:
    return cfg.url_template.format(version=cfg.version, arch=arch, installer_id=cfg.installer_id)


def backup_path(registry: Path) -> Path:
    return registry.with_name(registry.name + ".bak")


def backup_registry_once(registry: Path) -> Path | None:
    """Copy the registry to ``<registry>.bak`` unless a backup exists.

    Returns:
        The backup path if one was created, else None.
    """
    backup = backup_path(registry)
    if not registry.is_file():
        logger.debug("No %s to back up", registry)
        return None
    if backup.exists():
        logger.debug("Backup %s already exists; keeping it", backup)
        return None
    shutil.copy2(registry, backup)
    logger.info("Backed up %s → %s", registry, backup)
    return backup


def append_sample_block(registry: Path, sample: Path) -> bool:
    """Append the vendor sample driver block to the registry.

    A missing sample is a warning, not an error.  The append is skipped
    when the registry already contains the sample text.  Both files are
    handled as bytes, so a registry in a legacy encoding is appended to
    without being rewritten.

    Returns:
        True if the block was appended.
    """
    if not sample.is_file():
        logger.warning("WARNING: %s not found; skipping append.", sample)
        return False

    block = sample.read_bytes()
    current = registry.read_bytes() if registry.is_file() else b""
    if block.strip() and block.strip() in current:
        logger.info("%s already contains the sample driver block; skipping append.", registry)
        return False

    registry.parent.mkdir(parents=True, exist_ok=True)
    with registry.open("ab") as f:
        if current and not current.endswith(b"\n"):
            f.write(b"\n")
        f.write(block)
    return True


def install_drivers(ctx: ProvisionContext) -> dict[str, bool]:
    """Install the pinned driver suite and register its drivers."""
    cfg = ctx.config.drivers
    arch = ctx.require_arch().deb
    logger.info("Installing Posit Pro Drivers (ODBC) %s...", cfg.version)

    apt_update(ctx)
    apt_install(ctx, ODBC_PACKAGES)

    url = drivers_url(cfg, arch)
    fetch_and_install_deb(ctx, url, url.rsplit("/", 1)[-1])

    registry = Path(cfg.odbcinst_path)
    logger.info("Configuring %s (backup + append sample)...", registry)
    backed_up = backup_registry_once(registry)
    appended = append_sample_block(registry, Path(cfg.sample_path))

    logger.info("Pro Drivers installed. ODBC drivers now visible via: odbcinst -q -d")
    return {"backed_up": backed_up is not None, "appended": appended}
