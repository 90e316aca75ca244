"""
Server product — Posit Package Manager or Posit Workbench.

Exactly one pinned version is installed.  The workbench .deb is
published per distribution codename and is deliberately taken from
``product.distribution`` (jammy by default) rather than the host's own
release.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from provisioner.core.errors import PreconditionError
from provisioner.core.services.packages import fetch_and_install_deb
from provisioner.core.services.service_status import enable_service

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext
    from provisioner.core.models.config import ProvisionConfig

logger = logging.getLogger(__name__)


def product_url(config: ProvisionConfig, arch: str) -> str:
    p = config.product
    if p.url_template is None:
        raise PreconditionError(f"No download URL template configured for {config.product_label}")
    return p.url_template.format(version=p.version, arch=arch, distribution=p.distribution)


def product_deb_name(config: ProvisionConfig, arch: str) -> str:
    """Artifact filename — the last segment of the download URL."""
    return product_url(config, arch).rsplit("/", 1)[-1]


def install_product(ctx: ProvisionContext) -> dict[str, str]:
    """Download, install, and start the configured server product."""
    config = ctx.config
    arch = ctx.require_arch().deb
    service = config.product.service or ""

    logger.info("Installing %s %s...", config.product_label, config.product.version)
    fetch_and_install_deb(ctx, product_url(config, arch), product_deb_name(config, arch))

    enabled = enable_service(ctx.runner, service, timeout=ctx.config.command_timeout)
    return {
        "version": str(config.product.version),
        "service": service,
        "enabled": "yes" if enabled else "no",
    }
