"""
Quarto runtimes — release tarballs unpacked into versioned directories.
"""

from __future__ import annotations

import logging
import tarfile
from collections.abc import Iterator
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from provisioner.core.errors import ProvisionError
from provisioner.core.services.aliases import create_default_links
from provisioner.core.services.verify import verify_runtime

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext
    from provisioner.core.models.config import QuartoConfig

logger = logging.getLogger(__name__)

_ARCHIVE_NAME = "quarto.tar.gz"


def quarto_url(cfg: QuartoConfig, version: str, asset_arch: str) -> str:
    return cfg.release_url.format(version=version, arch=asset_arch)


def quarto_bin(cfg: QuartoConfig, version: str) -> Path:
    return Path(cfg.install_root) / version / "bin" / "quarto"


def _strip_top_level(tar: tarfile.TarFile) -> Iterator[tarfile.TarInfo]:
    """Yield members with their first path component removed.

    Equivalent to ``tar --strip-components=1``; the top-level entry
    itself is dropped.
    """
    for member in tar.getmembers():
        parts = PurePosixPath(member.name).parts
        if len(parts) <= 1:
            continue
        member.name = str(PurePosixPath(*parts[1:]))
        if member.islnk():
            link_parts = PurePosixPath(member.linkname).parts
            if len(link_parts) > 1:
                member.linkname = str(PurePosixPath(*link_parts[1:]))
        yield member


def extract_stripped(archive: Path, dest: Path) -> None:
    """Unpack a .tar.gz into ``dest`` without its top-level directory.

    Raises:
        ProvisionError: If the archive is unreadable or unsafe.
    """
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(dest, members=_strip_top_level(tar), filter="data")
    except (tarfile.TarError, OSError) as e:
        raise ProvisionError(f"Failed to extract {archive.name} into {dest}: {e}") from e


def install_quarto_versions(ctx: ProvisionContext) -> list[str]:
    """Download, unpack, verify, and optionally alias every Quarto version.

    Returns:
        The versions installed, in order.
    """
    cfg = ctx.config.quarto
    asset_arch = ctx.require_arch().quarto
    logger.info(
        "Installing Quarto versions: %s (asset arch: %s)", " ".join(cfg.versions), asset_arch
    )
    Path(cfg.install_root).mkdir(parents=True, exist_ok=True)

    for version in cfg.versions:
        dest = Path(cfg.install_root) / version
        url = quarto_url(cfg, version, asset_arch)
        archive = ctx.workdir / _ARCHIVE_NAME

        logger.info("Installing Quarto %s into %s...", version, dest)
        logger.info("Downloading: %s", url)
        ctx.fetch_to(url, archive)
        try:
            extract_stripped(archive, dest)
        finally:
            archive.unlink(missing_ok=True)

        verify_runtime(ctx, f"Quarto {version}", [str(quarto_bin(cfg, version)), "check"])

    if cfg.create_symlink:
        create_default_links({ctx.bin_dir / "quarto": quarto_bin(cfg, cfg.versions[0])})

    return list(cfg.versions)
