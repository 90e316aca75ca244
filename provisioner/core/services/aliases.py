"""
Default aliases — PATH-level symlinks and the profile snippet.

Default aliases are created for the first version in a list only, and
only when nothing occupies the target path.  An existing file or
symlink (even a dangling one) is never replaced, which makes repeated
runs a no-op.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from provisioner.core.errors import PreconditionError

logger = logging.getLogger(__name__)


def path_occupied(path: Path) -> bool:
    """True if anything exists at ``path``, including a dangling symlink."""
    return os.path.lexists(path)


def create_default_links(links: dict[Path, Path]) -> bool:
    """Create every ``link → target`` symlink, or none of them.

    The whole group is skipped when any link path is already occupied,
    so a family of tools (R + Rscript) always points at one version.

    Returns:
        True if the links were created, False if creation was skipped.
    """
    occupied = [str(link) for link in links if path_occupied(link)]
    if occupied:
        logger.info("Skipping default symlink creation (already exists: %s).", ", ".join(occupied))
        return False

    for link, target in links.items():
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(target)
        logger.info("Created %s -> %s", link, target)
    return True


def write_profile_script(path: Path, bin_dir: Path) -> bool:
    """Write a login-shell snippet that prepends ``bin_dir`` to PATH.

    Returns:
        True if written, False if a file already exists there.
    """
    if path_occupied(path):
        logger.info("Skipping %s (already exists).", path)
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "#!/usr/bin/env bash\n"
        f"export PATH={bin_dir}:$PATH\n",
        encoding="utf-8",
    )
    path.chmod(0o644)
    logger.info("Wrote %s adding %s to PATH", path, bin_dir)
    return True


def replace_symlink(link: Path, target: Path) -> None:
    """Point ``link`` at ``target``, replacing an existing symlink.

    The new link is created beside ``link`` and renamed over it, so
    ``link`` always resolves to either the old or the new target.

    Raises:
        PreconditionError: If a real file or directory sits at ``link``.
    """
    if not link.is_symlink() and link.exists():
        raise PreconditionError(f"Refusing to replace non-symlink path: {link}")

    staged = link.with_name(f".{link.name}.{os.getpid()}.tmp")
    staged.unlink(missing_ok=True)
    staged.symlink_to(target)
    try:
        os.replace(staged, link)
    except OSError:
        staged.unlink(missing_ok=True)
        raise
