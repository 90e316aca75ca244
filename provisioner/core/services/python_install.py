"""
Python runtimes — installed and managed by uv.

uv names each install directory after an internal build key
(``cpython-3.12.4-linux-x86_64-gnu``) rather than the bare version, so
after every install we resolve that directory and give it a stable
alias named exactly after the requested version
(``<install_root>/3.12.4``).

Resolution asks uv itself first (``uv python list --output-format json``)
and only falls back to scanning for ``cpython-<version>-*`` when the
listing is unavailable or yields nothing.  Both paths demand exactly
one match: zero or several is an AliasResolutionError.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from provisioner.core.errors import AliasResolutionError
from provisioner.core.services.aliases import replace_symlink, write_profile_script
from provisioner.core.services.download import verify_sha256
from provisioner.core.services.verify import verify_runtime

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext
    from provisioner.core.models.config import PythonConfig

logger = logging.getLogger(__name__)


def uv_path(cfg: PythonConfig) -> Path:
    return Path(cfg.uv_install_dir) / "uv"


def python_bin(cfg: PythonConfig, version: str) -> Path:
    """Python executable reached through the version alias."""
    return Path(cfg.install_root) / version / "bin" / "python"


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


# ── uv bootstrap ────────────────────────────────────────────────


def install_uv(ctx: ProvisionContext) -> bool:
    """Install uv into ``uv_install_dir`` unless it is already there.

    The installer script is downloaded to the work directory (and
    checked against ``uv_installer_sha256`` when one is pinned) rather
    than piped straight into a shell.

    Returns:
        True if uv was installed, False if it was already present.
    """
    cfg = ctx.config.python
    uv = uv_path(cfg)
    logger.info("Installing uv to %s...", cfg.uv_install_dir)

    if _is_executable(uv):
        logger.info("uv already present at %s; skipping.", uv)
        return False

    script = ctx.workdir / "uv-install.sh"
    ctx.fetch_to(cfg.uv_installer_url, script)
    if cfg.uv_installer_sha256:
        verify_sha256(script, cfg.uv_installer_sha256)
    else:
        logger.debug("uv installer has no pinned sha256; running unverified")

    try:
        ctx.runner.run(
            ["sh", str(script)],
            env={"UV_INSTALL_DIR": cfg.uv_install_dir},
            timeout=ctx.config.command_timeout,
        )
    finally:
        script.unlink(missing_ok=True)

    verify_runtime(ctx, "uv", [str(uv), "--version"])
    return True


# ── Install directory resolution ────────────────────────────────


def _dir_prefix(version: str) -> str:
    return f"cpython-{version}-"


def _query_uv(ctx: ProvisionContext, version: str) -> list[Path] | None:
    """Ask uv which managed installs under the root match ``version``.

    Returns:
        Matching install directories, or None when uv could not be
        queried or its output was not understood.
    """
    cfg = ctx.config.python
    root = Path(os.path.abspath(cfg.install_root))

    result = ctx.runner.run(
        [str(uv_path(cfg)), "python", "list", "--only-installed", "--output-format", "json"],
        check=False,
        env={"UV_PYTHON_INSTALL_DIR": str(root)},
        timeout=ctx.config.command_timeout,
    )
    if not result.ok:
        return None

    try:
        entries = json.loads(result.stdout)
    except json.JSONDecodeError:
        return None
    if not isinstance(entries, list):
        return None

    prefix = _dir_prefix(version)
    found: list[Path] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if entry.get("version") != version or not entry.get("path"):
            continue
        try:
            rel = Path(entry["path"]).relative_to(root)
        except ValueError:
            continue  # not one of ours (system interpreter, other root)
        candidate = root / rel.parts[0]
        if candidate.name.startswith(prefix) and candidate not in found:
            found.append(candidate)
    return found


def _scan_prefix(root: Path, version: str) -> list[Path]:
    """Directories under ``root`` named ``cpython-<version>-*``."""
    if not root.is_dir():
        return []
    prefix = _dir_prefix(version)
    return sorted(p for p in root.iterdir() if p.is_dir() and p.name.startswith(prefix))


def resolve_install_dir(ctx: ProvisionContext, version: str) -> Path:
    """Find the single uv-managed directory holding ``version``.

    Raises:
        AliasResolutionError: If no directory, or more than one, matches.
    """
    root = Path(os.path.abspath(ctx.config.python.install_root))

    candidates = _query_uv(ctx, version)
    if not candidates:
        logger.debug("uv listing gave no match for %s; scanning %s", version, root)
        candidates = _scan_prefix(root, version)

    if not candidates:
        raise AliasResolutionError(
            f"Could not find installed cpython directory for {version} in {root}"
        )
    if len(candidates) > 1:
        names = ", ".join(p.name for p in candidates)
        raise AliasResolutionError(
            f"Ambiguous cpython directories for {version} in {root}: {names}"
        )
    return candidates[0]


# ── Runtime installer ───────────────────────────────────────────


def install_python_versions(ctx: ProvisionContext) -> dict[str, str]:
    """Install every configured Python version and alias it by version.

    Returns:
        Mapping of requested version → resolved install directory.
    """
    cfg = ctx.config.python
    root = Path(cfg.install_root)
    uv = str(uv_path(cfg))
    logger.info("Installing Python versions via uv: %s", " ".join(cfg.versions))
    root.mkdir(parents=True, exist_ok=True)

    resolved: dict[str, str] = {}
    for version in cfg.versions:
        logger.info("Installing Python %s into %s...", version, root)
        ctx.runner.run(
            [uv, "python", "install", version, f"--install-dir={root}"],
            timeout=ctx.config.command_timeout,
        )

        target = resolve_install_dir(ctx, version)
        alias = root / version
        logger.info("Symlinking %s -> %s", alias, target)
        replace_symlink(alias, target)
        resolved[version] = str(target)

        verify_runtime(ctx, f"Python {version}", [str(python_bin(cfg, version)), "--version"])

    if cfg.create_profile_script:
        first = cfg.versions[0]
        logger.info("Writing %s to add Python %s to PATH...", cfg.profile_script, first)
        write_profile_script(Path(cfg.profile_script), root / first / "bin")

    return resolved
