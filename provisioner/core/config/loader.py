"""
Configuration loader — reads provision.yml into a validated ProvisionConfig.

This is the primary entry point for loading provisioning configuration.
It reads YAML, validates against the Pydantic schema, and returns a
typed config object.  Validation happens here, once, before any step
touches the host.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from provisioner.core.models.config import ProvisionConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "provision.yml"

# System-wide fallback location
SYSTEM_CONFIG = Path("/etc/posit-provisioner") / CONFIG_FILE


class ConfigError(Exception):
    """Raised when provisioning configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Falls back to the system-wide location when nothing is found
    in the directory tree.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    if SYSTEM_CONFIG.is_file():
        return SYSTEM_CONFIG
    return None


def _validate(data: dict[str, Any], source: str) -> ProvisionConfig:
    try:
        return ProvisionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid provisioning configuration in {source}:\n{e}") from e


def load_config(
    path: Path | None = None,
    *,
    variant: str | None = None,
    search: bool = True,
) -> ProvisionConfig:
    """Load and validate provisioning configuration.

    Args:
        path: Explicit path to provision.yml.  If None and ``search`` is
            set, searches upward from cwd; if nothing is found the
            built-in defaults are used.
        variant: Optional variant override (takes precedence over the file).
        search: Whether to look for a config file when ``path`` is None.

    Returns:
        Validated ProvisionConfig.

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid.
    """
    if path is None and search:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using built-in defaults", CONFIG_FILE)
        data: dict[str, Any] = {}
        if variant:
            data["variant"] = variant
        return _validate(data, "built-in defaults")

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading provisioning config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "provision" key or be flat
    if "provision" in data:
        inner = data["provision"]
        if not isinstance(inner, dict):
            raise ConfigError(f"Expected a mapping under 'provision' in {path}")
        data = inner

    if variant:
        data["variant"] = variant

    config = _validate(data, str(path))
    logger.debug(
        "Loaded %s config: R %s, Python %s",
        config.variant,
        ", ".join(config.r.versions),
        ", ".join(config.python.versions),
    )
    return config


def render_config(config: ProvisionConfig) -> str:
    """Serialize a config back to provision.yml text."""
    data = config.model_dump(mode="json")
    if not config.installs_quarto:
        data.pop("quarto", None)
        data.pop("drivers", None)
    header = (
        "# Posit host provisioning configuration.\n"
        "# The first entry of each version list becomes the default.\n"
    )
    return header + yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
