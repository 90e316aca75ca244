"""
Provisioning configuration — the single validated input to a run.

Loaded from provision.yml (or built from defaults), validated once
before any side effect.  Everything a step needs to know about versions,
paths, URLs and toggles lives here.
"""

from __future__ import annotations

import re
import string
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Variant = Literal["package-manager", "workbench"]

# Version tokens end up in paths and URLs, so keep them path-safe
_VERSION_RE = re.compile(r"^[0-9A-Za-z][0-9A-Za-z.+_-]*$")

_COMMON_BASE_PACKAGES = [
    "ca-certificates",
    "curl",
    "gnupg",
    "tar",
    "xz-utils",
    "unixodbc",
    "unixodbc-dev",
    "odbcinst",
]


def _check_versions(versions: list[str]) -> list[str]:
    seen: set[str] = set()
    for v in versions:
        if not _VERSION_RE.match(v):
            raise ValueError(f"invalid version string {v!r}")
        if v in seen:
            raise ValueError(f"duplicate version {v!r}")
        seen.add(v)
    return versions


def _check_template(template: str, allowed: set[str]) -> str:
    fields = {name for _, name, _, _ in string.Formatter().parse(template) if name is not None}
    if any(name == "" or name.isdigit() for name in fields):
        raise ValueError(
            f"positional placeholder(s) in {template!r}; use named placeholders: {sorted(allowed)}"
        )
    unknown = fields - allowed
    if unknown:
        raise ValueError(
            f"unknown placeholder(s) {sorted(unknown)} in {template!r}; "
            f"allowed: {sorted(allowed)}"
        )
    return template


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RConfig(_Section):
    """R runtimes installed from Posit's prebuilt .deb packages."""

    versions: list[str] = Field(default_factory=lambda: ["4.5.2", "4.4.3"])
    base_url: str = "https://cdn.posit.co/r/ubuntu-2404/pkgs"
    install_root: str = "/opt/R"
    create_symlinks: bool = True

    @field_validator("versions")
    @classmethod
    def _validate_versions(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one R version is required")
        return _check_versions(v)


class PythonConfig(_Section):
    """Python runtimes installed through uv."""

    versions: list[str] = Field(default_factory=lambda: ["3.12.4", "3.11.9"])
    install_root: str = "/opt/python"
    create_profile_script: bool = True
    profile_script: str = "/etc/profile.d/python.sh"
    uv_install_dir: str = "/usr/local/bin"
    uv_installer_url: str = "https://astral.sh/uv/install.sh"
    uv_installer_sha256: str | None = None

    @field_validator("versions")
    @classmethod
    def _validate_versions(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one Python version is required")
        return _check_versions(v)


class QuartoConfig(_Section):
    """Quarto CLI releases (workbench variant only)."""

    versions: list[str] = Field(default_factory=lambda: ["1.8.25", "1.7.12"])
    install_root: str = "/opt/quarto"
    create_symlink: bool = True
    release_url: str = (
        "https://github.com/quarto-dev/quarto-cli/releases/download/"
        "v{version}/quarto-{version}-{arch}.tar.gz"
    )

    @field_validator("versions")
    @classmethod
    def _validate_versions(cls, v: list[str]) -> list[str]:
        return _check_versions(v)

    @field_validator("release_url")
    @classmethod
    def _template(cls, v: str) -> str:
        return _check_template(v, {"version", "arch"})


class ProductConfig(_Section):
    """The pinned server product.  Unset fields are filled per variant."""

    version: str | None = None
    distribution: str = "jammy"
    url_template: str | None = None
    service: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    config_file: str | None = None

    @field_validator("version")
    @classmethod
    def _version(cls, v: str | None) -> str | None:
        if v is not None:
            _check_versions([v])
        return v

    @field_validator("url_template")
    @classmethod
    def _template(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _check_template(v, {"version", "arch", "distribution"})


class DriversConfig(_Section):
    """Posit Pro ODBC drivers (workbench variant only)."""

    enabled: bool = True
    version: str = "2025.07.0"
    installer_id: str = "7C152C12"
    url_template: str = (
        "https://cdn.rstudio.com/drivers/{installer_id}/installer/"
        "rstudio-drivers_{version}_{arch}.deb"
    )
    odbcinst_path: str = "/etc/odbcinst.ini"
    sample_path: str = "/opt/rstudio-drivers/odbcinst.ini.sample"

    @field_validator("url_template")
    @classmethod
    def _template(cls, v: str) -> str:
        return _check_template(v, {"version", "arch", "installer_id"})


class SmokeConfig(_Section):
    """Post-install diagnostic pass."""

    enabled: bool = True
    host: str = "127.0.0.1"
    http_timeout: float = 10.0


# Per-variant product defaults
PRODUCT_DEFAULTS: dict[str, dict[str, object]] = {
    "package-manager": {
        "version": "2025.12.0-14",
        "url_template": (
            "https://dl.posit.co/public/pro/deb/ubuntu/pool/noble/main/r/rs/"
            "rstudio-pm_{version}/rstudio-pm_{version}_{arch}.deb"
        ),
        "service": "rstudio-pm",
        "port": 4242,
        "config_file": "/etc/rstudio-pm/rstudio-pm.gcfg",
        "label": "Posit Package Manager",
    },
    "workbench": {
        "version": "2025.09.2",
        "url_template": (
            "https://download2.rstudio.org/server/{distribution}/{arch}/"
            "rstudio-workbench-{version}-{arch}.deb"
        ),
        "service": "rstudio-server",
        "port": 8787,
        "config_file": "/etc/rstudio/rserver.conf",
        "label": "Posit Workbench",
    },
}


def default_port(variant: str) -> int:
    """The product's documented default listening port."""
    return int(PRODUCT_DEFAULTS[variant]["port"])  # type: ignore[arg-type]


def product_label(variant: str) -> str:
    return str(PRODUCT_DEFAULTS[variant]["label"])


class ProvisionConfig(_Section):
    """Root configuration — loaded from provision.yml.

    Version lists are ordered: the first entry of each list is the
    "default" that receives the PATH-level alias.
    """

    variant: Variant = "workbench"

    r: RConfig = Field(default_factory=RConfig)
    python: PythonConfig = Field(default_factory=PythonConfig)
    quarto: QuartoConfig = Field(default_factory=QuartoConfig)
    product: ProductConfig = Field(default_factory=ProductConfig)
    drivers: DriversConfig = Field(default_factory=DriversConfig)
    smoke: SmokeConfig = Field(default_factory=SmokeConfig)

    bin_dir: str = "/usr/local/bin"
    workdir: str = "/tmp/posit-installer"
    base_packages: list[str] | None = None
    download_timeout: float | None = Field(default=None, gt=0)
    command_timeout: float | None = Field(default=None, gt=0)
    audit_log: str | None = None

    @model_validator(mode="after")
    def _apply_variant_defaults(self) -> ProvisionConfig:
        defaults = PRODUCT_DEFAULTS[self.variant]
        for key in ("version", "url_template", "service", "config_file"):
            if getattr(self.product, key) is None:
                setattr(self.product, key, defaults[key])

        if self.base_packages is None:
            packages = list(_COMMON_BASE_PACKAGES)
            if self.variant == "workbench":
                packages.append("openssl")
            self.base_packages = packages

        if self.variant == "workbench" and not self.quarto.versions:
            raise ValueError("quarto.versions must not be empty for the workbench variant")
        return self

    # ── Convenience views ───────────────────────────────────────

    @property
    def installs_quarto(self) -> bool:
        return self.variant == "workbench"

    @property
    def installs_drivers(self) -> bool:
        return self.variant == "workbench" and self.drivers.enabled

    @property
    def product_label(self) -> str:
        return product_label(self.variant)

    def summary(self) -> dict:
        """Compact, JSON-friendly view used by ``config check``."""
        data: dict = {
            "variant": self.variant,
            "product": {
                "name": self.product_label,
                "version": self.product.version,
                "service": self.product.service,
            },
            "r_versions": list(self.r.versions),
            "python_versions": list(self.python.versions),
        }
        if self.installs_quarto:
            data["quarto_versions"] = list(self.quarto.versions)
        if self.installs_drivers:
            data["drivers_version"] = self.drivers.version
        return data
