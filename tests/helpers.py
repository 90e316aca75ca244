"""
Test helpers — config builders, on-disk host seeding, and host fakes.

Every filesystem location in the provisioning config is pointed into
``tmp_path``; the host seams (commands, downloads, HTTP probe) are
replaced with scriptable fakes.
"""

import io
import os
import tarfile
from pathlib import Path

from provisioner.adapters.mock import MockRunner
from provisioner.core.config.loader import render_config
from provisioner.core.errors import DownloadError
from provisioner.core.models.config import ProvisionConfig

SS_HEADER = "State  Recv-Q Send-Q Local Address:Port Peer Address:Port Process"


# ── Builders ────────────────────────────────────────────────────


def build_config(tmp_path: Path, variant: str = "workbench", **overrides) -> ProvisionConfig:
    """A config whose every path lives under ``tmp_path``.

    Keyword overrides are merged one level deep into the matching section.
    """
    data: dict = {
        "variant": variant,
        "r": {
            "versions": ["4.5.2", "4.4.3"],
            "install_root": str(tmp_path / "opt" / "R"),
        },
        "python": {
            "versions": ["3.12.4"],
            "install_root": str(tmp_path / "opt" / "python"),
            "profile_script": str(tmp_path / "etc" / "profile.d" / "python.sh"),
            "uv_install_dir": str(tmp_path / "usr" / "local" / "bin"),
        },
        "quarto": {
            "versions": ["1.8.25"],
            "install_root": str(tmp_path / "opt" / "quarto"),
        },
        "product": {
            "config_file": str(tmp_path / "etc" / "product.conf"),
        },
        "drivers": {
            "odbcinst_path": str(tmp_path / "etc" / "odbcinst.ini"),
            "sample_path": str(tmp_path / "opt" / "rstudio-drivers" / "odbcinst.ini.sample"),
        },
        "bin_dir": str(tmp_path / "usr" / "local" / "bin"),
        "workdir": str(tmp_path / "work"),
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key].update(value)
        else:
            data[key] = value
    return ProvisionConfig.model_validate(data)


def write_config(path: Path, config: ProvisionConfig) -> Path:
    """Write ``config`` as provision.yml text."""
    path.write_text(render_config(config), encoding="utf-8")
    return path


def write_quarto_tarball(path: Path, top: str = "quarto-1.8.25") -> Path:
    """A minimal Quarto release tarball with a single top-level directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        top_info = tarfile.TarInfo(top)
        top_info.type = tarfile.DIRTYPE
        top_info.mode = 0o755
        tar.addfile(top_info)
        for name, data, mode in (
            (f"{top}/bin/quarto", b"#!/bin/sh\necho quarto\n", 0o755),
            (f"{top}/share/version", b"1.8.25\n", 0o644),
        ):
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))
    return path


def _make_executable(path: Path, text: str = "#!/bin/sh\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    path.chmod(0o755)
    return path


def seed_host(config: ProvisionConfig, cpython_suffix: str = "linux-x86_64-gnu") -> None:
    """Lay down what the packages and installers would leave on disk.

    R binaries (put there by the .deb), an executable uv, and one uv-style
    ``cpython-<version>-<suffix>`` directory per Python version.
    """
    for version in config.r.versions:
        for tool in ("R", "Rscript"):
            _make_executable(Path(config.r.install_root) / version / "bin" / tool)
    _make_executable(Path(config.python.uv_install_dir) / "uv")
    for version in config.python.versions:
        install_dir = Path(config.python.install_root) / f"cpython-{version}-{cpython_suffix}"
        _make_executable(install_dir / "bin" / "python")


def healthy_runner(port: int = 8787) -> MockRunner:
    """A MockRunner scripted like a freshly provisioned amd64 host."""
    runner = MockRunner()
    runner.set_output(["dpkg", "--print-architecture"], "amd64\n")
    runner.set_output(["systemctl", "is-active"], "active\n")
    runner.set_output(
        ["ss", "-lnt"],
        f"{SS_HEADER}\nLISTEN 0      4096   0.0.0.0:{port}     0.0.0.0:*\n",
    )
    return runner


# ── Fakes ───────────────────────────────────────────────────────


class FakeFetch:
    """Stand-in for ``download``: writes a placeholder (or a tarball) to ``dest``."""

    def __init__(self):
        self.urls: list[str] = []
        self.failures: dict[str, str] = {}
        self.payload = b"payload"

    def fail(self, fragment: str, reason: str = "HTTP 404") -> None:
        """Make every URL containing ``fragment`` fail."""
        self.failures[fragment] = reason

    def __call__(self, url: str, dest: Path, *, timeout: float | None = None) -> Path:
        self.urls.append(url)
        for fragment, reason in self.failures.items():
            if fragment in url:
                raise DownloadError(f"Download failed: {reason} for {url}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        if dest.name.endswith(".tar.gz"):
            write_quarto_tarball(dest)
        else:
            dest.write_bytes(self.payload)
        return dest


class FakeProbe:
    """Stand-in for ``probe_http``."""

    def __init__(self, status: int = 200, error: Exception | None = None):
        self.status = status
        self.error = error
        self.urls: list[str] = []

    def __call__(self, url: str, *, timeout: float = 10.0) -> int:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.status


def is_link_to(link: Path, target: Path) -> bool:
    return link.is_symlink() and Path(os.readlink(link)) == target
