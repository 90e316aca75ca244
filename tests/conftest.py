"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from helpers import FakeFetch, FakeProbe, build_config, healthy_runner
from provisioner.adapters.mock import MockRunner
from provisioner.core.engine.context import ProvisionContext
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.services import preflight
from provisioner.core.services.preflight import Architecture


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging() replaces root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    """Workbench config rooted in tmp_path."""
    return build_config(tmp_path)


@pytest.fixture
def pm_config(tmp_path: Path) -> ProvisionConfig:
    """Package Manager config rooted in tmp_path."""
    return build_config(tmp_path, variant="package-manager")


@pytest.fixture
def runner() -> MockRunner:
    return healthy_runner()


@pytest.fixture
def fetch() -> FakeFetch:
    return FakeFetch()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def ctx(config, runner, fetch, probe) -> ProvisionContext:
    """Context with the architecture already detected."""
    return ProvisionContext(
        config=config,
        runner=runner,
        fetch=fetch,
        probe=probe,
        arch=Architecture(deb="amd64", quarto="linux-amd64"),
    )


@pytest.fixture
def as_root(monkeypatch):
    """Pretend the process runs with effective uid 0."""
    monkeypatch.setattr(preflight.os, "geteuid", lambda: 0)


@pytest.fixture
def as_user(monkeypatch):
    """Pretend the process runs as an unprivileged user."""
    monkeypatch.setattr(preflight.os, "geteuid", lambda: 1000)
