"""
Tests for CLI commands — run, plan, arch, smoke, config, history, and global options.

Host seams are injected through ``obj`` so no command touches the machine.
"""

import json
import shutil
from pathlib import Path

import pytest
from click.testing import CliRunner

from helpers import FakeFetch, FakeProbe, build_config, healthy_runner, seed_host, write_config
from provisioner.core.config import loader
from provisioner.core.config.loader import load_config
from provisioner.core.persistence.audit import AuditEntry, AuditWriter
from provisioner.main import cli


def _seams(runner=None):
    return {
        "runner": runner or healthy_runner(),
        "fetch": FakeFetch(),
        "probe": FakeProbe(),
    }


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    cfg = build_config(tmp_path, audit_log=str(tmp_path / "state" / "audit.ndjson"))
    return write_config(tmp_path / "provision.yml", cfg)


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Provision an Ubuntu host" in result.output
        for command in ("run", "plan", "arch", "smoke", "config", "history"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_unknown_variant_rejected(self):
        result = CliRunner().invoke(cli, ["--variant", "connect", "plan"])
        assert result.exit_code == 2

    def test_missing_config_file(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yml"), "plan"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestPlanCommand:
    def test_plan_json(self, config_file: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "plan", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["variant"] == "workbench"
        assert [s["step"] for s in data["steps"]] == [
            "preflight", "base-deps", "r", "uv", "python", "quarto", "product", "drivers", "smoke",
        ]

    def test_variant_override(self, config_file: Path):
        result = CliRunner().invoke(
            cli,
            ["--config", str(config_file), "--variant", "package-manager", "plan", "--json", "--skip-smoke"],
        )
        assert result.exit_code == 0
        steps = [s["step"] for s in json.loads(result.stdout)["steps"]]
        assert steps == ["preflight", "base-deps", "r", "uv", "python", "product"]

    def test_plan_text(self, config_file: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "plan"])
        assert result.exit_code == 0
        assert "Posit Workbench" in result.output
        assert "r-runtimes" in result.output


class TestRunCommand:
    def test_dry_run_executes_nothing(self, config_file: Path):
        seams = _seams()
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run", "--dry-run"], obj=seams)
        assert result.exit_code == 0
        assert "[dry-run]" in result.output
        assert seams["runner"].call_count == 0
        assert seams["fetch"].urls == []

    def test_dry_run_json(self, config_file: Path):
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "run", "--dry-run", "--json"], obj=_seams()
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["dry_run"] is True
        assert "report" not in data
        assert data["config"]["variant"] == "workbench"

    def test_full_run(self, config_file: Path, as_root):
        seed_host(load_config(config_file))
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run"], obj=_seams())
        assert result.exit_code == 0, result.output
        assert "Result: ok" in result.output
        assert "✓ smoke" in result.output

    def test_full_run_json(self, config_file: Path, as_root):
        seed_host(load_config(config_file))
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run", "--json"], obj=_seams())
        assert result.exit_code == 0
        report = json.loads(result.stdout)["report"]
        assert report["status"] == "ok"
        assert report["failed_step"] is None

    def test_failed_step_exits_nonzero(self, config_file: Path, as_root):
        # no cpython directories on disk: the python step cannot alias anything
        cfg = load_config(config_file)
        seed_host(cfg)
        shutil.rmtree(cfg.python.install_root)

        result = CliRunner().invoke(cli, ["--config", str(config_file), "run"], obj=_seams())
        assert result.exit_code == 1
        assert "Result: failed" in result.output
        assert "ERROR: Could not find installed cpython directory" in result.output

    def test_non_root(self, config_file: Path, as_user):
        seams = _seams()
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run"], obj=seams)
        assert result.exit_code == 1
        assert "ERROR: Please run as root (or via sudo)." in result.output
        assert seams["runner"].call_count == 0

    def test_failure_reported_once(self, config_file: Path, as_user):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run"], obj=_seams())
        assert result.exit_code == 1
        assert result.output.count("ERROR: Please run as root (or via sudo).") == 1
        assert "✗ preflight" in result.output

    def test_failure_reported_when_quiet(self, config_file: Path, as_user):
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "--quiet", "run"], obj=_seams()
        )
        assert result.exit_code == 1
        assert result.output.count("ERROR: Please run as root (or via sudo).") == 1

    def test_degraded_run_exits_zero(self, config_file: Path, as_root):
        seed_host(load_config(config_file))
        seams = _seams()
        seams["probe"] = FakeProbe(status=503)
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run"], obj=seams)
        assert result.exit_code == 0
        assert "Result: degraded" in result.output
        assert "HTTP 503" in result.output


class TestArchCommand:
    def test_arch(self):
        result = CliRunner().invoke(cli, ["arch"], obj={"runner": healthy_runner()})
        assert result.exit_code == 0
        assert "deb:    amd64" in result.output
        assert "quarto: linux-amd64" in result.output

    def test_arch_json(self):
        runner = healthy_runner()
        runner.set_output(["dpkg", "--print-architecture"], "arm64\n")
        result = CliRunner().invoke(cli, ["arch", "--json"], obj={"runner": runner})
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"deb": "arm64", "quarto": "linux-arm64"}

    def test_arch_unsupported(self):
        runner = healthy_runner()
        runner.set_output(["dpkg", "--print-architecture"], "s390x\n")
        result = CliRunner().invoke(cli, ["arch"], obj={"runner": runner})
        assert result.exit_code == 1
        assert "Unsupported architecture: s390x" in result.output


class TestSmokeCommand:
    def test_failing_checks_exit_zero(self, config_file: Path):
        runner = healthy_runner()
        runner.set_failure(["systemctl", "is-active"], returncode=3)
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "smoke"], obj={"runner": runner, "probe": FakeProbe()}
        )
        assert result.exit_code == 0
        assert "✗ service rstudio-server" in result.output

    def test_json(self, config_file: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "smoke", "--json"], obj=_seams())
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["step"] == "smoke"
        assert data["status"] in ("ok", "diagnostic")
        assert any(c["name"] == "port 8787" for c in data["checks"])


class TestConfigCheckCommand:
    """Tests for the config check command."""

    def test_valid_config(self, config_file: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "config", "check"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "R:       4.5.2, 4.4.3" in result.output
        assert "Quarto:  1.8.25" in result.output

    def test_valid_config_json(self, config_file: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "config", "check", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["valid"] is True
        assert data["source"] == str(config_file)
        assert data["config"]["python_versions"] == ["3.12.4"]

    def test_defaults_when_no_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(loader, "SYSTEM_CONFIG", tmp_path / "etc" / "provision.yml")
        result = CliRunner().invoke(cli, ["config", "check", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["source"] == "built-in defaults"
        assert data["config"]["variant"] == "workbench"

    def test_invalid_config(self, tmp_path: Path):
        path = tmp_path / "provision.yml"
        path.write_text("variant: connect\n")
        result = CliRunner().invoke(cli, ["--config", str(path), "config", "check"])
        assert result.exit_code == 1
        assert "Configuration errors" in result.output

    def test_invalid_config_json(self, tmp_path: Path):
        path = tmp_path / "provision.yml"
        path.write_text("r:\n  versions: []\n")
        result = CliRunner().invoke(cli, ["--config", str(path), "config", "check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["valid"] is False
        assert len(data["errors"]) > 0


class TestConfigInitCommand:
    def test_writes_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["--variant", "package-manager", "config", "init"])
        assert result.exit_code == 0
        written = tmp_path / "provision.yml"
        assert written.is_file()
        assert load_config(written).variant == "package-manager"

    def test_refuses_overwrite(self, tmp_path: Path):
        target = tmp_path / "provision.yml"
        target.write_text("variant: workbench\n")
        result = CliRunner().invoke(cli, ["config", "init", "--path", str(target)])
        assert result.exit_code == 1
        assert "already exists" in result.output
        assert target.read_text() == "variant: workbench\n"

    def test_force(self, tmp_path: Path):
        target = tmp_path / "provision.yml"
        target.write_text("variant: workbench\n")
        result = CliRunner().invoke(cli, ["config", "init", "--path", str(target), "--force"])
        assert result.exit_code == 0
        assert load_config(target).r.versions == load_config(None, search=False).r.versions


class TestHistoryCommand:
    def test_no_audit_log(self, tmp_path: Path):
        path = write_config(tmp_path / "provision.yml", build_config(tmp_path))
        result = CliRunner().invoke(cli, ["--config", str(path), "history"])
        assert result.exit_code == 0
        assert "No audit_log configured." in result.output

    def test_empty_ledger(self, config_file: Path):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "history"])
        assert result.exit_code == 0
        assert "No runs recorded" in result.output

    def test_records_runs(self, config_file: Path, as_user):
        invoker = CliRunner()
        invoker.invoke(cli, ["--config", str(config_file), "run"], obj=_seams())

        result = invoker.invoke(cli, ["--config", str(config_file), "history", "--json"])
        assert result.exit_code == 0
        entries = json.loads(result.stdout)
        assert len(entries) == 1
        assert entries[0]["status"] == "failed"
        assert entries[0]["failed_step"] == "preflight"

        text = invoker.invoke(cli, ["--config", str(config_file), "history"])
        assert "preflight: Please run as root (or via sudo)." in text.output

    def test_status_filter(self, tmp_path: Path, config_file: Path):
        writer = AuditWriter(tmp_path / "state" / "audit.ndjson")
        writer.write(AuditEntry(run_id="run-a", status="failed", failed_step="r", error="HTTP 404"))
        writer.write(AuditEntry(run_id="run-b", status="ok"))

        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "history", "--status", "ok", "--json"]
        )
        assert result.exit_code == 0
        assert [e["run_id"] for e in json.loads(result.stdout)] == ["run-b"]
