"""
Tests for service control and probes — systemctl, ss parsing, port resolution.
"""

import textwrap
from pathlib import Path

from helpers import SS_HEADER
from provisioner.adapters.base import CommandResult
from provisioner.adapters.mock import MockRunner
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.services.service_status import (
    _listening_ports,
    port_from_product_config,
    port_is_listening,
    resolve_service_port,
    run_diagnostic,
    service_is_active,
)

SS_OUTPUT = textwrap.dedent(f"""\
    {SS_HEADER}
    LISTEN 0      4096       127.0.0.53%lo:53         0.0.0.0:*
    LISTEN 0      128          0.0.0.0:22           0.0.0.0:*
    LISTEN 0      4096               *:4242             *:*
    LISTEN 0      511             [::]:8787          [::]:*
""")


class TestRunDiagnostic:
    def test_failure_never_raises(self):
        runner = MockRunner()
        runner.set_failure(["systemctl", "status"], returncode=3, stderr="inactive (dead)")
        result = run_diagnostic(runner, ["systemctl", "status", "rstudio-pm"])
        assert result.returncode == 3

    def test_logs_output(self, caplog):
        runner = MockRunner()
        runner.set_output(["odbcinst"], "[Posit Oracle]\n[Posit SQL Server]\n")
        with caplog.at_level("INFO"):
            run_diagnostic(runner, ["odbcinst", "-q", "-d"])
        assert "[Posit Oracle]" in caplog.text
        assert "[Posit SQL Server]" in caplog.text

    def test_unchecked_call(self):
        runner = MockRunner()
        run_diagnostic(runner, ["ss", "-lnt"], timeout=3)
        assert runner.call_log[0].timeout == 3


class TestServiceIsActive:
    def test_active(self):
        runner = MockRunner()
        runner.set_output(["systemctl", "is-active"], "active\n")
        assert service_is_active(runner, "rstudio-pm") == (True, "active")
        assert runner.commands == [["systemctl", "is-active", "rstudio-pm"]]

    def test_inactive(self):
        runner = MockRunner()
        runner.set_response(
            ["systemctl", "is-active"],
            CommandResult(cmd=["systemctl", "is-active"], returncode=3, stdout="inactive\n"),
        )
        assert service_is_active(runner, "rstudio-server") == (False, "inactive")


class TestPorts:
    def test_parse_ss(self):
        assert _listening_ports(SS_OUTPUT) == {53, 22, 4242, 8787}

    def test_ignores_garbage(self):
        assert _listening_ports("nonsense\n\nLISTEN 0 1 not-a-port x\n") == set()

    def test_port_listening(self):
        runner = MockRunner()
        runner.set_output(["ss", "-lnt"], SS_OUTPUT)
        assert port_is_listening(runner, 4242) == (True, "port 4242 listening")

    def test_port_not_listening(self):
        runner = MockRunner()
        runner.set_output(["ss", "-lnt"], SS_OUTPUT)
        listening, detail = port_is_listening(runner, 3939)
        assert not listening
        assert "not listening" in detail

    def test_ss_missing(self):
        runner = MockRunner()
        runner.set_failure(["ss"], returncode=127, stderr="ss: command not found")
        listening, detail = port_is_listening(runner, 8787)
        assert not listening
        assert "exit 127" in detail


class TestPortResolution:
    def test_default(self, tmp_path: Path):
        cfg = ProvisionConfig(variant="package-manager", product={"config_file": str(tmp_path / "none.gcfg")})
        assert resolve_service_port(cfg) == 4242

    def test_explicit_wins(self, tmp_path: Path):
        conf = tmp_path / "rserver.conf"
        conf.write_text("www-port=8080\n")
        cfg = ProvisionConfig(product={"port": 9000, "config_file": str(conf)})
        assert resolve_service_port(cfg) == 9000

    def test_rserver_conf(self, tmp_path: Path):
        conf = tmp_path / "rserver.conf"
        conf.write_text("# comment\nwww-address=0.0.0.0\nwww-port = 8080\n")
        cfg = ProvisionConfig(product={"config_file": str(conf)})
        assert resolve_service_port(cfg) == 8080

    def test_rserver_conf_without_port(self, tmp_path: Path):
        conf = tmp_path / "rserver.conf"
        conf.write_text("www-address=0.0.0.0\n")
        cfg = ProvisionConfig(product={"config_file": str(conf)})
        assert resolve_service_port(cfg) == 8787

    def test_gcfg_http_section(self, tmp_path: Path):
        conf = tmp_path / "rstudio-pm.gcfg"
        conf.write_text(textwrap.dedent("""\
            [Server]
            Address = http://pm.example.com
            Listen = :9999

            [HTTP]
            ; listen on all interfaces
            Listen = :4343
        """))
        assert port_from_product_config("package-manager", conf) == 4343

    def test_gcfg_without_http_listen(self, tmp_path: Path):
        conf = tmp_path / "rstudio-pm.gcfg"
        conf.write_text("[Server]\nListen = :9999\n")
        assert port_from_product_config("package-manager", conf) is None

    def test_unreadable_config(self, tmp_path: Path):
        assert port_from_product_config("workbench", tmp_path / "missing.conf") is None
