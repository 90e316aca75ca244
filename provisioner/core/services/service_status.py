"""
Service control and probes — systemctl, listening ports, local HTTP.

Control calls that are allowed to fail (enable/start/status) and every
probe go through ``run_diagnostic``: they are logged, never raised.
"""

from __future__ import annotations

import http.client
import logging
import re
import urllib.error
import urllib.request
from collections.abc import Sequence
from pathlib import Path

from provisioner.adapters.base import CommandResult, CommandRunner
from provisioner.core.models.config import ProvisionConfig, default_port

logger = logging.getLogger(__name__)

_WWW_PORT_RE = re.compile(r"^\s*www-port\s*=\s*(\d+)\s*$")
_SECTION_RE = re.compile(r"^\s*\[\s*([^\]\s\"]+)")
_LISTEN_RE = re.compile(r"^\s*Listen\s*=\s*(\S+)\s*$", re.IGNORECASE)


def run_diagnostic(
    runner: CommandRunner,
    cmd: Sequence[str],
    *,
    timeout: float | None = None,
) -> CommandResult:
    """Run a command whose failure must never affect the run.

    Output (if any) is logged at INFO; a failure is logged as a warning.
    """
    result = runner.run(cmd, check=False, timeout=timeout)
    if result.output:
        for line in result.output.splitlines():
            logger.info("  %s", line)
    if not result.ok:
        logger.warning("(non-fatal) %s exited %d", " ".join(result.cmd), result.returncode)
    return result


# ── systemd ─────────────────────────────────────────────────────


def enable_service(runner: CommandRunner, service: str, *, timeout: float | None = None) -> bool:
    """Reload unit files, then enable and start ``service``.

    ``daemon-reload`` must succeed (raises CommandError otherwise);
    ``enable --now`` and the status dump are diagnostic only, because the
    service may already be configured or half-running from an earlier
    attempt.

    Returns:
        Whether ``enable --now`` succeeded.
    """
    logger.info("Enabling and starting %s service...", service)
    runner.run(["systemctl", "daemon-reload"], timeout=timeout)
    enabled = run_diagnostic(runner, ["systemctl", "enable", "--now", service], timeout=timeout)

    logger.info("%s status:", service)
    run_diagnostic(
        runner, ["systemctl", "--no-pager", "--full", "status", service], timeout=timeout
    )
    return enabled.ok


def service_is_active(runner: CommandRunner, service: str) -> tuple[bool, str]:
    """``systemctl is-active`` → (active, state)."""
    result = runner.run(["systemctl", "is-active", service], check=False)
    state = result.stdout.strip() or result.stderr.strip() or "unknown"
    return result.ok and state == "active", state


# ── Ports ───────────────────────────────────────────────────────


def _listening_ports(ss_output: str) -> set[int]:
    ports: set[int] = set()
    for line in ss_output.splitlines():
        fields = line.split()
        if len(fields) < 4 or fields[0] == "State":
            continue
        _, _, port = fields[3].rpartition(":")
        if port.isdigit():
            ports.add(int(port))
    return ports


def port_is_listening(runner: CommandRunner, port: int) -> tuple[bool, str]:
    """Check ``ss -lnt`` for a TCP listener on ``port`` → (listening, detail)."""
    result = runner.run(["ss", "-lnt"], check=False)
    if not result.ok:
        return False, f"ss failed (exit {result.returncode}): {result.tail(200)}"
    listening = port in _listening_ports(result.stdout)
    return listening, f"port {port} {'listening' if listening else 'not listening'}"


# ── HTTP ────────────────────────────────────────────────────────


def probe_http(url: str, *, timeout: float = 10.0) -> int:
    """GET ``url`` and return the HTTP status code.

    Error statuses (4xx/5xx) are returned, not raised. Connection
    failures raise ``urllib.error.URLError`` / ``OSError``, and so does a
    peer that answers with something other than HTTP.
    """
    req = urllib.request.Request(url, headers={"User-Agent": "posit-provisioner/1.0"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.getcode()
    except urllib.error.HTTPError as e:
        return e.code
    except http.client.HTTPException as e:
        raise ConnectionError(f"Not an HTTP response from {url}: {e!r}") from e


# ── Port resolution ─────────────────────────────────────────────


def _port_from_rserver_conf(text: str) -> int | None:
    for line in text.splitlines():
        m = _WWW_PORT_RE.match(line)
        if m:
            return int(m.group(1))
    return None


def _port_from_gcfg(text: str) -> int | None:
    section = ""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith((";", "#")):
            continue
        m = _SECTION_RE.match(stripped)
        if m:
            section = m.group(1).lower()
            continue
        if section != "http":
            continue
        m = _LISTEN_RE.match(stripped)
        if m:
            _, _, port = m.group(1).strip("\"'").rpartition(":")
            if port.isdigit():
                return int(port)
    return None


def port_from_product_config(variant: str, path: Path) -> int | None:
    """Read the listening port from the product's own configuration file."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    if variant == "workbench":
        return _port_from_rserver_conf(text)
    return _port_from_gcfg(text)


def resolve_service_port(config: ProvisionConfig) -> int:
    """Port the product should listen on.

    Precedence: explicit ``product.port`` > the product's own config
    file > the documented default for the variant.
    """
    if config.product.port is not None:
        return config.product.port
    if config.product.config_file:
        port = port_from_product_config(config.variant, Path(config.product.config_file))
        if port is not None:
            logger.debug("Port %d read from %s", port, config.product.config_file)
            return port
    return default_port(config.variant)
