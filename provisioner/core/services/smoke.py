"""
Smoke tests — observational post-install pass.

Nothing here may abort a run: every check is captured as a
CheckResult and the pass always ends with "Smoke tests complete.".
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from provisioner.core.models.step import CheckResult
from provisioner.core.services.python_install import python_bin
from provisioner.core.services.quarto_install import quarto_bin
from provisioner.core.services.r_install import r_bin
from provisioner.core.services.service_status import (
    port_is_listening,
    resolve_service_port,
    run_diagnostic,
    service_is_active,
)

if TYPE_CHECKING:
    from provisioner.core.engine.context import ProvisionContext

logger = logging.getLogger(__name__)


def _guarded(
    check: Callable[..., CheckResult],
    ctx: ProvisionContext,
    name: str,
    *args: Any,
) -> CheckResult:
    """Run one check; any exception becomes a failed CheckResult."""
    try:
        return check(ctx, name, *args)
    except Exception as e:
        logger.warning("  %s check failed: %s: %s", name, type(e).__name__, e)
        return CheckResult(name=name, ok=False, detail=f"{type(e).__name__}: {e}")


def _version_check(
    ctx: ProvisionContext,
    name: str,
    cmd: Sequence[str],
    head: int | None = None,
) -> CheckResult:
    result = ctx.runner.run(cmd, check=False, timeout=ctx.config.command_timeout)
    lines = result.output.splitlines()
    if head is not None:
        lines = lines[:head]
    for line in lines:
        logger.info("  %s", line)
    if not result.ok:
        logger.warning("  %s failed (exit %d)", name, result.returncode)
        return CheckResult(name=name, ok=False, detail=result.tail(200) or f"exit {result.returncode}")
    return CheckResult(name=name, ok=True, detail=lines[0] if lines else "")


def _service_check(ctx: ProvisionContext, name: str, service: str) -> CheckResult:
    active, state = service_is_active(ctx.runner, service)
    logger.info("  %s: %s", service, state)
    return CheckResult(name=name, ok=active, detail=state)


def _port_check(ctx: ProvisionContext, name: str, port: int) -> CheckResult:
    listening, detail = port_is_listening(ctx.runner, port)
    logger.info("  %s", detail)
    return CheckResult(name=name, ok=listening, detail=detail)


def _http_check(ctx: ProvisionContext, name: str, url: str) -> CheckResult:
    try:
        status = ctx.probe(url, timeout=ctx.config.smoke.http_timeout)
    except (OSError, ValueError) as e:
        logger.warning("  HTTP check failed: %s", e)
        return CheckResult(name=name, ok=False, detail=str(e))
    logger.info("  HTTP %d", status)
    return CheckResult(name=name, ok=status < 500, detail=f"HTTP {status}")


def _odbc_check(ctx: ProvisionContext, name: str) -> CheckResult:
    listing = run_diagnostic(ctx.runner, ["odbcinst", "-q", "-d"])
    detail = f"{len(listing.stdout.splitlines())} driver(s)" if listing.ok else listing.tail(200)
    return CheckResult(name=name, ok=listing.ok, detail=detail)


def run_smoke_tests(ctx: ProvisionContext) -> list[CheckResult]:
    """Re-verify every runtime and check the product service.

    Returns:
        One CheckResult per check, in execution order.
    """
    config = ctx.config
    checks: list[CheckResult] = []
    logger.info("Running quick smoke tests...")

    logger.info("R versions:")
    for v in config.r.versions:
        name = f"R {v}"
        cmd = [str(r_bin(config.r, v)), "--version"]
        checks.append(_guarded(_version_check, ctx, name, cmd, 2))

    logger.info("Python versions:")
    for v in config.python.versions:
        name = f"Python {v}"
        cmd = [str(python_bin(config.python, v)), "--version"]
        checks.append(_guarded(_version_check, ctx, name, cmd))

    if config.installs_quarto:
        logger.info("Quarto versions:")
        for v in config.quarto.versions:
            name = f"Quarto {v}"
            cmd = [str(quarto_bin(config.quarto, v)), "--version"]
            checks.append(_guarded(_version_check, ctx, name, cmd))

    service = config.product.service or ""
    port = resolve_service_port(config)
    logger.info("%s service + listener (port %d):", config.product_label, port)
    checks.append(_guarded(_service_check, ctx, f"service {service}", service))
    checks.append(_guarded(_port_check, ctx, f"port {port}", port))

    url = f"http://{config.smoke.host}:{port}/"
    logger.info("%s HTTP check (local):", config.product_label)
    checks.append(_guarded(_http_check, ctx, f"http {url}", url))

    if config.installs_drivers:
        logger.info("ODBC drivers:")
        checks.append(_guarded(_odbc_check, ctx, "odbc drivers"))

    failed = sum(1 for c in checks if not c.ok)
    if failed:
        logger.warning("%d of %d smoke check(s) did not pass", failed, len(checks))
    logger.info("Smoke tests complete.")
    return checks
