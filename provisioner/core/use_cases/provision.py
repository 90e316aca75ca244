"""
Provision use case — the full vertical slice for one run.

Builds the context, plans the variant's steps, validates the artifact
chain, executes, and records the outcome in the audit ledger.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.adapters.base import CommandRunner
from provisioner.adapters.shell import SubprocessRunner
from provisioner.core.engine.context import Fetcher, Prober, ProvisionContext
from provisioner.core.engine.orchestrator import (
    ProvisionReport,
    build_plan,
    describe_plan,
    execute_plan,
    generate_run_id,
    validate_plan,
)
from provisioner.core.errors import PlanError
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.step import StepResult
from provisioner.core.persistence.audit import AuditEntry, AuditWriter
from provisioner.core.services.download import download
from provisioner.core.services.service_status import probe_http
from provisioner.core.services.smoke import run_smoke_tests

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Result of a provisioning request."""

    config: ProvisionConfig | None = None
    plan: list[dict] = field(default_factory=list)
    report: ProvisionReport | None = None
    dry_run: bool = False
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        if self.report is not None and self.report.failed:
            return 1
        return 0

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result
        if self.config is not None:
            result["config"] = self.config.summary()
        result["plan"] = self.plan
        result["dry_run"] = self.dry_run
        if self.report is not None:
            result["report"] = self.report.to_dict()
        return result


def build_context(
    config: ProvisionConfig,
    *,
    runner: CommandRunner | None = None,
    fetch: Fetcher | None = None,
    probe: Prober | None = None,
) -> ProvisionContext:
    """Assemble a context, defaulting every seam to the real host."""
    return ProvisionContext(
        config=config,
        runner=runner or SubprocessRunner(default_timeout=config.command_timeout),
        fetch=fetch or download,
        probe=probe or probe_http,
    )


def run_provision(
    config: ProvisionConfig,
    *,
    runner: CommandRunner | None = None,
    fetch: Fetcher | None = None,
    probe: Prober | None = None,
    dry_run: bool = False,
    skip_smoke: bool = False,
) -> ProvisionResult:
    """Plan and (unless ``dry_run``) execute a full provisioning run.

    Args:
        config: Validated configuration.
        runner: Command runner (default: real subprocesses).
        fetch: Download callable (default: urllib).
        probe: HTTP probe callable (default: urllib).
        dry_run: If True, validate and describe the plan without executing.
        skip_smoke: If True, leave out the smoke-test step.

    Returns:
        ProvisionResult with the plan and, when executed, the report.
    """
    result = ProvisionResult(config=config, dry_run=dry_run)

    steps = build_plan(config, skip_smoke=skip_smoke)
    try:
        validate_plan(steps, config)
    except PlanError as e:
        result.error = str(e)
        return result
    result.plan = describe_plan(steps, config)

    if dry_run:
        return result

    ctx = build_context(config, runner=runner, fetch=fetch, probe=probe)
    report = execute_plan(steps, ctx, run_id=generate_run_id())
    result.report = report

    if config.audit_log:
        _write_audit(Path(config.audit_log), config, report)

    return result


def run_smoke_only(
    config: ProvisionConfig,
    *,
    runner: CommandRunner | None = None,
    probe: Prober | None = None,
) -> StepResult:
    """Run just the diagnostic pass against an already provisioned host."""
    ctx = build_context(config, runner=runner, probe=probe)
    start = time.monotonic()
    checks = run_smoke_tests(ctx)
    passed = sum(1 for c in checks if c.ok)
    result = StepResult.diagnostic("smoke", checks, message=f"{passed}/{len(checks)} checks passed")
    result.duration_ms = int((time.monotonic() - start) * 1000)
    return result


def _write_audit(path: Path, config: ProvisionConfig, report: ProvisionReport) -> None:
    failed = report.failed_step
    entry = AuditEntry(
        run_id=report.run_id,
        variant=config.variant,
        product_version=str(config.product.version),
        r_versions=list(config.r.versions),
        python_versions=list(config.python.versions),
        quarto_versions=list(config.quarto.versions) if config.installs_quarto else [],
        status=report.status,
        steps={r.step: r.status for r in report.results},
        failed_step=failed.step if failed else None,
        error=failed.error if failed else None,
        duration_ms=report.duration_ms,
    )
    AuditWriter(path).write(entry)
