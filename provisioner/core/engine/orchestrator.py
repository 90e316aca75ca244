"""
Engine orchestrator — the forward-only provisioning loop.

Flow:
    config → build plan → validate artifact chain → execute step by step → report

There is no branching beyond the variant's fixed step list.  The first
fatal result ends the run; remaining steps are reported as skipped.
Diagnostic results never stop anything.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from provisioner.adapters.base import CommandError
from provisioner.core.engine.context import ProvisionContext
from provisioner.core.engine.steps import (
    BaseDepsStep,
    DriversStep,
    PreflightStep,
    ProductStep,
    PythonStep,
    QuartoStep,
    RStep,
    SmokeStep,
    Step,
    UvStep,
)
from provisioner.core.errors import PlanError, ProvisionError
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.step import Artifact, StepResult
from provisioner.core.observability.logging_config import run_log_context
from provisioner.core.services.service_status import resolve_service_port

logger = logging.getLogger(__name__)


@dataclass
class ProvisionReport:
    """Result of executing a plan."""

    run_id: str = ""
    variant: str = ""
    results: list[StepResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failed_step(self) -> StepResult | None:
        for r in self.results:
            if r.fatal:
                return r
        return None

    @property
    def failed(self) -> bool:
        return self.failed_step is not None

    @property
    def status(self) -> str:
        if self.failed:
            return "failed"
        if any(r.status == "diagnostic" for r in self.results):
            return "degraded"
        return "ok"

    def get(self, step: str) -> StepResult | None:
        for r in self.results:
            if r.step == step:
                return r
        return None

    def to_dict(self) -> dict:
        failed = self.failed_step
        return {
            "run_id": self.run_id,
            "variant": self.variant,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "failed_step": failed.step if failed else None,
            "error": failed.error if failed else None,
            "steps": [r.model_dump(mode="json") for r in self.results],
        }


# ── Planning ────────────────────────────────────────────────────


def build_plan(config: ProvisionConfig, *, skip_smoke: bool = False) -> list[Step]:
    """The ordered step list for the configured variant."""
    steps: list[Step] = [PreflightStep(), BaseDepsStep(), RStep(), UvStep(), PythonStep()]
    if config.installs_quarto:
        steps.append(QuartoStep())
    steps.append(ProductStep())
    if config.installs_drivers:
        steps.append(DriversStep())
    if config.smoke.enabled and not skip_smoke:
        steps.append(SmokeStep())
    return steps


def validate_plan(steps: list[Step], config: ProvisionConfig) -> None:
    """Check that every required artifact is produced by an earlier step.

    Raises:
        PlanError: Naming the first missing artifact and its consumer.
    """
    seen_names: set[str] = set()
    available: set[str] = set()
    for step in steps:
        if step.name in seen_names:
            raise PlanError(f"Duplicate step in plan: {step.name}")
        seen_names.add(step.name)

        for needed in step.requires(config):
            if needed not in available:
                raise PlanError(
                    f"Step '{step.name}' requires artifact '{needed}', "
                    "which no earlier step produces"
                )
        available.update(a.name for a in step.produces(config))


def describe_plan(steps: list[Step], config: ProvisionConfig) -> list[dict]:
    """JSON-friendly plan listing for ``plan`` / ``run --dry-run``."""
    return [
        {
            "step": s.name,
            "title": s.title,
            "requires": s.requires(config),
            "produces": [a.model_dump() for a in s.produces(config)],
        }
        for s in steps
    ]


# ── Execution ───────────────────────────────────────────────────


def _missing_paths(
    step: Step,
    config: ProvisionConfig,
    produced: dict[str, tuple[str, Artifact]],
) -> str | None:
    """Describe the first required artifact path that is absent, if any."""
    for name in step.requires(config):
        if name not in produced:
            return f"Missing artifact '{name}' (never produced)"
        producer, artifact = produced[name]
        for path in artifact.paths:
            if not os.path.exists(path):
                return f"Missing artifact '{name}': {path} (expected from step '{producer}')"
    return None


def _run_step(step: Step, ctx: ProvisionContext) -> StepResult:
    try:
        return step.run(ctx)
    except (ProvisionError, CommandError) as e:
        return StepResult.failure(step.name, str(e), metadata={"exception": type(e).__name__})
    except OSError as e:
        return StepResult.failure(step.name, f"{type(e).__name__}: {e}", metadata={"exception": "OSError"})
    except Exception as e:
        logger.debug("Unexpected error in step %s", step.name, exc_info=True)
        return StepResult.failure(
            step.name,
            f"Unexpected error: {type(e).__name__}: {e}",
            metadata={"exception": type(e).__name__},
        )


def execute_plan(
    steps: list[Step],
    ctx: ProvisionContext,
    run_id: str | None = None,
) -> ProvisionReport:
    """Execute all steps strictly in order.

    Args:
        steps: The (validated) plan.
        ctx: Shared run context.
        run_id: Optional identifier; generated when omitted.

    Returns:
        ProvisionReport with one StepResult per planned step.
    """
    config = ctx.config
    report = ProvisionReport(run_id=run_id or generate_run_id(), variant=config.variant)
    run_start = time.monotonic()

    with run_log_context(report.run_id):
        _execute_steps(steps, ctx, report)
        report.duration_ms = int((time.monotonic() - run_start) * 1000)
        if not report.failed:
            _log_summary(config)
    return report


def _execute_steps(steps: list[Step], ctx: ProvisionContext, report: ProvisionReport) -> None:
    config = ctx.config
    produced: dict[str, tuple[str, Artifact]] = {}

    for step in steps:
        if report.failed:
            report.results.append(StepResult.skip(step.name, "not run: an earlier step failed"))
            continue

        logger.debug("Step %s: %s", step.name, step.title)
        start = time.monotonic()

        missing = _missing_paths(step, config, produced)
        if missing:
            result = StepResult.failure(step.name, missing)
        else:
            result = _run_step(step, ctx)

        result.duration_ms = int((time.monotonic() - start) * 1000)
        report.results.append(result)

        if result.fatal:
            logger.error("ERROR: %s", result.error)
            continue

        for artifact in step.produces(config):
            produced[artifact.name] = (step.name, artifact)

        for warning in result.warnings:
            logger.warning("%s: %s", step.name, warning)

        status_marker = "✓" if result.ok else "⊘" if result.status == "skipped" else "!"
        logger.debug("%s %s → %s", status_marker, step.name, result.status)


def _log_summary(config: ProvisionConfig) -> None:
    logger.info("DONE.")
    logger.info("R: %s/<version>", config.r.install_root)
    logger.info("Python: %s/<version>", config.python.install_root)
    if config.installs_quarto:
        logger.info("Quarto: %s/<version>", config.quarto.install_root)
    logger.info("%s: http://<host>:%d", config.product_label, resolve_service_port(config))
    if config.installs_drivers:
        logger.info("ODBC drivers: odbcinst -q -d")


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
