"""
Step results — the explicit outcome of every pipeline step.

Steps raise; the engine records.  A StepResult says whether a step
succeeded, was skipped, failed in a purely diagnostic way (never
stops the run), or failed fatally (stops the run).  Diagnostic
probes are captured individually as CheckResults.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

StepStatus = Literal["ok", "skipped", "diagnostic", "fatal"]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Artifact(BaseModel):
    """Something a step leaves behind for later steps.

    ``paths`` lists the filesystem paths that must exist for the
    artifact to be considered present; an artifact with no paths
    (e.g. a detected architecture) is tracked by name only.
    """

    name: str
    paths: list[str] = Field(default_factory=list)


class CheckResult(BaseModel):
    """One diagnostic probe (version query, port check, HTTP probe...)."""

    name: str
    ok: bool
    detail: str = ""


class StepResult(BaseModel):
    """Outcome of one pipeline step."""

    step: str
    status: StepStatus = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    message: str = ""
    error: str | None = None
    checks: list[CheckResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def fatal(self) -> bool:
        return self.status == "fatal"

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.ok]

    @classmethod
    def success(cls, step: str, message: str = "", **kwargs: Any) -> StepResult:
        """Create a success result."""
        return cls(step=step, status="ok", message=message, **kwargs)

    @classmethod
    def skip(cls, step: str, reason: str = "", **kwargs: Any) -> StepResult:
        """Create a skip result."""
        return cls(step=step, status="skipped", message=reason, **kwargs)

    @classmethod
    def diagnostic(
        cls,
        step: str,
        checks: list[CheckResult],
        message: str = "",
        **kwargs: Any,
    ) -> StepResult:
        """Create a result from diagnostic checks.

        The status is ``ok`` when every check passed and ``diagnostic``
        otherwise; it is never fatal.
        """
        status: StepStatus = "ok" if all(c.ok for c in checks) else "diagnostic"
        return cls(step=step, status=status, checks=checks, message=message, **kwargs)

    @classmethod
    def failure(cls, step: str, error: str, **kwargs: Any) -> StepResult:
        """Create a fatal result."""
        return cls(step=step, status="fatal", error=error, **kwargs)
