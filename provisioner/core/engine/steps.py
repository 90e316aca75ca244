"""
Pipeline steps — one class per provisioning stage.

Each step declares which artifacts it needs and which it leaves
behind, so the orchestrator can validate the whole chain before
anything runs and re-check required paths right before each step.

Steps raise on failure; the orchestrator turns exceptions into fatal
StepResults.  A step only returns a non-ok result itself for purely
diagnostic outcomes (smoke tests).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from provisioner.core.engine.context import ProvisionContext
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.step import Artifact, StepResult
from provisioner.core.services.drivers_install import install_drivers
from provisioner.core.services.packages import install_base_deps
from provisioner.core.services.preflight import detect_architecture, require_root
from provisioner.core.services.product_install import install_product
from provisioner.core.services.python_install import (
    install_python_versions,
    install_uv,
    python_bin,
    uv_path,
)
from provisioner.core.services.quarto_install import install_quarto_versions, quarto_bin
from provisioner.core.services.r_install import install_r_versions, r_bin
from provisioner.core.services.smoke import run_smoke_tests


class Step(ABC):
    """Abstract base class for pipeline steps."""

    #: Identifier used in plans, logs, and reports
    name: str = ""
    #: Human-readable one-liner
    title: str = ""

    def requires(self, config: ProvisionConfig) -> list[str]:
        """Artifact names that must have been produced by earlier steps."""
        return []

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        """Artifacts this step leaves behind on success."""
        return []

    @abstractmethod
    def run(self, ctx: ProvisionContext) -> StepResult:
        """Perform the step.  May raise ProvisionError / CommandError."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class PreflightStep(Step):
    name = "preflight"
    title = "Check privileges and detect architecture"

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [Artifact(name="arch"), Artifact(name="workdir", paths=[config.workdir])]

    def run(self, ctx: ProvisionContext) -> StepResult:
        require_root()
        ctx.arch = detect_architecture(ctx.runner)
        ctx.workdir.mkdir(parents=True, exist_ok=True)
        return StepResult.success(self.name, f"architecture {ctx.arch.deb}", metadata=ctx.arch.to_dict())


class BaseDepsStep(Step):
    name = "base-deps"
    title = "Install base OS packages"

    def requires(self, config: ProvisionConfig) -> list[str]:
        return ["arch"]

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [Artifact(name="base-deps")]

    def run(self, ctx: ProvisionContext) -> StepResult:
        packages = install_base_deps(ctx)
        return StepResult.success(self.name, f"{len(packages)} package(s)", metadata={"packages": packages})


class RStep(Step):
    name = "r"
    title = "Install R versions"

    def requires(self, config: ProvisionConfig) -> list[str]:
        return ["arch", "workdir", "base-deps"]

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [
            Artifact(
                name="r-runtimes",
                paths=[str(r_bin(config.r, v)) for v in config.r.versions],
            )
        ]

    def run(self, ctx: ProvisionContext) -> StepResult:
        versions = install_r_versions(ctx)
        return StepResult.success(self.name, "R " + ", ".join(versions))


class UvStep(Step):
    name = "uv"
    title = "Bootstrap uv"

    def requires(self, config: ProvisionConfig) -> list[str]:
        return ["workdir", "base-deps"]

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [Artifact(name="uv", paths=[str(uv_path(config.python))])]

    def run(self, ctx: ProvisionContext) -> StepResult:
        if install_uv(ctx):
            return StepResult.success(self.name, "uv installed")
        return StepResult.skip(self.name, "uv already present")


class PythonStep(Step):
    name = "python"
    title = "Install Python versions via uv"

    def requires(self, config: ProvisionConfig) -> list[str]:
        return ["uv"]

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [
            Artifact(
                name="python-runtimes",
                paths=[str(python_bin(config.python, v)) for v in config.python.versions],
            )
        ]

    def run(self, ctx: ProvisionContext) -> StepResult:
        resolved = install_python_versions(ctx)
        return StepResult.success(
            self.name,
            "Python " + ", ".join(resolved),
            metadata={"install_dirs": resolved},
        )


class QuartoStep(Step):
    name = "quarto"
    title = "Install Quarto versions"

    def requires(self, config: ProvisionConfig) -> list[str]:
        return ["arch", "workdir", "base-deps"]

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [
            Artifact(
                name="quarto-runtimes",
                paths=[str(quarto_bin(config.quarto, v)) for v in config.quarto.versions],
            )
        ]

    def run(self, ctx: ProvisionContext) -> StepResult:
        versions = install_quarto_versions(ctx)
        return StepResult.success(self.name, "Quarto " + ", ".join(versions))


class ProductStep(Step):
    name = "product"
    title = "Install server product"

    def requires(self, config: ProvisionConfig) -> list[str]:
        return ["arch", "workdir", "base-deps"]

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [Artifact(name="product")]

    def run(self, ctx: ProvisionContext) -> StepResult:
        info = install_product(ctx)
        result = StepResult.success(
            self.name,
            f"{ctx.config.product_label} {info['version']}",
            metadata=info,
        )
        if info["enabled"] != "yes":
            result.warnings.append(f"systemctl enable --now {info['service']} did not succeed")
        return result


class DriversStep(Step):
    name = "drivers"
    title = "Install Posit Pro ODBC drivers"

    def requires(self, config: ProvisionConfig) -> list[str]:
        return ["arch", "workdir", "base-deps"]

    def produces(self, config: ProvisionConfig) -> list[Artifact]:
        return [Artifact(name="odbc-drivers")]

    def run(self, ctx: ProvisionContext) -> StepResult:
        info = install_drivers(ctx)
        result = StepResult.success(self.name, f"drivers {ctx.config.drivers.version}", metadata=info)
        if not info["appended"] and not Path(ctx.config.drivers.sample_path).is_file():
            result.warnings.append(f"{ctx.config.drivers.sample_path} not found; registry not updated")
        return result


class SmokeStep(Step):
    name = "smoke"
    title = "Run smoke tests"

    def requires(self, config: ProvisionConfig) -> list[str]:
        names = ["r-runtimes", "python-runtimes"]
        if config.installs_quarto:
            names.append("quarto-runtimes")
        names.append("product")
        if config.installs_drivers:
            names.append("odbc-drivers")
        return names

    def run(self, ctx: ProvisionContext) -> StepResult:
        checks = run_smoke_tests(ctx)
        passed = sum(1 for c in checks if c.ok)
        return StepResult.diagnostic(self.name, checks, message=f"{passed}/{len(checks)} checks passed")
