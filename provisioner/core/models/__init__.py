"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from provisioner.core.models import ProvisionConfig, StepResult, Artifact
"""

from provisioner.core.models.config import (
    DriversConfig,
    ProductConfig,
    ProvisionConfig,
    PythonConfig,
    QuartoConfig,
    RConfig,
    SmokeConfig,
)
from provisioner.core.models.step import Artifact, CheckResult, StepResult

__all__ = [
    # step.py
    "Artifact",
    "CheckResult",
    # config.py
    "DriversConfig",
    "ProductConfig",
    "ProvisionConfig",
    "PythonConfig",
    "QuartoConfig",
    "RConfig",
    "SmokeConfig",
    "StepResult",
]
