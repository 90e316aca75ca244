"""
Provisioning errors — raised by steps, converted to results by the engine.

Steps raise; the orchestrator catches and records a fatal StepResult.
Nothing outside the engine should need to catch these except the CLI
(for commands that call services directly, like ``arch``).
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for every provisioning failure."""


class PreconditionError(ProvisionError):
    """A required condition does not hold (not root, missing file, ...)."""


class UnsupportedArchitectureError(PreconditionError):
    """The host CPU architecture has no published packages."""


class MissingArtifactError(PreconditionError):
    """A file or directory an earlier step should have produced is absent."""


class AliasResolutionError(PreconditionError):
    """A versioned install directory could not be resolved unambiguously."""


class DownloadError(ProvisionError):
    """An HTTP fetch failed."""


class PlanError(ProvisionError):
    """The step plan is inconsistent (a required artifact is never produced)."""
