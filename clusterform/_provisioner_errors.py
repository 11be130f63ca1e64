"""Exception hierarchy for the cluster provisioner.

Every failure raised by the provisioning core derives from
``ProvisionerError`` so callers can catch a single base error when they do not
care which stage failed.

Examples
--------
>>> raise RenderError("unknown target provider 'gcpx'")
"""

from __future__ import annotations

from collections import abc as cabc
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from clusterform._provisioner_models import ClusterInfo, EngineState, TofuResult

VALIDATION_PREFIX = "input validation failed with the following information: "
VIOLATION_SEPARATOR = "; "


class ProvisionerError(Exception):
    """Base error for cluster provisioning helpers.

    Parameters
    ----------
    message
        Human-readable error message describing the failure.
    """


class ValidationError(ProvisionerError):
    """Raised when cluster or provider input fails validation.

    Every violated rule is kept in ``violations``, in the order the validator
    checked them.

    Examples
    --------
    >>> err = ValidationError(["Cluster.Location cannot be empty"])
    >>> err.violations
    ('Cluster.Location cannot be empty',)
    """

    def __init__(self, violations: cabc.Iterable[str]) -> None:
        self.violations = tuple(violations)
        super().__init__(VALIDATION_PREFIX + VIOLATION_SEPARATOR.join(self.violations))


class UnsupportedBackendError(ProvisionerError):
    """Raised when no operator or backend exists for the requested type."""


class RenderError(ProvisionerError):
    """Raised when an infrastructure document cannot be expanded."""


class EngineError(ProvisionerError):
    """Raised when an OpenTofu command fails.

    ``state`` always holds the engine state captured after the failing
    command, so a partially applied run is never lost.
    """

    def __init__(
        self,
        message: str,
        *,
        state: EngineState,
        result: TofuResult | None = None,
    ) -> None:
        super().__init__(message)
        self.state = state
        self.result = result


class ClusterInfoError(ProvisionerError):
    """Base for failures that still produced cluster information."""

    def __init__(self, message: str, *, cluster_info: ClusterInfo) -> None:
        super().__init__(message)
        self.cluster_info = cluster_info


class ApplyError(ClusterInfoError):
    """Raised when applying a document fails.

    ``cluster_info`` carries the captured engine state and an ``Errored``
    phase so cleanup can be retried.
    """


class OutputDecodeError(ClusterInfoError):
    """Raised when an apply succeeded but an output could not be decoded."""


class ExternalLookupError(ProvisionerError):
    """Raised when a Kubernetes lookup fails."""


class InstallationError(ProvisionerError):
    """Raised when the installation resource reports an error state.

    Examples
    --------
    >>> err = InstallationError("install failed", [])
    >>> err.entries
    ()
    """

    def __init__(
        self,
        message: str,
        entries: cabc.Iterable[InstallationErrorEntry] = (),
    ) -> None:
        self.short_message = message
        self.entries = tuple(entries)
        details = "".join(
            f"\n- {entry.component}: {entry.log} (occurrences: {entry.occurrences})"
            for entry in self.entries
        )
        super().__init__(f"{message}{details}")


class InstallationErrorEntry(NamedTuple):
    """One component failure recorded by the installation controller."""

    component: str
    log: str
    occurrences: int


__all__ = [
    "ApplyError",
    "ClusterInfoError",
    "EngineError",
    "ExternalLookupError",
    "InstallationError",
    "InstallationErrorEntry",
    "OutputDecodeError",
    "ProvisionerError",
    "RenderError",
    "UnsupportedBackendError",
    "ValidationError",
]
