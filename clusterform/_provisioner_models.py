"""Data models for cluster provisioning.

These models provide a small, typed contract shared by the validator, the
template expander, the OpenTofu driver and the provisioner facade, keeping
data flow explicit across module boundaries.

Examples
--------
>>> ClusterStatus(Phase.PROVISIONED).phase.value
'Provisioned'
"""

from __future__ import annotations

from collections import abc as cabc
from dataclasses import dataclass, field
from enum import StrEnum


class ProviderType(StrEnum):
    """Infrastructure backends a provider specification can select."""

    GCP = "gcp"
    AWS = "aws"
    AZURE = "azure"
    GARDENER = "gardener"
    UNKNOWN = "unknown"


class TargetProvider(StrEnum):
    """Cloud targets a Gardener shoot can be scheduled on."""

    GCP = "gcp"
    AWS = "aws"
    AZURE = "azure"

    @property
    def profile(self) -> str:
        """Return the Gardener cloud profile name for the target.

        Examples
        --------
        >>> TargetProvider.AZURE.profile
        'az'
        """
        return _TARGET_PROFILES[self]


_TARGET_PROFILES = {
    TargetProvider.GCP: "gcp",
    TargetProvider.AWS: "aws",
    TargetProvider.AZURE: "az",
}


class Phase(StrEnum):
    """Backend-independent cluster phase."""

    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    PROVISIONED = "Provisioned"
    ERRORED = "Errored"
    UNKNOWN = "Unknown"


@dataclass(frozen=True, slots=True)
class EngineState:
    """Opaque snapshot of infrastructure previously created by the engine.

    The payload is the raw OpenTofu state file text. It is never inspected by
    the provisioner, only carried between a create and the matching destroy.

    Examples
    --------
    >>> EngineState.empty().is_empty
    True
    """

    payload: str = field(default="", repr=False)

    @classmethod
    def empty(cls) -> EngineState:
        """Return the state used for a first create."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.payload.strip()


@dataclass(frozen=True, slots=True)
class ClusterStatus:
    """Current phase of a cluster."""

    phase: Phase


@dataclass(frozen=True, slots=True)
class ClusterInfo:
    """Information returned by a provisioning operation.

    Attributes
    ----------
    endpoint
        API server endpoint reported by the engine outputs.
    certificate_authority_data
        Decoded cluster CA certificate bytes.
    internal_state
        Engine state to hand back when the cluster is deleted.
    status
        Phase observed when the operation finished.
    """

    status: ClusterStatus
    internal_state: EngineState | None = None
    endpoint: str = ""
    certificate_authority_data: bytes = field(default=b"", repr=False)


@dataclass(frozen=True, slots=True)
class ClusterSpec:
    """Cluster requested by the caller."""

    name: str
    node_count: int
    machine_type: str
    kubernetes_version: str
    disk_size_gb: int
    location: str
    cluster_info: ClusterInfo | None = None


@dataclass(frozen=True, slots=True)
class ProviderSpec:
    """Provider the cluster is created on.

    ``custom_configurations`` holds backend-specific keys; which of them are
    required depends on the backend and, for Gardener, on the target
    provider.
    """

    type: ProviderType
    credentials_file_path: str
    project_name: str
    custom_configurations: cabc.Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderPlugin:
    """OpenTofu provider plugin registered with a platform.

    ``name`` must match the ``provider "<name>"`` block of the document.

    Examples
    --------
    >>> ProviderPlugin("google", "hashicorp/google").name
    'google'
    """

    name: str
    source: str
    version: str | None = None


@dataclass(frozen=True, slots=True)
class TofuResult:
    """Result of an OpenTofu command execution.

    Attributes
    ----------
    success
        Whether the command exited with status code ``0``.
    stdout
        Captured standard output.
    stderr
        Captured standard error.
    return_code
        Process exit status code returned by OpenTofu.

    Examples
    --------
    >>> TofuResult(success=True, stdout="ok", stderr="", return_code=0).success
    True
    """

    success: bool
    stdout: str
    stderr: str
    return_code: int


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """State and outputs produced by a successful apply."""

    state: EngineState
    outputs: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class InstallationState:
    """State reported by the installation custom resource."""

    state: str
    description: str = ""
