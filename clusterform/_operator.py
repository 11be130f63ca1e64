"""Operators that create and delete clusters on an infrastructure backend.

An operator is selected once, from an :class:`OperatorType`, when a
provisioner is built. Unregistered operator types resolve to
:class:`UnknownOperator`, which fails every call instead of falling back to a
working backend.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections import abc as cabc
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from clusterform._provisioner_errors import (
    ApplyError,
    EngineError,
    OutputDecodeError,
    UnsupportedBackendError,
)
from clusterform._provisioner_models import (
    ClusterInfo,
    ClusterStatus,
    EngineState,
    Phase,
    ProviderPlugin,
    ProviderType,
)
from clusterform._shoot_template import expand_shoot_template, render_gke_document
from clusterform._tofu import CommandRunner, TofuPlatform

logger = logging.getLogger(__name__)

ENDPOINT_OUTPUT = "endpoint"
CERTIFICATE_OUTPUT = "cluster_ca_certificate"

GOOGLE_PLUGIN = ProviderPlugin("google", "hashicorp/google")
GARDENER_PLUGIN = ProviderPlugin("gardener", "kyma-incubator/gardener")


class OperatorType(StrEnum):
    """Operator implementations a provisioner can be built with."""

    TERRAFORM = "terraform"
    UNKNOWN = "unknown"


class Operator(Protocol):
    """Create and delete capability bound to one infrastructure backend."""

    def create(
        self,
        provider_type: ProviderType,
        configuration: cabc.Mapping[str, object],
    ) -> ClusterInfo: ...

    def delete(
        self,
        state: EngineState,
        provider_type: ProviderType,
        configuration: cabc.Mapping[str, object],
    ) -> None: ...


class UnknownOperator:
    """Operator used when no implementation is registered for a type."""

    def create(
        self,
        provider_type: ProviderType,
        configuration: cabc.Mapping[str, object],
    ) -> ClusterInfo:
        msg = f"unknown operator: cannot create {provider_type} cluster"
        raise UnsupportedBackendError(msg)

    def delete(
        self,
        state: EngineState,
        provider_type: ProviderType,
        configuration: cabc.Mapping[str, object],
    ) -> None:
        msg = f"unknown operator: cannot delete {provider_type} cluster"
        raise UnsupportedBackendError(msg)


def _errored(state: EngineState) -> ClusterInfo:
    return ClusterInfo(
        status=ClusterStatus(Phase.ERRORED),
        internal_state=state,
    )


class TofuOperator:
    """Operator that applies OpenTofu documents.

    Parameters
    ----------
    runner
        Command runner handed to every :class:`TofuPlatform`.
    binary
        OpenTofu executable used when no runner is given.
    work_root
        Parent directory for the per-apply working directories.
    """

    def __init__(
        self,
        *,
        runner: CommandRunner | None = None,
        binary: str = "tofu",
        work_root: Path | None = None,
    ) -> None:
        self._runner = runner
        self._binary = binary
        self._work_root = work_root

    def create(
        self,
        provider_type: ProviderType,
        configuration: cabc.Mapping[str, object],
    ) -> ClusterInfo:
        """Create a cluster and return its provider-related information.

        Raises
        ------
        ApplyError
            If the apply fails; the error carries the captured state.
        OutputDecodeError
            If the certificate output is not valid base64.
        """
        platform = self.new_platform(provider_type, configuration)
        try:
            result = platform.apply(EngineState.empty())
        except EngineError as exc:
            msg = f"unable to provision cluster: {exc}"
            raise ApplyError(msg, cluster_info=_errored(exc.state)) from exc

        certificate = b""
        if CERTIFICATE_OUTPUT in result.outputs:
            try:
                certificate = base64.b64decode(
                    str(result.outputs[CERTIFICATE_OUTPUT]), validate=True
                )
            except (binascii.Error, ValueError) as exc:
                msg = f"unable to decode certificate data: {exc}"
                raise OutputDecodeError(
                    msg, cluster_info=_errored(result.state)
                ) from exc
        endpoint = ""
        if ENDPOINT_OUTPUT in result.outputs:
            endpoint = str(result.outputs[ENDPOINT_OUTPUT])

        logger.info("Cluster provisioned with endpoint %s", endpoint or "<none>")
        return ClusterInfo(
            status=ClusterStatus(Phase.PROVISIONED),
            internal_state=result.state,
            endpoint=endpoint,
            certificate_authority_data=certificate,
        )

    def delete(
        self,
        state: EngineState,
        provider_type: ProviderType,
        configuration: cabc.Mapping[str, object],
    ) -> None:
        """Destroy every resource tracked by *state*."""
        platform = self.new_platform(provider_type, configuration)
        try:
            platform.apply(state, destroy=True)
        except EngineError as exc:
            msg = f"unable to deprovision cluster: {exc}"
            raise ApplyError(msg, cluster_info=_errored(exc.state)) from exc

    def new_platform(
        self,
        provider_type: ProviderType,
        configuration: cabc.Mapping[str, object],
    ) -> TofuPlatform:
        """Build the platform for *provider_type* with every key bound."""
        match provider_type:
            case ProviderType.GCP:
                document = render_gke_document(configuration)
                plugin = GOOGLE_PLUGIN
            case ProviderType.GARDENER:
                document = expand_shoot_template(configuration)
                plugin = GARDENER_PLUGIN
            case ProviderType.AWS | ProviderType.AZURE:
                msg = f"{provider_type} not supported yet"
                raise UnsupportedBackendError(msg)
            case _:
                msg = "unknown provider"
                raise UnsupportedBackendError(msg)

        platform = TofuPlatform(
            document,
            plugin,
            runner=self._runner,
            binary=self._binary,
            work_root=self._work_root,
        )
        for key, value in configuration.items():
            platform.var(key, value)
        return platform


_OPERATORS: dict[OperatorType, cabc.Callable[[], Operator]] = {
    OperatorType.TERRAFORM: TofuOperator,
}


def new_operator(operator_type: OperatorType | str) -> Operator:
    """Return the operator registered for *operator_type*.

    Examples
    --------
    >>> type(new_operator("terraform")).__name__
    'TofuOperator'
    >>> type(new_operator("pulumi")).__name__
    'UnknownOperator'
    """
    factory = _OPERATORS.get(operator_type, UnknownOperator)
    return factory()
