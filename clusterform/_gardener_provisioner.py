"""Provision, inspect and remove Gardener shoot clusters.

:class:`GardenerProvisioner` validates the request, merges the typed cluster
and provider fields with the Gardener custom configuration, and delegates
creation and deletion to the operator chosen at construction. Status and
credentials are read live from the Gardener project namespace.

Examples
--------
>>> provisioner = GardenerProvisioner(OperatorType.TERRAFORM)
>>> cluster = provisioner.provision(cluster, provider)
>>> provisioner.status(cluster, provider).phase
<Phase.PROVISIONED: 'Provisioned'>
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections import abc as cabc
from contextlib import contextmanager
from dataclasses import replace

from kubernetes.client.rest import ApiException

from clusterform._cluster_validation import (
    TARGET_PROVIDER_KEY,
    cannot_be_empty,
    parse_target_provider,
    validate_gardener_inputs,
)
from clusterform._kube_clients import KubeClientFactory, load_kube_clients
from clusterform._operator import Operator, OperatorType, new_operator
from clusterform._provisioner_errors import (
    ClusterInfoError,
    ExternalLookupError,
    RenderError,
    UnsupportedBackendError,
    ValidationError,
)
from clusterform._provisioner_models import (
    ClusterSpec,
    ClusterStatus,
    ProviderSpec,
    ProviderType,
)
from clusterform._shoot_status import shoot_phase

logger = logging.getLogger(__name__)

SHOOT_GROUP = "garden.sapcloud.io"
SHOOT_VERSION = "v1beta1"
SHOOT_PLURAL = "shoots"
KUBECONFIG_SECRET_KEY = "kubeconfig"


def project_namespace(project_name: str) -> str:
    """Return the Gardener namespace of a project.

    Examples
    --------
    >>> project_namespace("frontend")
    'garden-frontend'
    """
    return f"garden-{project_name}"


def kubeconfig_secret_name(cluster_name: str) -> str:
    """Return the name of the secret holding a shoot's kubeconfig.

    Examples
    --------
    >>> kubeconfig_secret_name("preview-1")
    'preview-1.kubeconfig'
    """
    return f"{cluster_name}.kubeconfig"


@contextmanager
def _failure_context(context: str) -> cabc.Iterator[None]:
    """Prefix operator failures with *context*, keeping their type and state."""
    try:
        yield
    except ClusterInfoError as exc:
        msg = f"{context}: {exc}"
        raise type(exc)(msg, cluster_info=exc.cluster_info) from exc
    except (RenderError, UnsupportedBackendError) as exc:
        msg = f"{context}: {exc}"
        raise type(exc)(msg) from exc


def load_configurations(
    cluster: ClusterSpec,
    provider: ProviderSpec,
) -> dict[str, object]:
    """Merge the cluster, provider and custom fields into one configuration map.

    Custom configuration keys override the typed fields. ``target_profile`` is
    derived from ``target_provider`` when it names a known target.
    """
    configuration: dict[str, object] = {
        "cluster_name": cluster.name,
        "credentials_file_path": provider.credentials_file_path,
        "node_count": cluster.node_count,
        "machine_type": cluster.machine_type,
        "disk_size": cluster.disk_size_gb,
        "kubernetes_version": cluster.kubernetes_version,
        "location": cluster.location,
        "namespace": project_namespace(provider.project_name),
    }
    configuration.update(provider.custom_configurations)

    target = parse_target_provider(configuration.get(TARGET_PROVIDER_KEY))
    if target is not None:
        configuration["target_profile"] = target.profile
    return configuration


class GardenerProvisioner:
    """Provisioner for Gardener-managed clusters.

    Parameters
    ----------
    operator_type
        Operator implementation looked up in the registry.
    operator
        Operator instance to use instead of a registry lookup.
    kube_client_factory
        Builds Kubernetes clients from the provider credentials file.
    """

    def __init__(
        self,
        operator_type: OperatorType | str = OperatorType.TERRAFORM,
        *,
        operator: Operator | None = None,
        kube_client_factory: KubeClientFactory = load_kube_clients,
    ) -> None:
        self.operator = operator if operator is not None else new_operator(operator_type)
        self._kube_client_factory = kube_client_factory

    def validate(self, cluster: ClusterSpec, provider: ProviderSpec) -> None:
        """Raise ``ValidationError`` listing every problem with the request."""
        validate_gardener_inputs(cluster, provider)

    def provision(self, cluster: ClusterSpec, provider: ProviderSpec) -> ClusterSpec:
        """Create the cluster and return a copy carrying its ``cluster_info``.

        Raises
        ------
        ValidationError
            If the request is invalid; nothing is created.
        ApplyError, OutputDecodeError
            If creation failed; ``cluster_info`` on the error holds the
            captured engine state with an ``Errored`` phase.
        """
        self.validate(cluster, provider)
        configuration = load_configurations(cluster, provider)

        logger.info("Provisioning gardener cluster %s", cluster.name)
        with _failure_context("unable to provision gardener cluster"):
            cluster_info = self.operator.create(ProviderType.GARDENER, configuration)
        return replace(cluster, cluster_info=cluster_info)

    def deprovision(self, cluster: ClusterSpec, provider: ProviderSpec) -> None:
        """Destroy the cluster using the engine state from its ``cluster_info``."""
        self.validate(cluster, provider)
        cluster_info = cluster.cluster_info
        if cluster_info is None or cluster_info.internal_state is None:
            raise ValidationError(
                [cannot_be_empty("Cluster.ClusterInfo.InternalState")]
            )
        configuration = load_configurations(cluster, provider)

        logger.info("Deprovisioning gardener cluster %s", cluster.name)
        with _failure_context("unable to deprovision gardener cluster"):
            self.operator.delete(
                cluster_info.internal_state, ProviderType.GARDENER, configuration
            )

    def status(self, cluster: ClusterSpec, provider: ProviderSpec) -> ClusterStatus:
        """Return the live status of the shoot backing *cluster*."""
        self.validate(cluster, provider)
        clients = self._kube_client_factory(provider.credentials_file_path)
        namespace = project_namespace(provider.project_name)
        try:
            shoot = clients.custom_objects.get_namespaced_custom_object(
                group=SHOOT_GROUP,
                version=SHOOT_VERSION,
                namespace=namespace,
                plural=SHOOT_PLURAL,
                name=cluster.name,
            )
        except ApiException as exc:
            msg = f"unable to fetch shoot {namespace}/{cluster.name}: {exc.reason}"
            raise ExternalLookupError(msg) from exc
        return ClusterStatus(shoot_phase(shoot))

    def credentials(self, cluster: ClusterSpec, provider: ProviderSpec) -> bytes:
        """Return the kubeconfig of the shoot backing *cluster*."""
        self.validate(cluster, provider)
        clients = self._kube_client_factory(provider.credentials_file_path)
        namespace = project_namespace(provider.project_name)
        name = kubeconfig_secret_name(cluster.name)
        try:
            secret = clients.core.read_namespaced_secret(name, namespace)
        except ApiException as exc:
            msg = f"unable to fetch secret {namespace}/{name}: {exc.reason}"
            raise ExternalLookupError(msg) from exc

        encoded = (secret.data or {}).get(KUBECONFIG_SECRET_KEY)
        if encoded is None:
            msg = f"secret {namespace}/{name} has no {KUBECONFIG_SECRET_KEY!r} entry"
            raise ExternalLookupError(msg)
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            msg = f"secret {namespace}/{name} holds invalid kubeconfig data: {exc}"
            raise ExternalLookupError(msg) from exc
