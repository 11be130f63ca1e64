"""Readiness checks for a cluster-side installation.

The checker answers three independent questions without retrying: is Tiller
deployed, are its pods running, and what does the installation custom
resource report. Callers own the polling cadence.
"""

from __future__ import annotations

import logging
from collections import abc as cabc
from pathlib import Path

from kubernetes import client
from kubernetes.client.rest import ApiException

from clusterform._kube_clients import is_not_found, load_kube_clients
from clusterform._provisioner_errors import (
    ExternalLookupError,
    InstallationError,
    InstallationErrorEntry,
)
from clusterform._provisioner_models import InstallationState

logger = logging.getLogger(__name__)

KUBE_SYSTEM_NAMESPACE = "kube-system"
TILLER_LABEL_SELECTOR = "name=tiller"
POD_RUNNING = "Running"

INSTALLATION_GROUP = "installer.kyma-project.io"
INSTALLATION_VERSION = "v1alpha1"
INSTALLATION_PLURAL = "installations"
INSTALLATION_NAME = "kyma-installation"
INSTALLATION_NAMESPACE = "default"

NO_INSTALLATION_STATE = "NoInstallation"
ERROR_STATE = "Error"
INSTALLED_STATE = "Installed"


def _error_entries(status: cabc.Mapping[str, object]) -> list[InstallationErrorEntry]:
    entries: list[InstallationErrorEntry] = []
    error_log = status.get("errorLog") or []
    if not isinstance(error_log, list):
        return entries
    for item in error_log:
        if not isinstance(item, cabc.Mapping):
            continue
        entries.append(
            InstallationErrorEntry(
                component=str(item.get("component", "")),
                log=str(item.get("log", "")),
                occurrences=int(item.get("occurrences", 0) or 0),
            )
        )
    return entries


def get_installation_state(resource: cabc.Mapping[str, object]) -> InstallationState:
    """Derive the installation state from an Installation custom resource.

    Parameters
    ----------
    resource
        Installation object as returned by the custom objects API.

    Returns
    -------
    InstallationState
        ``NoInstallation`` when the resource has no state yet, otherwise the
        reported state and description.

    Raises
    ------
    InstallationError
        If the resource reports the ``Error`` state.

    Examples
    --------
    >>> get_installation_state({"status": {"state": "Installed"}}).state
    'Installed'
    >>> get_installation_state({}).state
    'NoInstallation'
    """
    status = resource.get("status")
    if not isinstance(status, cabc.Mapping):
        status = {}
    state = str(status.get("state") or "")
    description = str(status.get("description") or "")

    if state == ERROR_STATE:
        raise InstallationError(
            f"installation error: {description}", _error_entries(status)
        )
    if not state:
        return InstallationState(NO_INSTALLATION_STATE)
    return InstallationState(state, description)


class InstallationChecker:
    """Check Tiller pods and the installation resource of one cluster.

    Parameters
    ----------
    core_api
        Client for pods in the target cluster.
    custom_objects_api
        Client for the installation custom resource.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        custom_objects_api: client.CustomObjectsApi,
    ) -> None:
        self._core_api = core_api
        self._custom_objects_api = custom_objects_api

    @classmethod
    def from_kubeconfig(cls, kubeconfig_path: str | Path) -> InstallationChecker:
        """Build a checker for the cluster described by *kubeconfig_path*."""
        clients = load_kube_clients(kubeconfig_path)
        return cls(clients.core, clients.custom_objects)

    def _list_tiller_pods(self) -> list[client.V1Pod]:
        pods = self._core_api.list_namespaced_pod(
            KUBE_SYSTEM_NAMESPACE, label_selector=TILLER_LABEL_SELECTOR
        )
        return list(pods.items or [])

    def is_deployed(self) -> bool:
        """Return True when at least one Tiller pod exists."""
        try:
            pods = self._list_tiller_pods()
        except ApiException as exc:
            if is_not_found(exc):
                return False
            msg = f"error listing tiller pods: {exc.reason}"
            raise ExternalLookupError(msg) from exc
        return len(pods) > 0

    def is_ready(self) -> bool:
        """Return True when every Tiller pod is running.

        An empty pod list is not ready yet. A not-found response is an error:
        the pods were expected but never appeared.
        """
        try:
            pods = self._list_tiller_pods()
        except ApiException as exc:
            if is_not_found(exc):
                msg = "error no tiller pods found"
                raise ExternalLookupError(msg) from exc
            msg = f"error listing tiller pods: {exc.reason}"
            raise ExternalLookupError(msg) from exc

        if not pods:
            return False
        for pod in pods:
            # One pod in any other phase is enough to answer.
            phase = pod.status.phase if pod.status is not None else None
            if phase != POD_RUNNING:
                logger.debug("Tiller pod %s is %s", pod.metadata.name, phase)
                return False
        return True

    def check_installation_state(self) -> InstallationState:
        """Return the state reported by the installation custom resource."""
        try:
            resource = self._custom_objects_api.get_namespaced_custom_object(
                group=INSTALLATION_GROUP,
                version=INSTALLATION_VERSION,
                namespace=INSTALLATION_NAMESPACE,
                plural=INSTALLATION_PLURAL,
                name=INSTALLATION_NAME,
            )
        except ApiException as exc:
            msg = f"unable to fetch installation {INSTALLATION_NAME}: {exc.reason}"
            raise ExternalLookupError(msg) from exc
        return get_installation_state(resource)
