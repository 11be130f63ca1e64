"""Kubernetes API clients built from a kubeconfig file."""

from __future__ import annotations

from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path
from typing import TypeAlias

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from clusterform._provisioner_errors import ExternalLookupError

NOT_FOUND = 404


@dataclass(frozen=True, slots=True)
class KubeClients:
    """Typed API groups used by the provisioner and the installation checker."""

    core: client.CoreV1Api
    custom_objects: client.CustomObjectsApi


KubeClientFactory: TypeAlias = cabc.Callable[[str | Path], KubeClients]


def load_kube_clients(kubeconfig_path: str | Path) -> KubeClients:
    """Return API clients for the cluster described by *kubeconfig_path*.

    Raises
    ------
    ExternalLookupError
        If the kubeconfig cannot be loaded.
    """
    try:
        api_client = config.new_client_from_config(config_file=str(kubeconfig_path))
    except (config.ConfigException, OSError) as exc:
        msg = f"unable to load kubeconfig {kubeconfig_path}: {exc}"
        raise ExternalLookupError(msg) from exc
    return KubeClients(
        core=client.CoreV1Api(api_client),
        custom_objects=client.CustomObjectsApi(api_client),
    )


def is_not_found(exc: ApiException) -> bool:
    """Return True when *exc* reports a missing resource."""
    return exc.status == NOT_FOUND
