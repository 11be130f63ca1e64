"""Build OpenTofu documents for cluster provisioning.

The Gardener shoot document varies per request: the cloud block depends on
the target provider, one worker block is generated per node, and the zones
list is omitted for Azure. Each target maps to a builder function so the set
of cloud shapes stays closed. Variable values are never interpolated here;
the document references them as ``${var.<key>}`` and the engine binds them.

Examples
--------
>>> document = expand_shoot_template(configuration)
>>> document.count('name            = "cpu-worker-')
3
"""

from __future__ import annotations

import logging
from collections import abc as cabc

from clusterform._cluster_validation import (
    TARGET_PROVIDER_KEY,
    parse_target_provider,
    required_custom_keys,
)
from clusterform._provisioner_errors import RenderError
from clusterform._provisioner_models import TargetProvider

logger = logging.getLogger(__name__)

INDENT = "  "

SHOOT_COMMON_VARIABLES: tuple[str, ...] = (
    "target_provider",
    "target_profile",
    "node_count",
    "cluster_name",
    "credentials_file_path",
    "namespace",
    "location",
    "machine_type",
    "kubernetes_version",
    "disk_size",
)

GKE_VARIABLES: tuple[str, ...] = (
    "node_count",
    "cluster_name",
    "credentials_file_path",
    "project",
    "location",
    "machine_type",
    "kubernetes_version",
    "disk_size",
)

GKE_CLUSTER_DOCUMENT = """\
variable "node_count" {}
variable "cluster_name" {}
variable "credentials_file_path" {}
variable "project" {}
variable "location" {}
variable "machine_type" {}
variable "kubernetes_version" {}
variable "disk_size" {}

provider "google" {
  credentials = file(var.credentials_file_path)
  project     = var.project
}

resource "google_container_cluster" "gke_cluster" {
  name               = var.cluster_name
  location           = var.location
  initial_node_count = var.node_count
  min_master_version = var.kubernetes_version
  node_version       = var.kubernetes_version

  node_config {
    machine_type = var.machine_type
    disk_size_gb = var.disk_size
  }

  maintenance_policy {
    daily_maintenance_window {
      start_time = "03:00"
    }
  }
}

output "endpoint" {
  value = google_container_cluster.gke_cluster.endpoint
}

output "cluster_ca_certificate" {
  value = google_container_cluster.gke_cluster.master_auth.0.cluster_ca_certificate
}
"""


def _block(header: str, body: cabc.Iterable[str]) -> list[str]:
    """Wrap *body* lines in an HCL block opened by *header*."""
    return [f"{header} {{", *(f"{INDENT}{line}" if line else "" for line in body), "}"]


def _gcp_networks() -> list[str]:
    return _block("networks", ['workers = ["${var.workercidr}"]'])


def _aws_networks() -> list[str]:
    return _block(
        "networks",
        [
            'workers  = ["${var.workercidr}"]',
            'public   = ["${var.publicscidr}"]',
            'internal = ["${var.internalscidr}"]',
            'vpc      = [{ cidr = "${var.vpccidr}" }]',
        ],
    )


def _azure_networks() -> list[str]:
    return _block(
        "networks",
        [
            'vnet    = [{ cidr = "${var.vnetcidr}" }]',
            'workers = "${var.workercidr}"',
        ],
    )


_NETWORK_BUILDERS: dict[TargetProvider, cabc.Callable[[], list[str]]] = {
    TargetProvider.GCP: _gcp_networks,
    TargetProvider.AWS: _aws_networks,
    TargetProvider.AZURE: _azure_networks,
}


def worker_blocks(count: int) -> list[str]:
    """Return one worker block per node, named ``cpu-worker-<index>``.

    Examples
    --------
    >>> worker_blocks(0)
    []
    >>> worker_blocks(2)[1]
    '  name            = "cpu-worker-0"'
    """
    lines: list[str] = []
    for index in range(count):
        lines.extend(
            _block(
                "worker",
                [
                    f'name            = "cpu-worker-{index}"',
                    'machine_type    = "${var.machine_type}"',
                    'auto_scaler_min = "${var.autoscaler_min}"',
                    'auto_scaler_max = "${var.autoscaler_max}"',
                    'max_surge       = "${var.max_surge}"',
                    'max_unavailable = "${var.max_unavailable}"',
                    'volume_size     = "${var.disk_size}Gi"',
                    'volume_type     = "${var.disk_type}"',
                ],
            )
        )
    return lines


def cloud_block(target: TargetProvider, node_count: int) -> list[str]:
    """Return the provider-shaped cloud block for *target*."""
    body = [*_NETWORK_BUILDERS[target](), *worker_blocks(node_count)]
    if target is not TargetProvider.AZURE:
        body.append('zones = ["${var.zone}"]')
    return _block(target.value, body)


def shoot_variables(target: TargetProvider) -> tuple[str, ...]:
    """Return every variable the shoot document declares for *target*."""
    return (*SHOOT_COMMON_VARIABLES, *required_custom_keys(target))


def _parse_node_count(value: object) -> int:
    if isinstance(value, bool):
        msg = f"node_count must be an integer, got {value!r}"
        raise RenderError(msg)
    digits = value.strip() if isinstance(value, str) else ""
    if isinstance(value, int):
        count = value
    elif digits.isascii() and digits.isdigit():
        count = int(digits)
    else:
        msg = f"node_count must be an integer, got {value!r}"
        raise RenderError(msg)
    if count < 0:
        msg = f"node_count cannot be negative, got {count}"
        raise RenderError(msg)
    return count


def check_template_variables(
    variables: cabc.Iterable[str],
    configuration: cabc.Mapping[str, object],
) -> None:
    """Raise ``RenderError`` naming every declared variable without a value."""
    missing = [key for key in variables if key not in configuration]
    if missing:
        msg = f"missing configuration for template variables: {', '.join(missing)}"
        raise RenderError(msg)


def expand_shoot_template(configuration: cabc.Mapping[str, object]) -> str:
    """Render the Gardener shoot document for *configuration*.

    Parameters
    ----------
    configuration : Mapping[str, object]
        Merged configuration map. Must contain ``target_provider``,
        ``node_count`` and every variable the selected target declares.

    Returns
    -------
    str
        The HCL document text.

    Raises
    ------
    RenderError
        If the target provider is unknown, ``node_count`` is malformed, or a
        declared variable has no value.
    """
    if TARGET_PROVIDER_KEY not in configuration:
        msg = f"missing configuration for template variables: {TARGET_PROVIDER_KEY}"
        raise RenderError(msg)
    target = parse_target_provider(configuration[TARGET_PROVIDER_KEY])
    if target is None:
        msg = f"unknown target provider {configuration[TARGET_PROVIDER_KEY]!r}"
        raise RenderError(msg)
    node_count = _parse_node_count(configuration.get("node_count"))

    variables = shoot_variables(target)
    check_template_variables(variables, configuration)
    logger.info(
        "Rendering shoot document for target %s with %d workers", target, node_count
    )

    cloud = _block(
        "cloud",
        [
            'profile = "${var.target_profile}"',
            'region  = "${var.location}"',
            'seed    = "${var.target_seed}"',
            *_block("secret_binding_ref", ['name = "${var.target_secret}"']),
            "",
            *cloud_block(target, node_count),
        ],
    )
    spec = _block(
        "spec",
        [
            *cloud,
            "",
            *_block("kubernetes", ['version = "${var.kubernetes_version}"']),
        ],
    )
    resource = _block(
        'resource "gardener_shoot" "cluster"',
        [
            *_block(
                "metadata",
                [
                    'name      = "${var.cluster_name}"',
                    'namespace = "${var.namespace}"',
                ],
            ),
            "",
            *spec,
        ],
    )
    provider = _block(
        'provider "gardener"',
        ['kube_file = file(var.credentials_file_path)'],
    )

    lines = [
        *(f'variable "{name}" {{}}' for name in variables),
        "",
        *provider,
        "",
        *resource,
    ]
    return "\n".join(lines) + "\n"


def render_gke_document(configuration: cabc.Mapping[str, object]) -> str:
    """Return the static GKE document once its variables are all bound."""
    check_template_variables(GKE_VARIABLES, configuration)
    return GKE_CLUSTER_DOCUMENT
