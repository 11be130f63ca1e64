#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.12"
# dependencies = ["cyclopts>=2.9", "plumbum", "kubernetes"]
# ///
"""Manage the lifecycle of a Gardener shoot cluster via OpenTofu.

This script:
- reads the cluster record and provider specification from JSON files;
- provisions or deprovisions the shoot and saves the engine state back to
  the cluster record, including after a failed apply; and
- reports the live shoot status or writes its kubeconfig.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, replace
from pathlib import Path

from cyclopts import App, Parameter

from clusterform._cluster_state import (
    load_cluster,
    load_provider,
    save_cluster,
    write_kubeconfig,
)
from clusterform._gardener_provisioner import GardenerProvisioner
from clusterform._input_resolution import InputResolution, resolve_input
from clusterform._operator import TofuOperator
from clusterform._provisioner_errors import ClusterInfoError, ProvisionerError
from clusterform._provisioner_models import ClusterSpec, ProviderSpec

app = App(help="Manage a Gardener shoot cluster via OpenTofu.")


@dataclass(frozen=True, slots=True)
class LifecycleInputs:
    """Resolved inputs shared by every lifecycle command."""

    cluster_file: Path
    provider_file: Path
    tofu_binary: str


def resolve_lifecycle_inputs(
    cluster_file: Path | None = None,
    provider_file: Path | None = None,
    tofu_binary: str | None = None,
) -> LifecycleInputs:
    """Resolve lifecycle inputs, falling back to the environment."""
    cluster_path = resolve_input(
        cluster_file,
        InputResolution(env_key="CLUSTER_FILE", required=True, as_path=True),
    )
    provider_path = resolve_input(
        provider_file,
        InputResolution(env_key="PROVIDER_FILE", required=True, as_path=True),
    )
    binary = resolve_input(
        tofu_binary, InputResolution(env_key="TOFU_BINARY", default="tofu")
    )
    return LifecycleInputs(
        cluster_file=Path(cluster_path),
        provider_file=Path(provider_path),
        tofu_binary=str(binary),
    )


def build_provisioner(inputs: LifecycleInputs) -> GardenerProvisioner:
    """Return a provisioner whose operator runs the configured tofu binary."""
    return GardenerProvisioner(operator=TofuOperator(binary=inputs.tofu_binary))


def _load_inputs(inputs: LifecycleInputs) -> tuple[ClusterSpec, ProviderSpec]:
    return load_cluster(inputs.cluster_file), load_provider(inputs.provider_file)


@app.command()
def provision(
    cluster_file: Path | None = Parameter(),
    provider_file: Path | None = Parameter(),
    tofu_binary: str | None = Parameter(),
) -> int:
    """Provision the shoot and record its engine state in the cluster file."""
    inputs = resolve_lifecycle_inputs(cluster_file, provider_file, tofu_binary)
    try:
        cluster, provider = _load_inputs(inputs)
        print(f"Provisioning cluster '{cluster.name}'...")
        provisioned = build_provisioner(inputs).provision(cluster, provider)
    except ClusterInfoError as exc:
        # Keep whatever the engine created so deprovision can clean it up.
        save_cluster(inputs.cluster_file, replace(cluster, cluster_info=exc.cluster_info))
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except ProvisionerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    save_cluster(inputs.cluster_file, provisioned)
    endpoint = provisioned.cluster_info.endpoint if provisioned.cluster_info else ""
    print(f"Cluster '{cluster.name}' provisioned at {endpoint}")
    return 0


@app.command()
def deprovision(
    cluster_file: Path | None = Parameter(),
    provider_file: Path | None = Parameter(),
    tofu_binary: str | None = Parameter(),
) -> int:
    """Destroy the shoot using the engine state stored in the cluster file."""
    inputs = resolve_lifecycle_inputs(cluster_file, provider_file, tofu_binary)
    try:
        cluster, provider = _load_inputs(inputs)
        print(f"Deprovisioning cluster '{cluster.name}'...")
        build_provisioner(inputs).deprovision(cluster, provider)
    except ClusterInfoError as exc:
        save_cluster(inputs.cluster_file, replace(cluster, cluster_info=exc.cluster_info))
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except ProvisionerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    save_cluster(inputs.cluster_file, replace(cluster, cluster_info=None))
    print(f"Cluster '{cluster.name}' deprovisioned")
    return 0


@app.command()
def status(
    cluster_file: Path | None = Parameter(),
    provider_file: Path | None = Parameter(),
) -> int:
    """Print the live phase of the shoot."""
    inputs = resolve_lifecycle_inputs(cluster_file, provider_file)
    try:
        cluster, provider = _load_inputs(inputs)
        cluster_status = build_provisioner(inputs).status(cluster, provider)
    except ProvisionerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(cluster_status.phase.value)
    return 0


@app.command()
def credentials(
    cluster_file: Path | None = Parameter(),
    provider_file: Path | None = Parameter(),
    kubeconfig_output: Path | None = Parameter(),
) -> int:
    """Fetch the shoot kubeconfig and write it to a file or stdout."""
    inputs = resolve_lifecycle_inputs(cluster_file, provider_file)
    output = resolve_input(
        kubeconfig_output,
        InputResolution(env_key="KUBECONFIG_OUTPUT", as_path=True),
    )
    try:
        cluster, provider = _load_inputs(inputs)
        kubeconfig = build_provisioner(inputs).credentials(cluster, provider)
    except ProvisionerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if output is None:
        sys.stdout.buffer.write(kubeconfig)
        sys.stdout.flush()
        return 0

    write_kubeconfig(Path(output), kubeconfig)
    print(f"Kubeconfig for '{cluster.name}' written to {output}", file=sys.stderr)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
