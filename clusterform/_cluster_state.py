"""Load and persist cluster and provider records as JSON.

Cluster records carry the engine state returned by a provision, so they are
written atomically and readable only by the owner.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from collections import abc as cabc
from contextlib import suppress
from pathlib import Path
from typing import Any

from clusterform._provisioner_errors import ValidationError
from clusterform._provisioner_models import (
    ClusterInfo,
    ClusterSpec,
    ClusterStatus,
    EngineState,
    Phase,
    ProviderSpec,
    ProviderType,
)


def _require_str(payload: cabc.Mapping[str, Any], key: str, errors: list[str]) -> str:
    value = payload.get(key, "")
    if not isinstance(value, str):
        errors.append(f"{key} must be a string")
        return ""
    return value


def _require_int(payload: cabc.Mapping[str, Any], key: str, errors: list[str]) -> int:
    value = payload.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f"{key} must be an integer")
        return 0
    return value


def _cluster_info_from_mapping(payload: object, errors: list[str]) -> ClusterInfo | None:
    if payload is None:
        return None
    if not isinstance(payload, cabc.Mapping):
        errors.append("cluster_info must be an object")
        return None
    try:
        phase = Phase(payload.get("phase", Phase.UNKNOWN))
    except ValueError:
        errors.append(f"cluster_info.phase {payload.get('phase')!r} is not a known phase")
        phase = Phase.UNKNOWN
    state = payload.get("internal_state")
    if state is not None and not isinstance(state, str):
        errors.append("cluster_info.internal_state must be a string")
        state = None
    try:
        certificate = base64.b64decode(
            payload.get("certificate_authority_data", ""), validate=True
        )
    except (binascii.Error, TypeError, ValueError):
        errors.append("cluster_info.certificate_authority_data must be base64")
        certificate = b""
    return ClusterInfo(
        status=ClusterStatus(phase),
        internal_state=EngineState(state) if state is not None else None,
        endpoint=str(payload.get("endpoint", "")),
        certificate_authority_data=certificate,
    )


def cluster_from_mapping(payload: cabc.Mapping[str, Any]) -> ClusterSpec:
    """Build a cluster record from its JSON mapping.

    Examples
    --------
    >>> cluster_from_mapping({"name": "preview-1", "node_count": 3}).node_count
    3
    """
    errors: list[str] = []
    cluster = ClusterSpec(
        name=_require_str(payload, "name", errors),
        node_count=_require_int(payload, "node_count", errors),
        machine_type=_require_str(payload, "machine_type", errors),
        kubernetes_version=_require_str(payload, "kubernetes_version", errors),
        disk_size_gb=_require_int(payload, "disk_size_gb", errors),
        location=_require_str(payload, "location", errors),
        cluster_info=_cluster_info_from_mapping(payload.get("cluster_info"), errors),
    )
    if errors:
        raise ValidationError(errors)
    return cluster


def cluster_to_mapping(cluster: ClusterSpec) -> dict[str, Any]:
    """Return a JSON-serialisable mapping for *cluster*."""
    info = cluster.cluster_info
    cluster_info: dict[str, Any] | None = None
    if info is not None:
        cluster_info = {
            "phase": info.status.phase.value,
            "endpoint": info.endpoint,
            "certificate_authority_data": base64.b64encode(
                info.certificate_authority_data
            ).decode("ascii"),
            "internal_state": (
                info.internal_state.payload if info.internal_state is not None else None
            ),
        }
    return {
        "name": cluster.name,
        "node_count": cluster.node_count,
        "machine_type": cluster.machine_type,
        "kubernetes_version": cluster.kubernetes_version,
        "disk_size_gb": cluster.disk_size_gb,
        "location": cluster.location,
        "cluster_info": cluster_info,
    }


def provider_from_mapping(payload: cabc.Mapping[str, Any]) -> ProviderSpec:
    """Build a provider specification from its JSON mapping.

    Examples
    --------
    >>> provider_from_mapping({"type": "gardener", "project_name": "p"}).type
    <ProviderType.GARDENER: 'gardener'>
    """
    errors: list[str] = []
    try:
        provider_type = ProviderType(payload.get("type", ProviderType.UNKNOWN))
    except ValueError:
        errors.append(f"type {payload.get('type')!r} is not a known provider type")
        provider_type = ProviderType.UNKNOWN
    custom = payload.get("custom_configurations") or {}
    if not isinstance(custom, cabc.Mapping) or not all(
        isinstance(value, str) for value in custom.values()
    ):
        errors.append("custom_configurations must map keys to strings")
        custom = {}
    provider = ProviderSpec(
        type=provider_type,
        credentials_file_path=_require_str(payload, "credentials_file_path", errors),
        project_name=_require_str(payload, "project_name", errors),
        custom_configurations=dict(custom),
    )
    if errors:
        raise ValidationError(errors)
    return provider


def _read_json(path: Path) -> cabc.Mapping[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError([f"failed to read {path}: {exc}"]) from exc
    if not isinstance(payload, dict):
        raise ValidationError([f"{path} must contain a JSON object"])
    return payload


def load_cluster(path: Path) -> ClusterSpec:
    """Load the cluster record stored at *path*."""
    return cluster_from_mapping(_read_json(path))


def load_provider(path: Path) -> ProviderSpec:
    """Load the provider specification stored at *path*."""
    return provider_from_mapping(_read_json(path))


def _write_private(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
    except Exception:
        with suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise

    tmp_path.replace(path)
    os.chmod(path, 0o600)


def save_cluster(path: Path, cluster: ClusterSpec) -> None:
    """Write *cluster* to ``path`` atomically."""
    payload = json.dumps(cluster_to_mapping(cluster), indent=2)
    _write_private(path, payload.encode("utf-8"))


def write_kubeconfig(path: Path, kubeconfig: bytes) -> None:
    """Write a shoot kubeconfig to ``path`` readable only by the owner."""
    _write_private(path, kubeconfig)


__all__ = [
    "cluster_from_mapping",
    "cluster_to_mapping",
    "load_cluster",
    "load_provider",
    "provider_from_mapping",
    "save_cluster",
    "write_kubeconfig",
]
