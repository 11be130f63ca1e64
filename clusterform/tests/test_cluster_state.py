"""Unit tests for cluster record persistence."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from clusterform._cluster_state import (
    cluster_from_mapping,
    cluster_to_mapping,
    load_cluster,
    load_provider,
    save_cluster,
    write_kubeconfig,
)
from clusterform._provisioner_errors import ValidationError
from clusterform._provisioner_models import (
    ClusterInfo,
    ClusterSpec,
    ClusterStatus,
    EngineState,
    Phase,
    ProviderType,
)


def _provisioned_cluster() -> ClusterSpec:
    return ClusterSpec(
        name="preview-1",
        node_count=3,
        machine_type="n1-standard-4",
        kubernetes_version="1.15.4",
        disk_size_gb=30,
        location="europe-west4",
        cluster_info=ClusterInfo(
            status=ClusterStatus(Phase.PROVISIONED),
            internal_state=EngineState('{"serial": 3}'),
            endpoint="https://api.preview-1",
            certificate_authority_data=b"ca-bytes",
        ),
    )


def test_saved_record_is_private_and_reloadable(tmp_path: Path) -> None:
    path = tmp_path / "state" / "cluster.json"
    cluster = _provisioned_cluster()

    save_cluster(path, cluster)

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert not path.with_suffix(".json.tmp").exists()
    assert load_cluster(path) == cluster


def test_record_encodes_certificate_and_state() -> None:
    mapping = cluster_to_mapping(_provisioned_cluster())

    info = mapping["cluster_info"]
    assert info["certificate_authority_data"] == "Y2EtYnl0ZXM="
    assert info["internal_state"] == '{"serial": 3}'
    assert info["phase"] == "Provisioned"


def test_record_without_cluster_info() -> None:
    mapping = cluster_to_mapping(_provisioned_cluster())
    mapping["cluster_info"] = None

    assert cluster_from_mapping(mapping).cluster_info is None


def test_cluster_type_errors_are_collected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        cluster_from_mapping({"name": 5, "node_count": "3", "disk_size_gb": True})

    assert excinfo.value.violations == (
        "name must be a string",
        "node_count must be an integer",
        "disk_size_gb must be an integer",
    )


def test_cluster_info_errors_are_reported() -> None:
    payload = cluster_to_mapping(_provisioned_cluster())
    payload["cluster_info"] = {
        "phase": "Done",
        "certificate_authority_data": "%%%",
        "internal_state": 7,
    }

    with pytest.raises(ValidationError) as excinfo:
        cluster_from_mapping(payload)

    assert len(excinfo.value.violations) == 3


def test_load_provider(tmp_path: Path) -> None:
    path = tmp_path / "provider.json"
    path.write_text(
        json.dumps(
            {
                "type": "gardener",
                "credentials_file_path": "/tmp/garden.yaml",
                "project_name": "frontend",
                "custom_configurations": {"target_provider": "gcp"},
            }
        ),
        encoding="utf-8",
    )

    provider = load_provider(path)

    assert provider.type is ProviderType.GARDENER
    assert provider.custom_configurations == {"target_provider": "gcp"}


def test_provider_rejects_unknown_type_and_non_string_custom(tmp_path: Path) -> None:
    path = tmp_path / "provider.json"
    path.write_text(
        json.dumps({"type": "openstack", "custom_configurations": {"node_count": 3}}),
        encoding="utf-8",
    )

    with pytest.raises(ValidationError) as excinfo:
        load_provider(path)

    assert excinfo.value.violations == (
        "type 'openstack' is not a known provider type",
        "custom_configurations must map keys to strings",
    )


def test_unreadable_json_is_a_validation_error(tmp_path: Path) -> None:
    path = tmp_path / "cluster.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValidationError, match="failed to read"):
        load_cluster(path)


def test_json_array_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "cluster.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(ValidationError, match="must contain a JSON object"):
        load_cluster(path)


def test_missing_file_is_a_validation_error(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="failed to read"):
        load_cluster(tmp_path / "absent.json")


def test_write_kubeconfig_is_private(tmp_path: Path) -> None:
    path = tmp_path / "kubeconfig.yaml"

    write_kubeconfig(path, b"apiVersion: v1\n")

    assert path.read_bytes() == b"apiVersion: v1\n"
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
