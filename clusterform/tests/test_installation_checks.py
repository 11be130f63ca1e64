"""Unit tests for installation readiness checks."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from kubernetes.client.rest import ApiException

from clusterform._installation_checks import (
    INSTALLATION_GROUP,
    INSTALLATION_NAME,
    INSTALLATION_NAMESPACE,
    KUBE_SYSTEM_NAMESPACE,
    TILLER_LABEL_SELECTOR,
    InstallationChecker,
    get_installation_state,
)
from clusterform._provisioner_errors import ExternalLookupError, InstallationError


def _pod(name: str, phase: str) -> SimpleNamespace:
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name), status=SimpleNamespace(phase=phase)
    )


class FakeCoreApi:
    def __init__(
        self,
        pods: list[SimpleNamespace] | None = None,
        error: ApiException | None = None,
    ) -> None:
        self.pods = pods or []
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def list_namespaced_pod(self, namespace: str, *, label_selector: str) -> SimpleNamespace:
        self.calls.append((namespace, label_selector))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(items=self.pods)


class FakeCustomObjectsApi:
    def __init__(
        self,
        resource: dict[str, object] | None = None,
        error: ApiException | None = None,
    ) -> None:
        self.resource = resource or {}
        self.error = error
        self.calls: list[dict[str, str]] = []

    def get_namespaced_custom_object(self, **kwargs: str) -> dict[str, object]:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.resource


def _checker(
    core: FakeCoreApi | None = None,
    custom: FakeCustomObjectsApi | None = None,
) -> InstallationChecker:
    return InstallationChecker(core or FakeCoreApi(), custom or FakeCustomObjectsApi())


def test_is_deployed_lists_tiller_pods() -> None:
    core = FakeCoreApi([_pod("tiller-deploy-1", "Pending")])

    assert _checker(core).is_deployed() is True
    assert core.calls == [(KUBE_SYSTEM_NAMESPACE, TILLER_LABEL_SELECTOR)]


def test_is_deployed_false_without_pods() -> None:
    assert _checker(FakeCoreApi([])).is_deployed() is False


def test_is_deployed_false_on_not_found() -> None:
    core = FakeCoreApi(error=ApiException(status=404, reason="Not Found"))

    assert _checker(core).is_deployed() is False


def test_is_deployed_wraps_other_errors() -> None:
    core = FakeCoreApi(error=ApiException(status=500, reason="Internal Server Error"))

    with pytest.raises(ExternalLookupError, match="Internal Server Error"):
        _checker(core).is_deployed()


def test_is_ready_requires_every_pod_running() -> None:
    running = FakeCoreApi([_pod("tiller-1", "Running"), _pod("tiller-2", "Running")])
    mixed = FakeCoreApi([_pod("tiller-1", "Running"), _pod("tiller-2", "Pending")])

    assert _checker(running).is_ready() is True
    assert _checker(mixed).is_ready() is False


def test_is_ready_false_for_empty_list() -> None:
    assert _checker(FakeCoreApi([])).is_ready() is False


def test_is_ready_false_for_pod_without_status() -> None:
    unreported = SimpleNamespace(metadata=SimpleNamespace(name="tiller-2"), status=None)
    core = FakeCoreApi([_pod("tiller-1", "Running"), unreported])

    assert _checker(core).is_ready() is False


def test_is_ready_not_found_is_an_error() -> None:
    core = FakeCoreApi(error=ApiException(status=404, reason="Not Found"))

    with pytest.raises(ExternalLookupError, match="error no tiller pods found"):
        _checker(core).is_ready()


def test_check_installation_state_reads_custom_resource() -> None:
    custom = FakeCustomObjectsApi(
        {"status": {"state": "InProgress", "description": "Installing core"}}
    )

    state = _checker(custom=custom).check_installation_state()

    assert state.state == "InProgress"
    assert state.description == "Installing core"
    assert custom.calls[0]["group"] == INSTALLATION_GROUP
    assert custom.calls[0]["name"] == INSTALLATION_NAME
    assert custom.calls[0]["namespace"] == INSTALLATION_NAMESPACE


def test_check_installation_state_wraps_lookup_errors() -> None:
    custom = FakeCustomObjectsApi(error=ApiException(status=404, reason="Not Found"))

    with pytest.raises(ExternalLookupError, match="kyma-installation") as excinfo:
        _checker(custom=custom).check_installation_state()

    assert isinstance(excinfo.value.__cause__, ApiException)


@pytest.mark.parametrize(
    "resource",
    [{}, {"status": {}}, {"status": {"state": ""}}, {"status": None}],
)
def test_missing_state_is_no_installation(resource: dict[str, object]) -> None:
    assert get_installation_state(resource).state == "NoInstallation"


def test_installed_state_is_returned() -> None:
    state = get_installation_state(
        {"status": {"state": "Installed", "description": "Kyma installed"}}
    )

    assert state.state == "Installed"
    assert state.description == "Kyma installed"


def test_error_state_raises_with_entries() -> None:
    resource = {
        "status": {
            "state": "Error",
            "description": "Install error",
            "errorLog": [
                {"component": "istio", "log": "timeout", "occurrences": 3},
                {"component": "core", "log": "crashloop", "occurrences": 1},
            ],
        }
    }

    with pytest.raises(InstallationError) as excinfo:
        get_installation_state(resource)

    err = excinfo.value
    assert err.short_message == "installation error: Install error"
    assert [entry.component for entry in err.entries] == ["istio", "core"]
    assert err.entries[0].occurrences == 3
    assert "istio: timeout (occurrences: 3)" in str(err)


def test_error_state_without_log_has_no_entries() -> None:
    with pytest.raises(InstallationError) as excinfo:
        get_installation_state({"status": {"state": "Error"}})

    assert excinfo.value.entries == ()
