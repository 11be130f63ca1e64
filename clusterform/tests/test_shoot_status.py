"""Unit tests for shoot state translation."""

from __future__ import annotations

import pytest

from clusterform._provisioner_models import Phase
from clusterform._shoot_status import shoot_phase, translate_shoot_state


@pytest.mark.parametrize(
    ("state", "phase"),
    [
        ("Processing", Phase.PROVISIONING),
        ("Pending", Phase.PENDING),
        ("Succeeded", Phase.PROVISIONED),
        ("Error", Phase.ERRORED),
        ("Failed", Phase.ERRORED),
        ("Aborted", Phase.ERRORED),
        ("Reconciling", Phase.UNKNOWN),
        ("succeeded", Phase.UNKNOWN),
        ("", Phase.UNKNOWN),
        (None, Phase.UNKNOWN),
        (3, Phase.UNKNOWN),
    ],
)
def test_translate_shoot_state(state: object, phase: Phase) -> None:
    assert translate_shoot_state(state) is phase


def test_shoot_phase_reads_last_operation() -> None:
    shoot = {"status": {"lastOperation": {"state": "Succeeded", "progress": 100}}}

    assert shoot_phase(shoot) is Phase.PROVISIONED


@pytest.mark.parametrize(
    "shoot",
    [
        {},
        {"status": None},
        {"status": {}},
        {"status": {"lastOperation": "Succeeded"}},
    ],
)
def test_shoot_phase_without_last_operation_is_unknown(shoot: dict[str, object]) -> None:
    assert shoot_phase(shoot) is Phase.UNKNOWN
