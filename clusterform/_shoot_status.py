"""Translate Gardener shoot operation states into cluster phases.

Possible values of a shoot's last operation state:

* ``Processing``: the cluster is being created.
* ``Succeeded``: the cluster has been created and is fully usable.
* ``Error``: the cluster may be unusable.
* ``Failed``: the creation operation failed.
* ``Pending``: the creation has not started yet.
* ``Aborted``: an external agent aborted the operation.
"""

from __future__ import annotations

from collections import abc as cabc

from clusterform._provisioner_models import Phase

SHOOT_STATE_PHASES: cabc.Mapping[str, Phase] = {
    "Processing": Phase.PROVISIONING,
    "Pending": Phase.PENDING,
    "Succeeded": Phase.PROVISIONED,
    "Error": Phase.ERRORED,
    "Failed": Phase.ERRORED,
    "Aborted": Phase.ERRORED,
}


def translate_shoot_state(state: object) -> Phase:
    """Return the phase for a shoot last-operation *state*.

    Examples
    --------
    >>> translate_shoot_state("Processing")
    <Phase.PROVISIONING: 'Provisioning'>
    >>> translate_shoot_state(None)
    <Phase.UNKNOWN: 'Unknown'>
    """
    if not isinstance(state, str):
        return Phase.UNKNOWN
    return SHOOT_STATE_PHASES.get(state, Phase.UNKNOWN)


def shoot_phase(shoot: cabc.Mapping[str, object]) -> Phase:
    """Return the phase of a Shoot object read from the Gardener API."""
    status = shoot.get("status")
    if not isinstance(status, cabc.Mapping):
        return Phase.UNKNOWN
    last_operation = status.get("lastOperation")
    if not isinstance(last_operation, cabc.Mapping):
        return Phase.UNKNOWN
    return translate_shoot_state(last_operation.get("state"))
