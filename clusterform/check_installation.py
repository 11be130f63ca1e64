#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.12"
# dependencies = ["cyclopts>=2.9", "kubernetes"]
# ///
"""Wait for the cluster-side installation to report ``Installed``.

Each poll checks, in order, that Tiller is deployed, that its pods are
running and what the installation custom resource reports. Polling stops as
soon as the installation is installed or reports an error.
"""

from __future__ import annotations

import sys
import time
from collections import abc as cabc
from pathlib import Path

from cyclopts import App, Parameter

from clusterform._input_resolution import InputResolution, resolve_input
from clusterform._installation_checks import INSTALLED_STATE, InstallationChecker
from clusterform._provisioner_errors import ProvisionerError
from clusterform._provisioner_models import InstallationState

app = App(help="Wait for the cluster-side installation to complete.")

DEFAULT_ATTEMPTS = 60
DEFAULT_INTERVAL = 10


def poll_installation(
    checker: InstallationChecker,
    *,
    attempts: int,
    interval: float,
    sleep: cabc.Callable[[float], None] = time.sleep,
) -> InstallationState | None:
    """Poll *checker* until the installation is installed.

    Returns the ``Installed`` state, or ``None`` when every attempt was
    spent waiting. ``InstallationError`` and lookup failures propagate.

    Examples
    --------
    >>> poll_installation(checker, attempts=3, interval=0).state
    'Installed'
    """
    for attempt in range(attempts):
        if not checker.is_deployed():
            print("Waiting for tiller to be deployed...")
        elif not checker.is_ready():
            print("Waiting for tiller pods to be running...")
        else:
            state = checker.check_installation_state()
            if state.state == INSTALLED_STATE:
                return state
            detail = f": {state.description}" if state.description else ""
            print(f"Installation is {state.state}{detail}")
        if attempt < attempts - 1:
            sleep(interval)
    return None


@app.command()
def main(
    kubeconfig: Path | None = Parameter(),
    attempts: int | None = Parameter(),
    interval: int | None = Parameter(),
) -> int:
    """Poll the installation in the cluster described by the kubeconfig."""
    kubeconfig_path = resolve_input(
        kubeconfig,
        InputResolution(env_key="KUBECONFIG", required=True, as_path=True),
    )
    poll_attempts = resolve_input(
        attempts,
        InputResolution(env_key="POLL_ATTEMPTS", default=DEFAULT_ATTEMPTS, as_int=True),
    )
    poll_interval = resolve_input(
        interval,
        InputResolution(env_key="POLL_INTERVAL", default=DEFAULT_INTERVAL, as_int=True),
    )

    try:
        checker = InstallationChecker.from_kubeconfig(Path(kubeconfig_path))
        state = poll_installation(
            checker, attempts=int(poll_attempts), interval=int(poll_interval)
        )
    except ProvisionerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if state is None:
        print(
            f"error: installation not complete after {poll_attempts} attempts",
            file=sys.stderr,
        )
        return 1

    print("Installation complete.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
