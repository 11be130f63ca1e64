"""Unit tests for the check_installation CLI."""

from __future__ import annotations

from pathlib import Path

import pytest

from clusterform import check_installation
from clusterform._provisioner_errors import InstallationError
from clusterform._provisioner_models import InstallationState
from clusterform.check_installation import main, poll_installation


class ScriptedChecker:
    """Checker double answering each poll from a list of outcomes."""

    def __init__(self, outcomes: list[tuple[bool, bool, InstallationState | Exception]]) -> None:
        self.outcomes = outcomes
        self.polls = 0

    def _current(self) -> tuple[bool, bool, InstallationState | Exception]:
        return self.outcomes[min(self.polls, len(self.outcomes) - 1)]

    def is_deployed(self) -> bool:
        deployed = self._current()[0]
        if not deployed:
            self.polls += 1
        return deployed

    def is_ready(self) -> bool:
        ready = self._current()[1]
        if not ready:
            self.polls += 1
        return ready

    def check_installation_state(self) -> InstallationState:
        outcome = self._current()[2]
        self.polls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_poll_until_installed() -> None:
    checker = ScriptedChecker(
        [
            (False, False, InstallationState("NoInstallation")),
            (True, False, InstallationState("NoInstallation")),
            (True, True, InstallationState("InProgress", "Installing istio")),
            (True, True, InstallationState("Installed")),
        ]
    )
    sleeps: list[float] = []

    state = poll_installation(checker, attempts=10, interval=5, sleep=sleeps.append)

    assert state == InstallationState("Installed")
    assert checker.polls == 4
    assert sleeps == [5, 5, 5]


def test_poll_gives_up_after_attempts() -> None:
    checker = ScriptedChecker([(True, True, InstallationState("InProgress"))])
    sleeps: list[float] = []

    state = poll_installation(checker, attempts=3, interval=1, sleep=sleeps.append)

    assert state is None
    assert checker.polls == 3
    assert sleeps == [1, 1], "No sleep after the final attempt"


def test_poll_stops_on_installation_error() -> None:
    checker = ScriptedChecker(
        [(True, True, InstallationError("installation error: boom"))]
    )
    sleeps: list[float] = []

    with pytest.raises(InstallationError):
        poll_installation(checker, attempts=5, interval=1, sleep=sleeps.append)

    assert sleeps == []


def test_main_reports_success(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    checker = ScriptedChecker([(True, True, InstallationState("Installed"))])
    paths: list[Path] = []

    def from_kubeconfig(path: Path) -> ScriptedChecker:
        paths.append(path)
        return checker

    monkeypatch.setattr(
        check_installation.InstallationChecker, "from_kubeconfig", from_kubeconfig
    )

    assert main(tmp_path / "kubeconfig", 2, 0) == 0
    assert paths == [tmp_path / "kubeconfig"]
    assert "Installation complete." in capsys.readouterr().out


def test_main_reads_polling_from_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    checker = ScriptedChecker([(False, False, InstallationState("NoInstallation"))])
    monkeypatch.setattr(
        check_installation.InstallationChecker,
        "from_kubeconfig",
        lambda _path: checker,
    )
    monkeypatch.setenv("KUBECONFIG", str(tmp_path / "kubeconfig"))
    monkeypatch.setenv("POLL_ATTEMPTS", "2")
    monkeypatch.setenv("POLL_INTERVAL", "0")

    assert main(None, None, None) == 1
    assert checker.polls == 2
    assert "not complete after 2 attempts" in capsys.readouterr().err


def test_main_reports_installation_error(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    checker = ScriptedChecker(
        [(True, True, InstallationError("installation error: boom"))]
    )
    monkeypatch.setattr(
        check_installation.InstallationChecker,
        "from_kubeconfig",
        lambda _path: checker,
    )

    assert main(tmp_path / "kubeconfig", 3, 0) == 1
    assert "error: installation error: boom" in capsys.readouterr().err


def test_main_rejects_non_integer_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUBECONFIG", "/tmp/kubeconfig")
    monkeypatch.setenv("POLL_ATTEMPTS", "many")

    with pytest.raises(SystemExit, match="POLL_ATTEMPTS must be an integer"):
        main(None, None, None)
