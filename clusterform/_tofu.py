"""OpenTofu orchestration helpers for cluster provisioning.

A :class:`TofuPlatform` binds one document, one provider plugin and a set of
variables, and applies them against a previous engine state. Each apply runs
in a fresh temporary working directory so that concurrent calls for different
clusters never share files.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections import abc as cabc
from functools import partial
from pathlib import Path
from typing import TypeAlias

from plumbum import CommandNotFound, local

from clusterform._provisioner_errors import EngineError, UnsupportedBackendError
from clusterform._provisioner_models import (
    ApplyResult,
    EngineState,
    ProviderPlugin,
    TofuResult,
)

logger = logging.getLogger(__name__)

DOCUMENT_FILE = "main.tf"
PROVIDERS_FILE = "providers.tf"
VAR_FILE = "clusterform.tfvars.json"
STATE_FILE = "terraform.tfstate"

CommandRunner: TypeAlias = cabc.Callable[[list[str], Path], TofuResult]


def _validate_command_args(args: list[str]) -> None:
    """Validate OpenTofu CLI arguments for safe execution."""
    for arg in args:
        if not isinstance(arg, str):
            msg = f"OpenTofu argument must be a string, got {type(arg).__name__}"
            raise TypeError(msg)
        if any(char in arg for char in ("\x00", "\n", "\r")):
            msg = "OpenTofu argument contains an invalid control character"
            raise ValueError(msg)


def run_tofu(
    args: list[str],
    cwd: Path,
    env: cabc.Mapping[str, str] | None = None,
    *,
    binary: str = "tofu",
) -> TofuResult:
    """Execute an OpenTofu command and return the result.

    Parameters
    ----------
    args
        Command arguments (without the ``tofu`` prefix).
    cwd
        Working directory for the command.
    env
        Environment variables to set for the command.
    binary
        Name or path of the OpenTofu executable.

    Returns
    -------
    TofuResult
        Result containing success status, output, and return code. A missing
        executable is reported as a failed result rather than raised.

    Examples
    --------
    >>> from pathlib import Path
    >>> result = run_tofu(["version"], Path("."))
    >>> result.success
    True
    """
    _validate_command_args([binary, *args])
    merged_env = {**os.environ, **(env or {})}
    try:
        command = local[binary]
    except CommandNotFound:
        return TofuResult(
            success=False,
            stdout="",
            stderr=f"{binary}: command not found",
            return_code=127,
        )

    return_code, stdout, stderr = command[args].run(
        retcode=None, cwd=str(cwd), env=merged_env
    )
    return TofuResult(
        success=return_code == 0,
        stdout=stdout,
        stderr=stderr,
        return_code=return_code,
    )


def write_tfvars(path: Path, variables: cabc.Mapping[str, object]) -> None:
    """Write variables to a ``tfvars.json`` file.

    Examples
    --------
    >>> write_tfvars(Path("/tmp/vars.tfvars.json"), {"cluster_name": "preview-1"})
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(dict(variables), indent=2), encoding="utf-8")


def render_required_providers(plugin: ProviderPlugin) -> str:
    """Return the ``terraform`` block pinning *plugin* as the only provider.

    Examples
    --------
    >>> print(render_required_providers(ProviderPlugin("google", "hashicorp/google")))
    terraform {
      required_providers {
        google = {
          source = "hashicorp/google"
        }
      }
    }
    """
    entries = [f'      source = "{plugin.source}"']
    if plugin.version:
        entries.append(f'      version = "{plugin.version}"')
    return "\n".join(
        [
            "terraform {",
            "  required_providers {",
            f"    {plugin.name} = {{",
            *entries,
            "    }",
            "  }",
            "}",
        ]
    )


def read_state(path: Path, fallback: EngineState) -> EngineState:
    """Return the engine state stored at *path*, or *fallback* when absent."""
    if not path.exists():
        return fallback
    payload = path.read_text(encoding="utf-8")
    if not payload.strip():
        return fallback
    return EngineState(payload)


def normalise_outputs(raw: object) -> dict[str, object]:
    """Unwrap ``tofu output -json`` entries to their values.

    Examples
    --------
    >>> normalise_outputs({"endpoint": {"value": "1.2.3.4", "type": "string"}})
    {'endpoint': '1.2.3.4'}
    """
    if not isinstance(raw, dict):
        msg = f"tofu output returned unexpected data: {type(raw).__name__}"
        raise TypeError(msg)
    outputs: dict[str, object] = {}
    for key, entry in raw.items():
        if isinstance(entry, dict) and "value" in entry:
            outputs[key] = entry["value"]
        else:
            outputs[key] = entry
    return outputs


def _has_provider_block(document: str, name: str) -> bool:
    pattern = rf'^\s*provider\s+"{re.escape(name)}"\s*\{{'
    return re.search(pattern, document, flags=re.MULTILINE) is not None


class TofuPlatform:
    """An OpenTofu execution context for one document and one plugin.

    Parameters
    ----------
    document
        HCL document to apply.
    plugin
        The provider plugin the document configures.
    runner
        Callable executing ``tofu`` with ``(args, cwd)``; defaults to
        :func:`run_tofu`.
    binary
        OpenTofu executable used by the default runner.
    work_root
        Parent directory for per-apply working directories.
    """

    def __init__(
        self,
        document: str,
        plugin: ProviderPlugin,
        *,
        runner: CommandRunner | None = None,
        binary: str = "tofu",
        work_root: Path | None = None,
    ) -> None:
        if not _has_provider_block(document, plugin.name):
            msg = f"document does not configure provider {plugin.name!r}"
            raise UnsupportedBackendError(msg)
        self.document = document
        self.plugin = plugin
        self._runner = runner or partial(run_tofu, binary=binary)
        self._work_root = work_root
        self._variables: dict[str, object] = {}

    @property
    def variables(self) -> dict[str, object]:
        return dict(self._variables)

    def var(self, key: str, value: object) -> None:
        """Bind *value* to the document variable *key*."""
        self._variables[key] = value

    def _write_workspace(self, work_dir: Path, state: EngineState) -> None:
        (work_dir / DOCUMENT_FILE).write_text(self.document, encoding="utf-8")
        (work_dir / PROVIDERS_FILE).write_text(
            render_required_providers(self.plugin) + "\n", encoding="utf-8"
        )
        write_tfvars(work_dir / VAR_FILE, self._variables)
        if not state.is_empty:
            (work_dir / STATE_FILE).write_text(state.payload, encoding="utf-8")

    def _run(self, args: list[str], work_dir: Path) -> TofuResult:
        logger.info("Running tofu %s", args[0])
        result = self._runner(args, work_dir)
        if result.stderr:
            logger.debug("tofu %s stderr: %s", args[0], result.stderr.strip())
        return result

    def apply(self, state: EngineState, *, destroy: bool = False) -> ApplyResult:
        """Apply the document against *state*.

        Parameters
        ----------
        state
            Engine state from the previous apply; ``EngineState.empty()`` for
            a first create.
        destroy
            Destroy every resource tracked by *state* instead of creating.

        Returns
        -------
        ApplyResult
            The new state and, for non-destroy applies, the document outputs.

        Raises
        ------
        EngineError
            If any OpenTofu command fails. ``EngineError.state`` holds the state
            captured after the failure.
        """
        with tempfile.TemporaryDirectory(
            prefix="clusterform-", dir=self._work_root
        ) as tmp:
            work_dir = Path(tmp)
            self._write_workspace(work_dir, state)

            init = self._run(["init", "-input=false", "-no-color"], work_dir)
            if not init.success:
                msg = f"tofu init failed: {init.stderr.strip()}"
                raise EngineError(msg, state=state, result=init)

            args = [
                "apply",
                "-input=false",
                "-no-color",
                "-auto-approve",
                f"-var-file={VAR_FILE}",
            ]
            if destroy:
                args.append("-destroy")
            applied = self._run(args, work_dir)
            new_state = read_state(work_dir / STATE_FILE, state)
            if not applied.success:
                msg = f"tofu apply failed: {applied.stderr.strip()}"
                raise EngineError(msg, state=new_state, result=applied)

            if destroy:
                return ApplyResult(state=new_state)
            outputs = self._outputs(work_dir, new_state)
        return ApplyResult(state=new_state, outputs=outputs)

    def _outputs(self, work_dir: Path, state: EngineState) -> dict[str, object]:
        result = self._run(["output", "-json", "-no-color"], work_dir)
        if not result.success:
            msg = f"tofu output failed: {result.stderr.strip()}"
            raise EngineError(msg, state=state, result=result)
        try:
            return normalise_outputs(json.loads(result.stdout or "{}"))
        except (json.JSONDecodeError, TypeError) as exc:
            msg = f"tofu output returned invalid JSON: {exc}"
            raise EngineError(msg, state=state, result=result) from exc
