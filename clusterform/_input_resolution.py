"""Resolve CLI inputs with environment fallbacks."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class InputResolution:
    """How to resolve one CLI input when the flag was not given."""

    env_key: str
    default: str | Path | int | None = None
    required: bool = False
    as_path: bool = False
    as_int: bool = False


def _convert(value: str, resolution: InputResolution) -> str | Path | int:
    if resolution.as_path:
        return Path(value)
    if resolution.as_int:
        try:
            return int(value)
        except ValueError as exc:
            msg = f"{resolution.env_key} must be an integer, got {value!r}"
            raise SystemExit(msg) from exc
    return value


def resolve_input(
    param_value: str | Path | int | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | Path | int | None:
    """Resolve input from parameter, environment variable, or default.

    Examples
    --------
    >>> resolve_input(None, InputResolution("POLL_ATTEMPTS", as_int=True), {"POLL_ATTEMPTS": "3"})
    3
    """
    if param_value is not None:
        return param_value

    source = os.environ if env is None else env
    env_value = source.get(resolution.env_key)
    if env_value is not None:
        return _convert(env_value, resolution)

    if resolution.required:
        msg = f"{resolution.env_key} is required"
        raise SystemExit(msg)

    return resolution.default
