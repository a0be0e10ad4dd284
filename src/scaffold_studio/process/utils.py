"""Utility helpers for the process runner."""

from __future__ import annotations

import os
import shlex
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

# Generators and package managers stay non-interactive but keep their colors.
_FORCED_VARS = {
    "FORCE_COLOR": "1",
    "CI": "true",
    "NG_CLI_ANALYTICS": "false",
    "npm_config_yes": "true",
    "BROWSER": "none",
}


def build_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized, non-interactive environment for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_FORCED_VARS)
    if additional:
        env.update(additional)
    return env


def format_command(command: str, args: tuple[str, ...] | list[str]) -> str:
    """Render a command line for display in log events."""

    return shlex.join([command, *args])
