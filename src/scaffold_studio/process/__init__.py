"""External process execution utilities."""

from .runner import (
    CommandFailed,
    LaunchError,
    ProcessError,
    ProcessResult,
    ProcessRunner,
    RunnerFactory,
)

__all__ = [
    "CommandFailed",
    "LaunchError",
    "ProcessError",
    "ProcessResult",
    "ProcessRunner",
    "RunnerFactory",
]
