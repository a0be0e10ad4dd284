"""Async runner for external generator and build commands."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import shutil
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, Mapping, Sequence

from .utils import build_environment, format_command

logger = logging.getLogger(__name__)

StreamName = Literal["stdout", "stderr"]
OutputCallback = Callable[[StreamName, str], None]

_READ_SIZE = 64 * 1024
_MAX_LINE = 1024 * 1024


class ProcessError(RuntimeError):
    """Base class for process runner errors."""


class LaunchError(ProcessError):
    """Raised when the executable cannot be located or started."""


class CommandFailed(ProcessError):
    """Raised when the process exits non-zero or is killed by a signal.

    ``exit_code`` is ``None`` when the process was terminated by a signal.
    """

    def __init__(self, message: str, *, exit_code: int | None, args: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.command_args = args


@dataclass(slots=True)
class ProcessResult:
    """Holds the outcome of a finished command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """Run one external command to completion, streaming its output.

    A runner serves exactly one invocation; create a new one per command.
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._command = command
        self._args = tuple(args)
        self._cwd = Path(cwd)
        self._env = build_environment(env)
        self._process: asyncio.subprocess.Process | None = None
        self._used = False

    @property
    def display(self) -> str:
        return format_command(self._command, self._args)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _resolve_executable(self) -> str:
        candidate = Path(self._command)
        if candidate.is_absolute() or os.sep in self._command:
            if candidate.exists() and candidate.is_file():
                return str(candidate)
            raise LaunchError(f"Executable not found at {candidate}")

        binary = shutil.which(self._command, path=self._env.get("PATH"))
        if binary is None:
            raise LaunchError(f"Executable '{self._command}' not found on PATH")
        return binary

    async def run(self, on_output: OutputCallback | None = None) -> ProcessResult:
        """Run the command, invoking ``on_output`` for every line in emission order."""

        if self._used:
            raise RuntimeError("ProcessRunner instances are single-use")
        self._used = True

        executable = self._resolve_executable()
        cmd = (executable, *self._args)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self._cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            raise LaunchError(f"Failed to start '{self.display}': {exc}") from exc

        logger.debug("Started process", extra={"pid": self._process.pid, "command": self.display})

        captured: dict[str, list[str]] = {"stdout": [], "stderr": []}

        async def pump(stream: asyncio.StreamReader, name: StreamName) -> None:
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

            def deliver(raw: bytes, final: bool = False) -> None:
                text = decoder.decode(raw, final=final)
                if not text:
                    return
                captured[name].append(text)
                if on_output is not None:
                    on_output(name, text.rstrip("\r\n"))

            pending = b""
            while True:
                chunk = await stream.read(_READ_SIZE)
                if not chunk:
                    break
                pending += chunk
                *lines, pending = pending.split(b"\n")
                for line in lines:
                    deliver(line + b"\n")
                # Progress output without newlines is emitted in pieces.
                if len(pending) >= _MAX_LINE:
                    deliver(pending)
                    pending = b""
            deliver(pending, final=True)

        assert self._process.stdout is not None and self._process.stderr is not None
        pumps = [
            asyncio.ensure_future(pump(self._process.stdout, "stdout")),
            asyncio.ensure_future(pump(self._process.stderr, "stderr")),
        ]
        try:
            await asyncio.gather(*pumps)
            returncode = await self._process.wait()
        except BaseException:
            for task in pumps:
                task.cancel()
            if self.running:
                self._signal(getattr(signal, "SIGKILL", signal.SIGTERM))
                await self._reap()
            raise

        result = ProcessResult(
            args=cmd,
            returncode=returncode,
            stdout="".join(captured["stdout"]),
            stderr="".join(captured["stderr"]),
        )
        if returncode < 0:
            raise CommandFailed(
                f"'{self.display}' was terminated by signal {-returncode}",
                exit_code=None,
                args=cmd,
            )
        if returncode != 0:
            raise CommandFailed(
                f"'{self.display}' failed with exit code {returncode}",
                exit_code=returncode,
                args=cmd,
            )
        return result

    def _signal(self, sig: int) -> None:
        assert self._process is not None
        if os.name == "posix":
            try:
                os.killpg(self._process.pid, sig)
                return
            except ProcessLookupError:
                return
            except PermissionError:
                pass
        if sig == getattr(signal, "SIGKILL", None):
            self._process.kill()
        else:
            self._process.terminate()

    async def _reap(self) -> None:
        assert self._process is not None
        try:
            await asyncio.wait_for(self._process.wait(), timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Killed process did not exit", extra={"pid": self._process.pid})

    async def terminate(self, timeout: float = 8.0) -> bool:
        """Terminate the process group, escalating to a kill after ``timeout`` seconds.

        Returns False when there was no running process to stop.
        """

        if not self.running:
            return False
        assert self._process is not None
        self._signal(signal.SIGTERM)
        try:
            await asyncio.wait_for(self._process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Process ignored SIGTERM; killing", extra={"pid": self._process.pid})
            self._signal(getattr(signal, "SIGKILL", signal.SIGTERM))
            await self._process.wait()
        return True


RunnerFactory = Callable[..., ProcessRunner]


__all__ = [
    "CommandFailed",
    "LaunchError",
    "OutputCallback",
    "ProcessError",
    "ProcessResult",
    "ProcessRunner",
    "RunnerFactory",
    "StreamName",
]
