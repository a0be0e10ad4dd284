"""Caller-visible status of lifecycle commands (install/build/serve) per project."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from ..channels import OutputEvent
from ..process import CommandFailed, LaunchError, ProcessRunner
from .executor import CommandExecutor, parse_command
from .generators import GeneratorCatalog
from .models import utcnow
from .repository import ProjectRepository

logger = logging.getLogger(__name__)


class CommandKind(str, Enum):
    INSTALL = "install"
    BUILD = "build"
    SERVE = "serve"


@dataclass
class RunStatus:
    """Latest state of one lifecycle command for one project."""

    project_id: str
    kind: CommandKind
    state: str = "idle"
    command: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    returncode: int | None = None
    error: str | None = None
    url: str | None = None
    output: deque = field(default_factory=lambda: deque(maxlen=500))

    @property
    def running(self) -> bool:
        return self.state == "running"

    @property
    def active(self) -> bool:
        """True until the process is gone, including while a stop is in progress."""

        return self.state in ("running", "stopping")

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "kind": self.kind.value,
            "state": self.state,
            "command": list(self.command),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "returncode": self.returncode,
            "error": self.error,
            "url": self.url,
            "output": list(self.output),
        }


class CommandSupervisor:
    """Prevents overlapping runs of the same lifecycle command and owns their processes.

    Stopping a command terminates its process group rather than only resetting
    the status flag.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        repository: ProjectRepository,
        generators: GeneratorCatalog,
        npm_command: str = "npm",
        output_limit: int = 500,
        stop_timeout: float = 8.0,
    ) -> None:
        self._executor = executor
        self._repository = repository
        self._generators = generators
        self._npm_command = npm_command
        self._output_limit = output_limit
        self._stop_timeout = stop_timeout
        self._statuses: dict[tuple[str, CommandKind], RunStatus] = {}
        self._tasks: dict[tuple[str, CommandKind], asyncio.Task] = {}
        self._runners: dict[tuple[str, CommandKind], ProcessRunner] = {}

    def default_command(self, project_id: str, kind: CommandKind) -> list[str]:
        if kind is CommandKind.INSTALL:
            return [self._npm_command, "install"]
        project = self._repository.load(project_id)
        generator = self._generators.get(project.framework)
        if kind is CommandKind.BUILD:
            return list(generator.build_command)
        return list(generator.serve_command)

    def _serve_url(self, project_id: str) -> str | None:
        project = self._repository.load(project_id)
        return self._generators.get(project.framework).serve_url

    def status(self, project_id: str, kind: CommandKind | None = None) -> dict[str, RunStatus]:
        kinds = [kind] if kind is not None else list(CommandKind)
        return {
            item.value: self._statuses.get((project_id, item)) or RunStatus(project_id=project_id, kind=item)
            for item in kinds
        }

    def is_running(self, project_id: str, kind: CommandKind) -> bool:
        status = self._statuses.get((project_id, kind))
        return status is not None and status.active

    def start(self, project_id: str, kind: CommandKind, command: Sequence[str] | str | None = None) -> bool:
        """Launch the command in the background; False if that kind is already running."""

        key = (project_id, kind)
        if self.is_running(project_id, kind):
            logger.info("Command already running", extra={"project_id": project_id, "kind": kind.value})
            return False

        self._repository.require_dir(project_id)
        argv = command if command is not None else self.default_command(project_id, kind)
        status = RunStatus(
            project_id=project_id,
            kind=kind,
            state="running",
            command=parse_command(argv),
            started_at=utcnow(),
            output=deque(maxlen=self._output_limit),
        )
        if kind is CommandKind.SERVE:
            status.url = self._serve_url(project_id)
        self._statuses[key] = status
        self._tasks[key] = asyncio.create_task(self._drive(status, argv))
        return True

    async def run(self, project_id: str, kind: CommandKind, command: Sequence[str] | str | None = None) -> RunStatus:
        """Start the command and wait for it to finish."""

        if not self.start(project_id, kind, command):
            return self._statuses[(project_id, kind)]
        task = self._tasks.get((project_id, kind))
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._statuses[(project_id, kind)]

    async def _drive(self, status: RunStatus, argv: Sequence[str] | str) -> None:
        key = (status.project_id, status.kind)

        def on_event(event: OutputEvent) -> None:
            status.output.append(event.data)

        own_runner: ProcessRunner | None = None

        def on_start(runner: ProcessRunner) -> None:
            nonlocal own_runner
            own_runner = runner
            self._runners[key] = runner

        try:
            result = await self._executor.execute(
                status.project_id,
                argv,
                kind=status.kind.value,
                on_event=on_event,
                on_start=on_start,
            )
        except CommandFailed as exc:
            if status.state == "running":
                status.state = "failed"
                status.error = str(exc)
            status.returncode = exc.exit_code
        except (LaunchError, LookupError, ValueError) as exc:
            if status.state == "running":
                status.state = "failed"
            status.error = str(exc)
        except asyncio.CancelledError:
            status.state = "stopped"
            raise
        else:
            if status.state == "running":
                status.state = "succeeded"
            status.returncode = result.returncode
        finally:
            status.finished_at = utcnow()
            if status.kind is CommandKind.SERVE:
                status.url = None
            # A newer run may already own these slots.
            if own_runner is not None and self._runners.get(key) is own_runner:
                del self._runners[key]
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
            logger.info(
                "Lifecycle command finished",
                extra={"project_id": status.project_id, "kind": status.kind.value, "state": status.state},
            )

    async def stop(self, project_id: str, kind: CommandKind) -> bool:
        """Terminate a running command; False when nothing was running.

        The status stays ``stopping`` until the process group is gone, so the same
        kind cannot be started again in the meantime.
        """

        key = (project_id, kind)
        status = self._statuses.get(key)
        if status is None or not status.running:
            return False
        status.state = "stopping"
        runner = self._runners.get(key)
        task = self._tasks.get(key)
        try:
            terminated = False
            if runner is not None:
                terminated = await runner.terminate(timeout=self._stop_timeout)
            if not terminated and task is not None:
                task.cancel()
            if task is not None:
                await asyncio.gather(task, return_exceptions=True)
        finally:
            status.state = "stopped"
        logger.info("Stopped lifecycle command", extra={"project_id": project_id, "kind": kind.value})
        return True

    async def stop_all(self, project_id: str | None = None) -> int:
        stopped = 0
        for pid, kind in list(self._statuses):
            if project_id is not None and pid != project_id:
                continue
            if await self.stop(pid, kind):
                stopped += 1
        return stopped

    def running(self) -> list[RunStatus]:
        return [status for status in self._statuses.values() if status.running]

    def forget(self, project_id: str) -> None:
        for key in [key for key in self._statuses if key[0] == project_id]:
            self._statuses.pop(key, None)


__all__ = ["CommandKind", "CommandSupervisor", "RunStatus"]
