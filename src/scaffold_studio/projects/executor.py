"""Run project-scoped commands and stream their output."""

from __future__ import annotations

import logging
import shlex
from typing import Callable, Sequence
from uuid import uuid4

from ..channels import LogChannelRegistry, OutputEvent
from ..process import CommandFailed, LaunchError, ProcessResult, ProcessRunner, RunnerFactory
from ..storage import ChromaStore
from .repository import ProjectRepository

logger = logging.getLogger(__name__)

EventHook = Callable[[OutputEvent], None]
StartHook = Callable[[ProcessRunner], None]


def parse_command(command: str | Sequence[str]) -> list[str]:
    """Split a shell-style command string into an argument vector."""

    argv = shlex.split(command) if isinstance(command, str) else [str(part) for part in command]
    if not argv:
        raise ValueError("Command is required")
    return argv


class CommandExecutor:
    """Stateless per call: resolves the project directory and drives one runner."""

    def __init__(
        self,
        *,
        repository: ProjectRepository,
        registry: LogChannelRegistry,
        runner_factory: RunnerFactory = ProcessRunner,
        event_log: ChromaStore | None = None,
        persist_output: bool = False,
    ) -> None:
        self._repository = repository
        self._registry = registry
        self._runner_factory = runner_factory
        self._event_log = event_log
        self._persist_output = persist_output and event_log is not None

    async def execute(
        self,
        project_id: str,
        command: str | Sequence[str],
        *,
        kind: str | None = None,
        on_event: EventHook | None = None,
        on_start: StartHook | None = None,
    ) -> ProcessResult:
        """Run ``command`` inside the project directory.

        Every output line is published on the project's log channel; ``on_event``
        sees the same events. ``on_start`` receives the runner before it starts so
        callers can terminate it later.
        """

        argv = parse_command(command)
        cwd = self._repository.require_dir(project_id)
        run_id = uuid4().hex
        runner = self._runner_factory(argv[0], argv[1:], cwd=cwd)

        def emit(event: OutputEvent) -> None:
            self._registry.publish(project_id, event)
            if on_event is not None:
                on_event(event)
            if self._persist_output:
                self._persist(project_id, event, run_id)

        def on_output(stream: str, text: str) -> None:
            emit(OutputEvent(type=stream, data=text))

        emit(OutputEvent.info(f"$ {runner.display}"))
        self._record_run(project_id, run_id, runner.display, kind, "running")
        if on_start is not None:
            on_start(runner)

        logger.info("Executing project command", extra={"project_id": project_id, "command": runner.display})
        try:
            result = await runner.run(on_output)
        except CommandFailed as exc:
            emit(OutputEvent.error(str(exc)))
            self._record_run(project_id, run_id, runner.display, kind, "failed", returncode=exc.exit_code)
            raise
        except LaunchError as exc:
            emit(OutputEvent.error(str(exc)))
            self._record_run(project_id, run_id, runner.display, kind, "launch_failed")
            raise

        emit(OutputEvent.info(f"Command finished: {runner.display}"))
        self._record_run(project_id, run_id, runner.display, kind, "succeeded", returncode=result.returncode)
        return result

    def _persist(self, project_id: str, event: OutputEvent, run_id: str) -> None:
        assert self._event_log is not None
        try:
            self._event_log.record_output(project_id, event, run_id=run_id)
        except Exception:
            logger.warning("Failed to persist output event", extra={"project_id": project_id}, exc_info=True)

    def _record_run(
        self,
        project_id: str,
        run_id: str,
        command: str,
        kind: str | None,
        status: str,
        *,
        returncode: int | None = None,
    ) -> None:
        if self._event_log is None:
            return
        try:
            self._event_log.record_command_run(
                project_id=project_id,
                run_id=run_id,
                command=command,
                kind=kind,
                status=status,
                returncode=returncode,
            )
        except Exception:
            logger.warning("Failed to record command run", extra={"project_id": project_id}, exc_info=True)


__all__ = ["CommandExecutor", "parse_command"]
