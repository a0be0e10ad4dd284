"""Create-project workflow: stage, generate, promote, clean up."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from uuid import uuid4

from ..channels import LogChannelRegistry, OutputEvent
from ..process import CommandFailed, LaunchError, ProcessError, ProcessRunner, RunnerFactory
from ..storage import ChromaStore
from .generators import GeneratorCatalog, GeneratorProfile
from .models import FileNode, Project, ProjectConfig
from .repository import ProjectRepository
from .tree import build_file_tree

logger = logging.getLogger(__name__)


class ProvisioningState(str, Enum):
    STAGING = "staging"
    GENERATING = "generating"
    PROMOTING = "promoting"
    DONE = "done"
    FAILED = "failed"


class CopyError(RuntimeError):
    """Raised when promoting the staged project into its final directory fails."""


class ProvisioningError(RuntimeError):
    """Terminal provisioning failure, raised only after cleanup has finished."""

    def __init__(self, message: str, *, project_id: str, state: ProvisioningState) -> None:
        super().__init__(message)
        self.project_id = project_id
        self.state = state


@dataclass(slots=True)
class ProvisioningResult:
    project: Project
    files: list[FileNode]
    strategy: str
    history: list[ProvisioningState] = field(default_factory=list)


class _Attempt:
    """Mutable bookkeeping for one provisioning run."""

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        self.state = ProvisioningState.STAGING
        self.history: list[ProvisioningState] = [ProvisioningState.STAGING]
        self.scratch: Path | None = None
        self.final: Path | None = None
        self.promotion_started = False

    def advance(self, state: ProvisioningState) -> None:
        self.state = state
        self.history.append(state)


class Provisioner:
    """Runs the full create-project workflow for one request at a time per project id."""

    def __init__(
        self,
        *,
        repository: ProjectRepository,
        generators: GeneratorCatalog,
        registry: LogChannelRegistry,
        runner_factory: RunnerFactory = ProcessRunner,
        scratch_root: Path | None = None,
        install_dependencies: bool = True,
        npm_command: str = "npm",
        event_log: ChromaStore | None = None,
    ) -> None:
        self._repository = repository
        self._generators = generators
        self._registry = registry
        self._runner_factory = runner_factory
        self._scratch_root = Path(scratch_root) if scratch_root is not None else None
        self._install_dependencies = install_dependencies
        self._npm_command = npm_command
        self._event_log = event_log

    def _info(self, project_id: str, message: str) -> None:
        self._registry.publish(project_id, OutputEvent.info(message))

    def _error(self, project_id: str, message: str) -> None:
        self._registry.publish(project_id, OutputEvent.error(message))

    def _forward(self, project_id: str):
        def on_output(stream: str, text: str) -> None:
            self._registry.publish(project_id, OutputEvent(type=stream, data=text))

        return on_output

    async def provision(self, config: ProjectConfig, *, project_id: str | None = None) -> ProvisioningResult:
        """Provision a new project or raise ``ProvisioningError`` with nothing left behind."""

        project_id = project_id or str(uuid4())
        generator = self._generators.get(config.framework)
        attempt = _Attempt(project_id)

        logger.info(
            "Provisioning project",
            extra={"project_id": project_id, "framework": config.framework.value, "project_name": config.name},
        )

        try:
            await self._stage(attempt)

            attempt.advance(ProvisioningState.GENERATING)
            strategy = await self._generate(attempt, generator, config)
            if self._install_dependencies:
                await self._run(attempt, self._npm_command, ["install"])

            attempt.advance(ProvisioningState.PROMOTING)
            project = Project.from_config(project_id, config)
            await self._promote(attempt, project)

            attempt.advance(ProvisioningState.DONE)
            await self._discard(attempt.scratch)
            assert attempt.final is not None
            files = await asyncio.to_thread(build_file_tree, attempt.final, include_content=True)
        except (ProcessError, CopyError, OSError) as exc:
            failed_in = attempt.state
            await self._rollback(attempt)
            message = f"Provisioning failed during {failed_in.value}: {exc}"
            self._error(project_id, message)
            self._record(project_id, config, "failed", error=str(exc))
            logger.error(
                "Provisioning failed",
                extra={"project_id": project_id, "state": failed_in.value, "error": str(exc)},
            )
            raise ProvisioningError(message, project_id=project_id, state=failed_in) from exc
        except BaseException:
            await asyncio.shield(self._rollback(attempt))
            raise

        self._info(project_id, f"Project '{config.name}' is ready")
        self._record(project_id, config, "done", strategy=strategy)
        logger.info("Provisioned project", extra={"project_id": project_id, "strategy": strategy})
        return ProvisioningResult(project=project, files=files, strategy=strategy, history=list(attempt.history))

    async def _stage(self, attempt: _Attempt) -> None:
        if self._scratch_root is not None:
            await asyncio.to_thread(self._scratch_root.mkdir, parents=True, exist_ok=True)
        scratch = await asyncio.to_thread(
            tempfile.mkdtemp,
            prefix=f"studio-{attempt.project_id[:8]}-",
            dir=str(self._scratch_root) if self._scratch_root is not None else None,
        )
        attempt.scratch = Path(scratch)
        self._info(attempt.project_id, f"Staging project in {attempt.scratch}")

    async def _run(self, attempt: _Attempt, command: str, args: list[str]) -> None:
        assert attempt.scratch is not None
        runner = self._runner_factory(command, args, cwd=attempt.scratch)
        self._info(attempt.project_id, f"$ {runner.display}")
        await runner.run(self._forward(attempt.project_id))

    async def _generate(self, attempt: _Attempt, generator: GeneratorProfile, config: ProjectConfig) -> str:
        strategies = generator.invocations()
        for index, (strategy, invocation) in enumerate(strategies):
            command, args = invocation.render(config.name)
            try:
                await self._run(attempt, command, args)
                return strategy
            except (LaunchError, CommandFailed) as exc:
                if index == len(strategies) - 1:
                    raise
                self._error(attempt.project_id, f"{strategy.capitalize()} generator failed: {exc}")
                logger.warning(
                    "Generator strategy failed; falling back",
                    extra={"project_id": attempt.project_id, "strategy": strategy, "error": str(exc)},
                )
                await self._reset_scratch(attempt)
        raise AssertionError("generator profile has no invocations")  # pragma: no cover

    async def _reset_scratch(self, attempt: _Attempt) -> None:
        # A failed strategy may leave partial output; the next one starts clean.
        assert attempt.scratch is not None
        await asyncio.to_thread(shutil.rmtree, attempt.scratch, ignore_errors=True)
        await asyncio.to_thread(attempt.scratch.mkdir, parents=True, exist_ok=True)

    async def _promote(self, attempt: _Attempt, project: Project) -> None:
        assert attempt.scratch is not None
        final = self._repository.path_for(project.id)
        attempt.final = final
        attempt.promotion_started = True
        self._info(attempt.project_id, f"Promoting project into {final}")

        def copy() -> None:
            if final.exists():
                shutil.rmtree(final)
            final.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(attempt.scratch, final, symlinks=True)
            self._repository.save(project)

        try:
            await asyncio.to_thread(copy)
        except (OSError, shutil.Error) as exc:
            raise CopyError(f"Failed to promote project into {final}: {exc}") from exc

    async def _discard(self, path: Path | None) -> None:
        if path is None:
            return
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)

    async def _rollback(self, attempt: _Attempt) -> None:
        attempt.advance(ProvisioningState.FAILED)
        await self._discard(attempt.scratch)
        if attempt.promotion_started:
            await self._discard(attempt.final)

    def _record(
        self,
        project_id: str,
        config: ProjectConfig,
        status: str,
        *,
        strategy: str | None = None,
        error: str | None = None,
    ) -> None:
        if self._event_log is None:
            return
        try:
            self._event_log.record_provisioning(
                project_id=project_id,
                framework=config.framework.value,
                status=status,
                strategy=strategy,
                error=error,
                metadata={"name": config.name},
            )
        except Exception:
            logger.warning("Failed to record provisioning event", extra={"project_id": project_id}, exc_info=True)


__all__ = [
    "CopyError",
    "Provisioner",
    "ProvisioningError",
    "ProvisioningResult",
    "ProvisioningState",
]
