"""Wiring of the long-lived studio components shared by every transport."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .channels import LogChannelRegistry
from .config import StudioSettings
from .editor import EditorPreferences, EditorSession, SaveCoordinator
from .process import ProcessRunner, RunnerFactory
from .projects import (
    CommandExecutor,
    CommandSupervisor,
    DiskFileStore,
    GeneratorCatalog,
    ProjectRepository,
    Provisioner,
)
from .storage import ChromaStore, ChromaUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class StudioServices:
    settings: StudioSettings
    repository: ProjectRepository
    registry: LogChannelRegistry
    generators: GeneratorCatalog
    provisioner: Provisioner
    executor: CommandExecutor
    supervisor: CommandSupervisor
    file_store: DiskFileStore
    chroma_store: ChromaStore | None = None
    chroma_metadata: dict[str, Any] = field(default_factory=dict)

    def open_editor(
        self, project_id: str, *, preferences: EditorPreferences | None = None
    ) -> tuple[EditorSession, SaveCoordinator]:
        """Start an editing session whose saves go to the project's files on disk."""

        self.repository.require_dir(project_id)
        session = EditorSession(project_id)
        coordinator = SaveCoordinator.from_settings(
            session, self.file_store, self.settings, preferences=preferences
        )
        return session, coordinator

    async def delete_project(self, project_id: str) -> bool:
        """Stop the project's commands, drop its log subscriber and remove its directory."""

        self.repository.path_for(project_id)
        stopped = await self.supervisor.stop_all(project_id)
        subscriber = self.registry.unregister(project_id)
        if subscriber is not None:
            subscriber.close()
        self.supervisor.forget(project_id)
        removed = await asyncio.to_thread(self.repository.delete, project_id)

        if removed and self.chroma_store is not None:
            try:
                self.chroma_store.record_event(
                    project_id=project_id,
                    event_type="project_deleted",
                    body={"project_id": project_id, "stopped_commands": stopped},
                )
            except Exception:
                logger.warning("Failed to record project deletion", extra={"project_id": project_id}, exc_info=True)

        logger.info(
            "Deleted project",
            extra={"project_id": project_id, "removed": removed, "stopped_commands": stopped},
        )
        return removed


def open_chroma_store(settings: StudioSettings) -> tuple[ChromaStore | None, dict[str, Any]]:
    """Try to open the event log; the studio runs without it when chromadb is missing."""

    metadata: dict[str, Any] = {
        "available": False,
        "path": str(settings.chroma_persist_path),
        "collection": "studio_events",
        "error": None,
    }
    try:
        store = ChromaStore(settings.chroma_persist_path)
        store.ping()
    except ChromaUnavailableError as exc:
        metadata["error"] = str(exc)
        return None, metadata
    metadata["available"] = True
    return store, metadata


def build_services(
    settings: StudioSettings,
    *,
    chroma_store: ChromaStore | None = None,
    runner_factory: RunnerFactory = ProcessRunner,
) -> StudioServices:
    """Assemble the component graph around one registry and one repository."""

    if chroma_store is not None:
        chroma_metadata = {
            "available": True,
            "path": str(settings.chroma_persist_path),
            "collection": "studio_events",
            "error": None,
        }
    else:
        chroma_store, chroma_metadata = open_chroma_store(settings)

    repository = ProjectRepository(settings.projects_root)
    repository.ensure_root()
    registry = LogChannelRegistry()
    generators = GeneratorCatalog(settings.generator_paths)

    provisioner = Provisioner(
        repository=repository,
        generators=generators,
        registry=registry,
        runner_factory=runner_factory,
        scratch_root=settings.scratch_root,
        install_dependencies=settings.install_dependencies,
        npm_command=settings.npm_command,
        event_log=chroma_store,
    )
    executor = CommandExecutor(
        repository=repository,
        registry=registry,
        runner_factory=runner_factory,
        event_log=chroma_store,
        persist_output=settings.persist_command_output,
    )
    supervisor = CommandSupervisor(
        executor,
        repository=repository,
        generators=generators,
        npm_command=settings.npm_command,
        output_limit=settings.output_buffer_lines,
        stop_timeout=settings.stop_timeout_seconds,
    )

    return StudioServices(
        settings=settings,
        repository=repository,
        registry=registry,
        generators=generators,
        provisioner=provisioner,
        executor=executor,
        supervisor=supervisor,
        file_store=DiskFileStore(repository),
        chroma_store=chroma_store,
        chroma_metadata=chroma_metadata,
    )


__all__ = ["StudioServices", "build_services", "open_chroma_store"]
