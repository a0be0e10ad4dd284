"""Disk-backed file store for provisioned projects."""

from __future__ import annotations

import asyncio
import logging

from ..storage.files import StoreError, normalize_path
from .repository import ProjectRepository

logger = logging.getLogger(__name__)


class DiskFileStore:
    """Reads and writes project files; every write refreshes the project timestamp."""

    def __init__(self, repository: ProjectRepository) -> None:
        self._repository = repository

    def _resolve(self, project_id: str, path: str):
        relative = normalize_path(path)
        return self._repository.require_dir(project_id) / relative, relative

    async def get(self, project_id: str, path: str) -> str:
        target, relative = self._resolve(project_id, path)
        try:
            return await asyncio.to_thread(target.read_text, encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"Failed to read '{relative}': {exc}") from exc

    async def put(self, project_id: str, path: str, content: str) -> None:
        target, relative = self._resolve(project_id, path)

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            self._repository.touch(project_id)

        try:
            await asyncio.to_thread(write)
        except OSError as exc:
            raise StoreError(f"Failed to write '{relative}': {exc}") from exc
        logger.debug("Wrote project file", extra={"project_id": project_id, "path": relative})

    async def delete(self, project_id: str, path: str) -> None:
        target, relative = self._resolve(project_id, path)

        def remove() -> None:
            target.unlink()
            self._repository.touch(project_id)

        try:
            await asyncio.to_thread(remove)
        except OSError as exc:
            raise StoreError(f"Failed to delete '{relative}': {exc}") from exc


__all__ = ["DiskFileStore"]
