"""On-disk registry of provisioned projects."""

from __future__ import annotations

import json
import logging
import re
import shutil
import threading
from pathlib import Path

from pydantic import ValidationError

from .models import Project

logger = logging.getLogger(__name__)

METADATA_FILE = "project.json"
_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


class ProjectNotFoundError(LookupError):
    """Raised when no project exists for an id."""


class InvalidProjectIdError(ValueError):
    """Raised when a project id cannot map to a directory."""


class ProjectRepository:
    """Maps project ids 1:1 to directories under ``root``.

    Each project directory carries its metadata in ``project.json``.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    def path_for(self, project_id: str) -> Path:
        if not _ID_PATTERN.match(project_id or ""):
            raise InvalidProjectIdError(f"Invalid project id '{project_id}'")
        return self._root / project_id

    def exists(self, project_id: str) -> bool:
        try:
            return (self.path_for(project_id) / METADATA_FILE).is_file()
        except InvalidProjectIdError:
            return False

    def require_dir(self, project_id: str) -> Path:
        """Return the directory of an existing project."""

        path = self.path_for(project_id)
        if not path.is_dir():
            raise ProjectNotFoundError(f"Project '{project_id}' not found")
        return path

    def save(self, project: Project) -> Path:
        path = self.path_for(project.id)
        path.mkdir(parents=True, exist_ok=True)
        metadata = project.model_dump(mode="json", by_alias=True)
        with self._lock:
            (path / METADATA_FILE).write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        return path

    def load(self, project_id: str) -> Project:
        metadata_path = self.path_for(project_id) / METADATA_FILE
        try:
            raw = metadata_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ProjectNotFoundError(f"Project '{project_id}' not found") from exc
        return Project.model_validate(json.loads(raw))

    def list_all(self) -> list[Project]:
        if not self._root.exists():
            return []
        projects: list[Project] = []
        for entry in sorted(self._root.iterdir()):
            if not (entry / METADATA_FILE).is_file():
                continue
            try:
                projects.append(self.load(entry.name))
            except (InvalidProjectIdError, ValidationError, json.JSONDecodeError) as exc:
                logger.warning(
                    "Skipping unreadable project metadata",
                    extra={"path": str(entry), "error": str(exc)},
                )
        projects.sort(key=lambda project: project.created_at)
        return projects

    def touch(self, project_id: str) -> Project:
        """Refresh ``updated_at`` after a file write."""

        project = self.load(project_id)
        project.touch()
        self.save(project)
        return project

    def delete(self, project_id: str) -> bool:
        path = self.path_for(project_id)
        if not path.exists():
            return False
        shutil.rmtree(path)
        return True


__all__ = [
    "InvalidProjectIdError",
    "METADATA_FILE",
    "ProjectNotFoundError",
    "ProjectRepository",
]
