"""Project models."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Framework(str, Enum):
    """Front-end frameworks a project can be scaffolded with."""

    ANGULAR = "angular"
    REACT = "react"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectConfig(_WireModel):
    """User-supplied settings for a new project."""

    name: str = Field(..., description="Project name passed to the generator.")
    description: str | None = Field(default=None, description="Free-form description.")
    framework: Framework = Field(..., description="Generator selector.")

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Project name must not be empty")
        if len(normalized) > 214:
            raise ValueError("Project name must be at most 214 characters")
        if not _NAME_PATTERN.match(normalized):
            raise ValueError(
                "Project name must start with a letter and contain only letters, digits, '-' or '_'"
            )
        return normalized


class Project(_WireModel):
    """A provisioned project. The id is assigned once and never changes."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, validate_assignment=True
    )

    id: str = Field(..., frozen=True)
    name: str
    description: str | None = None
    framework: Framework
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_config(cls, project_id: str, config: ProjectConfig) -> "Project":
        now = utcnow()
        return cls(
            id=project_id,
            name=config.name,
            description=config.description,
            framework=config.framework,
            created_at=now,
            updated_at=now,
        )

    def touch(self) -> None:
        self.updated_at = utcnow()


class FileNode(_WireModel):
    """One entry of a project's file tree."""

    name: str
    type: Literal["file", "directory"]
    path: str
    size: int | None = None
    modified_at: datetime | None = None
    content: str | None = None
    children: list["FileNode"] | None = None


__all__ = ["FileNode", "Framework", "Project", "ProjectConfig", "utcnow"]
