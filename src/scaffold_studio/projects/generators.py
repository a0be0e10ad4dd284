"""Generator definitions and their YAML loader."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import Framework

_COMMON_ANGULAR_FLAGS = [
    "--directory=.",
    "--routing=true",
    "--style=scss",
    "--skip-git",
    "--skip-tests",
    "--defaults",
    "--skip-install",
]


class GeneratorLoadError(RuntimeError):
    """Raised when one or more generator files cannot be parsed."""


class UnknownFrameworkError(ValueError):
    """Raised when no generator is defined for the requested framework."""


class Invocation(BaseModel):
    """A command line used to run a generator or lifecycle command."""

    command: str = Field(..., description="Executable name or path.")
    args: list[str] = Field(default_factory=list, description="Arguments; '{name}' is substituted.")

    @field_validator("command")
    @classmethod
    def _normalize_command(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Invocation command must not be empty")
        return normalized

    @field_validator("args", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise TypeError("Invocation args must be a sequence of strings")

    def render(self, name: str) -> tuple[str, list[str]]:
        return self.command, [arg.replace("{name}", name) for arg in self.args]


class GeneratorProfile(BaseModel):
    """How to scaffold, build and serve projects of one framework."""

    framework: Framework
    title: str
    primary: Invocation
    fallback: Invocation | None = None
    build_command: list[str] = Field(default_factory=lambda: ["npm", "run", "build"])
    serve_command: list[str] = Field(default_factory=lambda: ["npm", "start"])
    serve_url: str | None = None

    def invocations(self) -> list[tuple[str, Invocation]]:
        strategies = [("primary", self.primary)]
        if self.fallback is not None:
            strategies.append(("fallback", self.fallback))
        return strategies


BUILTIN_GENERATORS: dict[Framework, GeneratorProfile] = {
    Framework.ANGULAR: GeneratorProfile(
        framework=Framework.ANGULAR,
        title="Angular CLI",
        primary=Invocation(command="ng", args=["new", "{name}", *_COMMON_ANGULAR_FLAGS]),
        fallback=Invocation(
            command="npx",
            args=["--yes", "@angular/cli@latest", "new", "{name}", *_COMMON_ANGULAR_FLAGS],
        ),
        serve_url="http://localhost:4200",
    ),
    Framework.REACT: GeneratorProfile(
        framework=Framework.REACT,
        title="Create React App",
        primary=Invocation(command="create-react-app", args=[".", "--template", "typescript"]),
        fallback=Invocation(
            command="npx",
            args=["--yes", "create-react-app", ".", "--template", "typescript"],
        ),
        serve_url="http://localhost:3000",
    ),
}


class GeneratorCatalog:
    """Built-in generator profiles, overridable from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> dict[Framework, GeneratorProfile]:
        """Load generators, letting later search paths override earlier ones."""

        generators: dict[Framework, GeneratorProfile] = dict(BUILTIN_GENERATORS)
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                try:
                    profile = GeneratorProfile.model_validate(document)
                except ValidationError as exc:
                    errors.append(f"Generator validation error in {path}: {exc}")
                    continue

                generators[profile.framework] = profile

        if errors:
            raise GeneratorLoadError("; ".join(errors))

        return generators

    def get(self, framework: Framework | str) -> GeneratorProfile:
        """Return the generator for ``framework``."""

        try:
            key = Framework(framework)
        except ValueError as exc:
            raise UnknownFrameworkError(f"Unknown framework '{framework}'") from exc
        try:
            return self.load_all()[key]
        except KeyError as exc:  # pragma: no cover - builtins cover the closed set
            raise UnknownFrameworkError(f"No generator defined for '{key.value}'") from exc


__all__ = [
    "BUILTIN_GENERATORS",
    "GeneratorCatalog",
    "GeneratorLoadError",
    "GeneratorProfile",
    "Invocation",
    "UnknownFrameworkError",
]
