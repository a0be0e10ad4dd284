"""Configuration management for Scaffold Studio."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class StudioSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    projects_root: Path = Field(
        default=Path("./storage/projects"), validation_alias="STUDIO_PROJECTS_ROOT"
    )
    scratch_root: Path | None = Field(default=None, validation_alias="STUDIO_SCRATCH_ROOT")
    generator_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("generators"),), validation_alias="STUDIO_GENERATOR_PATHS"
    )
    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )
    log_level: str = Field(default="INFO", validation_alias="STUDIO_LOG_LEVEL")
    install_dependencies: bool = Field(default=True, validation_alias="STUDIO_INSTALL_DEPENDENCIES")
    npm_command: str = Field(default="npm", validation_alias="STUDIO_NPM_COMMAND")
    persist_command_output: bool = Field(default=False, validation_alias="STUDIO_PERSIST_OUTPUT")
    output_buffer_lines: int = Field(default=500, validation_alias="STUDIO_OUTPUT_BUFFER_LINES")
    autosave_delay_ms: int = Field(default=1000, validation_alias="STUDIO_AUTOSAVE_DELAY_MS")
    stop_timeout_seconds: float = Field(default=8.0, validation_alias="STUDIO_STOP_TIMEOUT")
    http_host: str = Field(default="127.0.0.1", validation_alias="STUDIO_HTTP_HOST")
    http_port: int = Field(default=4001, validation_alias="STUDIO_HTTP_PORT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "STUDIO_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("generator_paths", mode="before")
    @classmethod
    def _parse_generator_paths(cls, value):
        if value is None or value == "":
            return (Path("generators"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("generators"),)
        raise TypeError("STUDIO_GENERATOR_PATHS must be a list of paths or a path-separated string")

    @field_validator("scratch_root", mode="before")
    @classmethod
    def _empty_scratch_root(cls, value):
        if value == "":
            return None
        return value

    @field_validator("output_buffer_lines")
    @classmethod
    def _validate_output_buffer_lines(cls, value: int) -> int:
        if value < 1:
            raise ValueError("STUDIO_OUTPUT_BUFFER_LINES must be >= 1")
        return value

    @field_validator("autosave_delay_ms")
    @classmethod
    def _validate_autosave_delay(cls, value: int) -> int:
        if value < 0:
            raise ValueError("STUDIO_AUTOSAVE_DELAY_MS must be >= 0")
        return value

    @field_validator("stop_timeout_seconds")
    @classmethod
    def _validate_stop_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("STUDIO_STOP_TIMEOUT must be > 0")
        return value

    @property
    def autosave_delay(self) -> float:
        """Debounce delay in seconds."""

        return self.autosave_delay_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> StudioSettings:
    """Return cached settings instance."""

    settings = StudioSettings()
    settings.projects_root = settings.projects_root.expanduser().resolve()
    if settings.scratch_root is not None:
        settings.scratch_root = settings.scratch_root.expanduser().resolve()
    settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    settings.generator_paths = tuple(path.expanduser().resolve() for path in settings.generator_paths)
    return settings


__all__ = ["StudioSettings", "get_settings"]
