from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from scaffold_studio.config import StudioSettings, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for key in list(os.environ):
        if key.startswith("STUDIO_") or key == "CHROMA_PERSIST_PATH":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = StudioSettings()

    assert settings.projects_root == Path("./storage/projects")
    assert settings.scratch_root is None
    assert settings.install_dependencies is True
    assert settings.autosave_delay == 1.0
    assert settings.log_level == "INFO"


def test_environment_aliases(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STUDIO_PROJECTS_ROOT", str(tmp_path / "projects"))
    monkeypatch.setenv("STUDIO_LOG_LEVEL", " debug ")
    monkeypatch.setenv("STUDIO_INSTALL_DEPENDENCIES", "false")
    monkeypatch.setenv("STUDIO_AUTOSAVE_DELAY_MS", "250")
    monkeypatch.setenv("STUDIO_SCRATCH_ROOT", "")

    settings = StudioSettings()

    assert settings.projects_root == tmp_path / "projects"
    assert settings.log_level == "DEBUG"
    assert settings.install_dependencies is False
    assert settings.autosave_delay == 0.25
    assert settings.scratch_root is None


def test_generator_paths_split_on_path_separator(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STUDIO_GENERATOR_PATHS", os.pathsep.join(["one", " two ", ""]))

    settings = StudioSettings()

    assert settings.generator_paths == (Path("one"), Path("two"))


@pytest.mark.parametrize(
    ("variable", "value"),
    [
        ("STUDIO_LOG_LEVEL", "chatty"),
        ("STUDIO_OUTPUT_BUFFER_LINES", "0"),
        ("STUDIO_AUTOSAVE_DELAY_MS", "-1"),
        ("STUDIO_STOP_TIMEOUT", "0"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, variable: str, value: str) -> None:
    monkeypatch.setenv(variable, value)

    with pytest.raises(ValidationError):
        StudioSettings()


def test_get_settings_resolves_paths_and_caches(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STUDIO_PROJECTS_ROOT", "relative/projects")

    settings = get_settings()

    assert settings.projects_root == (tmp_path / "relative" / "projects").resolve()
    assert settings.projects_root.is_absolute()
    assert get_settings() is settings
