from __future__ import annotations

import os
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pytest

from scaffold_studio.config import StudioSettings
from scaffold_studio.storage import ChromaStore


@dataclass
class _Record:
    document: str
    metadata: dict[str, Any]
    id: str


def _matches(metadata: dict[str, Any], where: dict[str, Any] | None) -> bool:
    if not where:
        return True
    if "$and" in where:
        return all(_matches(metadata, clause) for clause in where["$and"])
    return all(metadata.get(key) == value for key, value in where.items())


class StubCollection:
    def __init__(self) -> None:
        self.records: list[_Record] = []

    def add(self, *, documents, metadatas, ids) -> None:  # type: ignore[override]
        for document, metadata, record_id in zip(documents, metadatas, ids):
            self.records.append(_Record(document=document, metadata=dict(metadata), id=record_id))

    def get(self, *, ids=None, where=None, limit=None):  # type: ignore[override]
        filtered = [record for record in self.records if _matches(record.metadata, where)]
        if limit is not None:
            filtered = filtered[:limit]
        return {
            "ids": [record.id for record in filtered],
            "documents": [record.document for record in filtered],
            "metadatas": [record.metadata for record in filtered],
        }


class StubClient:
    def __init__(self) -> None:
        self.collections = defaultdict(StubCollection)

    def get_or_create_collection(self, name: str) -> StubCollection:
        return self.collections[name]


@pytest.fixture
def chroma_store(tmp_path: Path) -> ChromaStore:
    client = StubClient()
    return ChromaStore(tmp_path / "chroma", client_factory=lambda: client)


@pytest.fixture
def bin_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Directory of fake tools placed first on PATH; system tools stay reachable."""

    directory = tmp_path / "bin"
    directory.mkdir()
    monkeypatch.setenv("PATH", f"{directory}{os.pathsep}/usr/bin{os.pathsep}/bin")
    return directory


@pytest.fixture
def write_script(tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, body: str, directory: Path | None = None) -> Path:
        target_dir = directory or tmp_path / "scripts"
        target_dir.mkdir(parents=True, exist_ok=True)
        script = target_dir / name
        script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        script.chmod(0o755)
        return script

    return _write


@pytest.fixture
def settings(tmp_path: Path) -> StudioSettings:
    return StudioSettings(
        projects_root=tmp_path / "projects",
        scratch_root=tmp_path / "scratch",
        generator_paths=(tmp_path / "generators",),
        chroma_persist_path=tmp_path / "chroma",
        install_dependencies=False,
        autosave_delay_ms=50,
        stop_timeout_seconds=2.0,
    )
