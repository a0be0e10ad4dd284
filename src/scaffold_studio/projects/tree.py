"""Recursive project file tree."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from .models import FileNode

SKIPPED_NAMES = frozenset({"node_modules", ".git", "project.json"})


def build_file_tree(root: Path, *, include_content: bool = True, _base: str = "") -> list[FileNode]:
    """Walk ``root`` and return its entries, directories first, then by name."""

    nodes: list[FileNode] = []
    entries = sorted(Path(root).iterdir(), key=lambda entry: (not entry.is_dir(), entry.name))
    for entry in entries:
        if entry.name in SKIPPED_NAMES:
            continue
        relative = f"{_base}/{entry.name}" if _base else entry.name
        if entry.is_dir():
            nodes.append(
                FileNode(
                    name=entry.name,
                    type="directory",
                    path=relative,
                    children=build_file_tree(entry, include_content=include_content, _base=relative),
                )
            )
            continue
        stats = entry.stat()
        nodes.append(
            FileNode(
                name=entry.name,
                type="file",
                path=relative,
                size=stats.st_size,
                modified_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                content=entry.read_text(encoding="utf-8", errors="replace") if include_content else None,
            )
        )
    return nodes


__all__ = ["SKIPPED_NAMES", "build_file_tree"]
