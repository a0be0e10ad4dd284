"""Editor language modes derived from file extensions."""

from __future__ import annotations

from pathlib import PurePosixPath

DEFAULT_LANGUAGE = "plaintext"

LANGUAGE_EXTENSIONS = {
    "typescript": [".ts", ".tsx", ".cts", ".mts"],
    "javascript": [".js", ".jsx", ".mjs", ".cjs"],
    "html": [".html", ".htm"],
    "css": [".css"],
    "scss": [".scss", ".sass"],
    "less": [".less"],
    "json": [".json", ".jsonc"],
    "markdown": [".md", ".markdown"],
    "yaml": [".yml", ".yaml"],
    "xml": [".xml", ".svg"],
    "python": [".py", ".pyi"],
    "shell": [".sh", ".bash"],
}

_BY_EXTENSION = {
    extension: language
    for language, extensions in LANGUAGE_EXTENSIONS.items()
    for extension in extensions
}


def language_for_path(path: str) -> str:
    """Return the editor language mode for ``path``, ``plaintext`` when unknown."""

    suffix = PurePosixPath(path.replace("\\", "/")).suffix.lower()
    return _BY_EXTENSION.get(suffix, DEFAULT_LANGUAGE)


__all__ = ["DEFAULT_LANGUAGE", "LANGUAGE_EXTENSIONS", "language_for_path"]
