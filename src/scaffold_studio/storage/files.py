"""File store contract shared by the server and the editing session."""

from __future__ import annotations

import asyncio
from typing import Protocol

import requests

_RESERVED_PATHS = {"project.json"}


class StoreError(RuntimeError):
    """Raised when reading or writing the file store fails."""


class InvalidPathError(StoreError):
    """Raised when a file path escapes the project or targets a reserved file."""


class FileStore(Protocol):
    """Async key/value access to project files, keyed by project id and path."""

    async def get(self, project_id: str, path: str) -> str:
        ...

    async def put(self, project_id: str, path: str, content: str) -> None:
        ...

    async def delete(self, project_id: str, path: str) -> None:
        ...


def normalize_path(raw_path: str) -> str:
    """Return a clean, project-relative POSIX path or raise ``InvalidPathError``."""

    cleaned = (raw_path or "").replace("\\", "/").strip().lstrip("/")
    parts: list[str] = []
    for part in cleaned.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            raise InvalidPathError("Path traversal is not allowed")
        parts.append(part)
    normalized = "/".join(parts)
    if not normalized:
        raise InvalidPathError("File path is required")
    if normalized in _RESERVED_PATHS or normalized.startswith("node_modules/"):
        raise InvalidPathError(f"Path is not editable: {normalized}")
    return normalized


class ApiFileStore:
    """File store backed by the studio HTTP API.

    ``requests`` is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def close(self) -> None:
        self._session.close()

    async def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        def send() -> requests.Response:
            return self._session.request(method, f"{self._base_url}{url}", timeout=self._timeout, **kwargs)

        try:
            response = await asyncio.to_thread(send)
        except requests.RequestException as exc:
            raise StoreError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            detail = response.text[:200]
            raise StoreError(f"{method} {url} failed with {response.status_code}: {detail}")
        return response

    async def get(self, project_id: str, path: str) -> str:
        response = await self._request("GET", f"/projects/{project_id}/file", params={"path": path})
        return response.json()["content"]

    async def put(self, project_id: str, path: str, content: str) -> None:
        await self._request("PUT", f"/projects/{project_id}/file", json={"path": path, "content": content})

    async def delete(self, project_id: str, path: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}/file", params={"path": path})


__all__ = ["ApiFileStore", "FileStore", "InvalidPathError", "StoreError", "normalize_path"]
