"""In-memory state of one editing session: open tabs, active tab, content cache."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Literal

from .language import language_for_path

logger = logging.getLogger(__name__)

ChangeKind = Literal["opened", "activated", "edited", "closed", "saving", "saved", "save_failed"]


@dataclass
class OpenFile:
    """One open tab. ``content`` holds the last saved text, not the latest edit."""

    id: str
    name: str
    path: str
    content: str
    language: str
    dirty: bool = False
    saving: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "language": self.language,
            "dirty": self.dirty,
            "saving": self.saving,
        }


@dataclass(frozen=True)
class SessionChange:
    kind: ChangeKind
    tab: OpenFile | None


Listener = Callable[[SessionChange], None]


class EditorSession:
    """Ordered open tabs for one project plus the pointer to the active one.

    Edits go to a cache keyed by tab id. That cache is what saves persist; a tab's
    ``content`` only catches up once a save completes.
    """

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        self._tabs: list[OpenFile] = []
        self._active_id: str | None = None
        self._cache: dict[str, str] = {}
        self._listeners: list[Listener] = []
        self._last_instant = 0

    # -- queries -----------------------------------------------------------------

    @property
    def tabs(self) -> list[OpenFile]:
        return list(self._tabs)

    @property
    def active(self) -> OpenFile | None:
        return self.get(self._active_id) if self._active_id is not None else None

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def get(self, tab_id: str) -> OpenFile | None:
        for tab in self._tabs:
            if tab.id == tab_id:
                return tab
        return None

    def find_by_path(self, path: str) -> OpenFile | None:
        for tab in self._tabs:
            if tab.path == path:
                return tab
        return None

    def cached_content(self, tab_id: str) -> str | None:
        """Latest typed content for ``tab_id``, read fresh on every call."""

        return self._cache.get(tab_id)

    def dirty_tabs(self) -> list[OpenFile]:
        return [tab for tab in self._tabs if tab.dirty]

    def __len__(self) -> int:
        return len(self._tabs)

    # -- tab operations --------------------------------------------------------

    def _next_tab_id(self, path: str) -> str:
        instant = max(time.time_ns() // 1_000_000, self._last_instant + 1)
        self._last_instant = instant
        return f"{path}-{instant}"

    def open(self, name: str, path: str, content: str) -> OpenFile:
        """Open ``path`` in a new tab, or activate the tab that already shows it."""

        existing = self.find_by_path(path)
        if existing is not None:
            self.activate(existing.id)
            return existing

        tab = OpenFile(
            id=self._next_tab_id(path),
            name=name,
            path=path,
            content=content,
            language=language_for_path(path),
        )
        self._tabs.append(tab)
        self._cache[tab.id] = content
        self._notify("opened", tab)
        self.activate(tab.id)
        return tab

    def edit(self, tab_id: str, content: str) -> bool:
        tab = self.get(tab_id)
        if tab is None:
            return False
        self._cache[tab_id] = content
        tab.dirty = True
        self._notify("edited", tab)
        return True

    def activate(self, tab_id: str) -> bool:
        tab = self.get(tab_id)
        if tab is None:
            return False
        if self._active_id != tab_id:
            self._active_id = tab_id
            self._notify("activated", tab)
        return True

    def clear_active(self) -> None:
        self._active_id = None
        self._notify("activated", None)

    def close(self, tab_id: str) -> bool:
        """Close a tab; when it was active, the tab now at its index takes over."""

        index = next((i for i, tab in enumerate(self._tabs) if tab.id == tab_id), None)
        if index is None:
            return False

        tab = self._tabs.pop(index)
        self._cache.pop(tab_id, None)
        self._notify("closed", tab)

        if self._active_id == tab_id:
            if self._tabs:
                self._active_id = None
                self.activate(self._tabs[min(index, len(self._tabs) - 1)].id)
            else:
                self.clear_active()
        return True

    # -- save bookkeeping --------------------------------------------------------

    def mark_saving(self, tab_id: str) -> None:
        tab = self.get(tab_id)
        if tab is not None:
            tab.saving = True
            self._notify("saving", tab)

    def mark_saved(self, tab_id: str, content: str) -> None:
        tab = self.get(tab_id)
        if tab is None:
            return
        tab.content = content
        tab.saving = False
        tab.dirty = self._cache.get(tab_id, content) != content
        self._notify("saved", tab)

    def mark_save_failed(self, tab_id: str) -> None:
        tab = self.get(tab_id)
        if tab is not None:
            tab.saving = False
            self._notify("save_failed", tab)

    # -- listeners ---------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every change; returns the matching unsubscribe."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: ChangeKind, tab: OpenFile | None) -> None:
        change = SessionChange(kind=kind, tab=tab)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.warning(
                    "Session listener failed",
                    extra={"project_id": self.project_id, "change": kind},
                    exc_info=True,
                )


__all__ = ["EditorSession", "Listener", "OpenFile", "SessionChange"]
