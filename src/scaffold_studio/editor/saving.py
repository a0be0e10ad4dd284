"""Serialized, last-edit-wins saving of editor tabs, with debounced auto-save."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ..config import StudioSettings
from ..storage.files import FileStore, StoreError
from .preferences import EditorPreferences
from .session import EditorSession, SessionChange

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SaveReport:
    """Outcome of ``save_all`` keyed by tab id."""

    saved: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class SaveCoordinator:
    """Drains dirty tabs of one session into a file store.

    At most one save per tab is in flight. A save always writes what the session
    cache holds when the write happens, and writes again if an edit lands while the
    store call is pending, so the stored text equals the cache on completion.
    """

    def __init__(
        self,
        session: EditorSession,
        store: FileStore,
        *,
        delay: float = 1.0,
        preferences: EditorPreferences | None = None,
    ) -> None:
        self._session = session
        self._store = store
        self._delay = delay
        self._preferences = preferences or EditorPreferences()
        self._in_flight: set[str] = set()
        self._timers: dict[str, asyncio.Task] = {}
        self._unsubscribe = session.subscribe(self._on_change)

    @classmethod
    def from_settings(
        cls,
        session: EditorSession,
        store: FileStore,
        settings: StudioSettings,
        *,
        preferences: EditorPreferences | None = None,
    ) -> "SaveCoordinator":
        """Build a coordinator whose auto-save delay follows ``STUDIO_AUTOSAVE_DELAY_MS``."""

        return cls(session, store, delay=settings.autosave_delay, preferences=preferences)

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def preferences(self) -> EditorPreferences:
        return self._preferences

    def is_saving(self, tab_id: str) -> bool:
        return tab_id in self._in_flight

    async def save(self, tab_id: str) -> bool:
        """Persist the tab's latest content.

        Returns False without writing when the tab is unknown or already being
        saved. Store failures leave the tab dirty and are raised as ``StoreError``.
        """

        tab = self._session.get(tab_id)
        if tab is None or tab_id in self._in_flight:
            return False

        self._in_flight.add(tab_id)
        self._session.mark_saving(tab_id)
        written: str | None = None
        try:
            while True:
                content = self._session.cached_content(tab_id)
                if content is None or content == written:
                    break
                await self._store.put(self._session.project_id, tab.path, content)
                written = content
        except StoreError:
            self._session.mark_save_failed(tab_id)
            raise
        except asyncio.CancelledError:
            self._session.mark_save_failed(tab_id)
            raise
        except Exception as exc:
            self._session.mark_save_failed(tab_id)
            raise StoreError(f"Failed to save '{tab.path}': {exc}") from exc
        finally:
            self._in_flight.discard(tab_id)

        if written is None:
            self._session.mark_save_failed(tab_id)
            return False
        self._session.mark_saved(tab_id, written)
        logger.debug("Saved tab", extra={"project_id": self._session.project_id, "path": tab.path})
        return True

    async def save_all(self) -> SaveReport:
        """Save every dirty tab concurrently; one failure does not stop the others."""

        dirty = [tab.id for tab in self._session.dirty_tabs()]
        for tab_id in dirty:
            self.cancel(tab_id)
        results = await asyncio.gather(*(self.save(tab_id) for tab_id in dirty), return_exceptions=True)

        report = SaveReport()
        for tab_id, outcome in zip(dirty, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                report.failed[tab_id] = str(outcome)
            elif outcome:
                report.saved.append(tab_id)
            else:
                report.skipped.append(tab_id)
        if report.failed:
            logger.warning(
                "Some tabs failed to save",
                extra={"project_id": self._session.project_id, "failed": sorted(report.failed)},
            )
        return report

    # -- debounced auto-save -------------------------------------------------------

    def schedule(self, tab_id: str) -> None:
        """Restart the quiet-period timer for ``tab_id``."""

        self.cancel(tab_id)
        self._timers[tab_id] = asyncio.get_running_loop().create_task(self._fire(tab_id))

    async def _fire(self, tab_id: str) -> None:
        await asyncio.sleep(self._delay)
        if self._timers.get(tab_id) is asyncio.current_task():
            del self._timers[tab_id]
        try:
            await self.save(tab_id)
        except StoreError as exc:
            logger.warning(
                "Auto-save failed",
                extra={"project_id": self._session.project_id, "tab_id": tab_id, "error": str(exc)},
            )

    def cancel(self, tab_id: str) -> bool:
        timer = self._timers.pop(tab_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def pending(self) -> list[str]:
        return list(self._timers)

    async def shutdown(self) -> None:
        """Cancel every pending timer and stop listening to the session."""

        self._unsubscribe()
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)

    def _on_change(self, change: SessionChange) -> None:
        if change.tab is None:
            return
        if change.kind == "closed":
            self.cancel(change.tab.id)
        elif change.kind == "edited" and self._preferences.auto_save:
            try:
                self.schedule(change.tab.id)
            except RuntimeError:
                logger.debug(
                    "No running event loop; auto-save not scheduled",
                    extra={"project_id": self._session.project_id, "tab_id": change.tab.id},
                )


__all__ = ["SaveCoordinator", "SaveReport"]
