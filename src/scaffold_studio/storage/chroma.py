"""Chroma-based event log for projects and command runs."""

from __future__ import annotations

import json
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from ..channels.models import OutputEvent
from .models import CommandRunRecord, ProvisioningRecord


class ChromaUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by the studio."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used by the studio."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


@dataclass(slots=True)
class ChromaEvent:
    """Represents a stored event in Chroma."""

    id: str
    project_id: str
    event_type: str
    document: str
    metadata: dict[str, Any]
    timestamp: datetime


def _scalar_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    # Chroma only accepts str/int/float/bool metadata values.
    cleaned: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        else:
            cleaned[key] = json.dumps(value, default=str)
    return cleaned


class ChromaStore:
    """Manage persistence of project events via ChromaDB."""

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "studio_events",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collection: CollectionProtocol | None = None
        self._counters: dict[str, int] = defaultdict(int)

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise ChromaUnavailableError(
                "chromadb package is not installed; install scaffold-studio with persistence extras"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self) -> CollectionProtocol:
        if self._collection is None:
            client = self._client or self._client_factory()
            self._client = client
            self._collection = client.get_or_create_collection(self._collection_name)
        return self._collection

    def _convert_result(self, result: dict[str, list[Any]]) -> list[ChromaEvent]:
        events: list[ChromaEvent] = []
        ids = result.get("ids", [])
        documents = result.get("documents", [])
        metadatas = result.get("metadatas", [])
        for event_id, document, metadata in zip(ids, documents, metadatas):
            timestamp_raw = metadata.get("timestamp")
            timestamp = (
                datetime.fromisoformat(timestamp_raw)
                if isinstance(timestamp_raw, str)
                else self._clock()
            )
            events.append(
                ChromaEvent(
                    id=event_id,
                    project_id=metadata.get("project_id", ""),
                    event_type=metadata.get("event_type", ""),
                    document=document,
                    metadata=metadata,
                    timestamp=timestamp,
                )
            )
        events.sort(
            key=lambda event: (
                event.project_id,
                event.timestamp,
                event.metadata.get("sequence", 0),
            )
        )
        return events

    def ping(self) -> bool:
        """Verify that the underlying collection can be obtained."""

        self._ensure_collection()
        return True

    def record_event(
        self,
        *,
        project_id: str,
        event_type: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
    ) -> ChromaEvent:
        collection = self._ensure_collection()
        counter = self._counters[project_id] = self._counters[project_id] + 1
        event_id = f"{project_id}:{uuid.uuid4().hex}"
        timestamp = self._clock()

        document = body if isinstance(body, str) else json.dumps(body, default=str)
        record_metadata = {
            "project_id": project_id,
            "event_type": event_type,
            "timestamp": timestamp.isoformat(),
            "sequence": counter,
        }
        if metadata:
            record_metadata.update(metadata)
        record_metadata = _scalar_metadata(record_metadata)

        collection.add(
            documents=[document],
            metadatas=[record_metadata],
            ids=[event_id],
        )

        return ChromaEvent(
            id=event_id,
            project_id=project_id,
            event_type=event_type,
            document=document,
            metadata=record_metadata,
            timestamp=timestamp,
        )

    def fetch_project_events(self, project_id: str, *, limit: int | None = None) -> list[ChromaEvent]:
        collection = self._ensure_collection()
        result = collection.get(where={"project_id": project_id}, limit=limit)
        return self._convert_result(result)

    def record_output(self, project_id: str, event: OutputEvent, *, run_id: str | None = None) -> ChromaEvent:
        """Append one output event to the project's log collection."""

        return self.record_event(
            project_id=project_id,
            event_type="output",
            body=event.data,
            metadata={
                "stream": event.type,
                "run_id": run_id,
                "emitted_at": event.timestamp.isoformat(),
            },
        )

    def record_command_run(
        self,
        *,
        project_id: str,
        run_id: str,
        command: str,
        status: str,
        kind: str | None = None,
        returncode: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CommandRunRecord:
        timestamp = self._clock()
        payload = {
            "run_id": run_id,
            "project_id": project_id,
            "command": command,
            "kind": kind,
            "status": status,
            "returncode": returncode,
            "timestamp": timestamp.isoformat(),
        }
        if metadata:
            payload.update(metadata)

        event = self.record_event(
            project_id=project_id,
            event_type="command_run",
            body=payload,
            metadata={"run_id": run_id, "kind": kind, "status": status, "returncode": returncode},
        )

        return CommandRunRecord(
            run_id=run_id,
            project_id=project_id,
            command=command,
            kind=kind,
            status=status,
            returncode=returncode,
            recorded_at=event.timestamp,
            metadata=metadata or {},
        )

    def list_command_runs(self, project_id: str | None = None) -> list[CommandRunRecord]:
        filters: dict[str, Any] = {"event_type": "command_run"}
        if project_id:
            filters = {"$and": [{"event_type": "command_run"}, {"project_id": project_id}]}
        events = self.search_events(filters=filters)
        runs: list[CommandRunRecord] = []
        reserved = {"run_id", "project_id", "command", "kind", "status", "returncode", "timestamp"}
        for event in events:
            if event.event_type != "command_run":
                continue
            doc = json.loads(event.document)
            runs.append(
                CommandRunRecord(
                    run_id=doc["run_id"],
                    project_id=doc["project_id"],
                    command=doc.get("command", ""),
                    kind=doc.get("kind"),
                    status=doc.get("status", "unknown"),
                    returncode=doc.get("returncode"),
                    recorded_at=event.timestamp,
                    metadata={k: v for k, v in doc.items() if k not in reserved},
                )
            )
        return runs

    def record_provisioning(
        self,
        *,
        project_id: str,
        framework: str,
        status: str,
        strategy: str | None = None,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProvisioningRecord:
        timestamp = self._clock()
        payload = {
            "project_id": project_id,
            "framework": framework,
            "status": status,
            "strategy": strategy,
            "error": error,
            "timestamp": timestamp.isoformat(),
        }
        if metadata:
            payload.update(metadata)

        event = self.record_event(
            project_id=project_id,
            event_type="provisioning",
            body=payload,
            metadata={"framework": framework, "status": status, "strategy": strategy},
        )

        return ProvisioningRecord(
            project_id=project_id,
            framework=framework,
            status=status,
            strategy=strategy,
            error=error,
            recorded_at=event.timestamp,
            metadata=metadata or {},
        )

    def list_provisionings(self, project_id: str | None = None) -> list[ProvisioningRecord]:
        filters: dict[str, Any] = {"event_type": "provisioning"}
        if project_id:
            filters = {"$and": [{"event_type": "provisioning"}, {"project_id": project_id}]}
        events = self.search_events(filters=filters)
        records: list[ProvisioningRecord] = []
        reserved = {"project_id", "framework", "status", "strategy", "error", "timestamp"}
        for event in events:
            if event.event_type != "provisioning":
                continue
            doc = json.loads(event.document)
            records.append(
                ProvisioningRecord(
                    project_id=doc["project_id"],
                    framework=doc.get("framework", ""),
                    status=doc.get("status", "unknown"),
                    strategy=doc.get("strategy"),
                    error=doc.get("error"),
                    recorded_at=event.timestamp,
                    metadata={k: v for k, v in doc.items() if k not in reserved},
                )
            )
        return records

    def search_events(
        self,
        query: str | None = None,
        *,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[ChromaEvent]:
        collection = self._ensure_collection()
        result = collection.get(where=filters, limit=limit)
        events = self._convert_result(result)
        if query:
            needle = query.lower()
            filtered: list[ChromaEvent] = []
            for event in events:
                haystacks = [event.document.lower()]
                haystacks.extend(str(value).lower() for value in event.metadata.values())
                if any(needle in hay for hay in haystacks):
                    filtered.append(event)
            events = filtered
        return events[:limit] if limit else events


__all__ = ["ChromaEvent", "ChromaStore", "ChromaUnavailableError"]
