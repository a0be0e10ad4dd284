from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from scaffold_studio.channels import OutputEvent
from scaffold_studio.storage import ChromaStore, ChromaUnavailableError, CommandRunRecord

from conftest import StubClient


def _store(tmp_path: Path) -> ChromaStore:
    return ChromaStore(
        tmp_path,
        client_factory=lambda: StubClient(),
        clock=lambda: datetime.fromisoformat("2025-01-01T00:00:00+00:00"),
    )


def test_record_and_fetch_events(tmp_path: Path) -> None:
    store = _store(tmp_path)

    event = store.record_event(
        project_id="p1",
        event_type="note",
        body={"message": "created"},
        metadata={"level": "INFO"},
    )

    assert event.project_id == "p1"
    assert event.metadata["sequence"] == 1

    events = store.fetch_project_events("p1")
    assert len(events) == 1
    assert events[0].metadata["level"] == "INFO"
    assert events[0].document == '{"message": "created"}'


def test_sequence_increments_per_project(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.record_event(project_id="p1", event_type="a", body="A")
    store.record_event(project_id="p2", event_type="a", body="other")
    store.record_event(project_id="p1", event_type="b", body="B")

    events = store.fetch_project_events("p1")
    assert [event.metadata["sequence"] for event in events] == [1, 2]
    assert [event.document for event in events] == ["A", "B"]


def test_events_are_ordered_by_time_then_sequence(tmp_path: Path) -> None:
    moments = iter(
        [
            datetime.fromisoformat("2025-01-01T00:00:05+00:00"),
            datetime.fromisoformat("2025-01-01T00:00:01+00:00"),
        ]
    )
    store = ChromaStore(tmp_path, client_factory=lambda: StubClient(), clock=lambda: next(moments))

    store.record_event(project_id="p1", event_type="late", body="late")
    store.record_event(project_id="p1", event_type="early", body="early")

    assert [event.event_type for event in store.fetch_project_events("p1")] == ["early", "late"]


def test_metadata_is_flattened_to_scalars(tmp_path: Path) -> None:
    store = _store(tmp_path)

    event = store.record_event(
        project_id="p1",
        event_type="note",
        body="tagged",
        metadata={"tags": ["auth", "ui"], "optional": None, "count": 2},
    )

    assert event.metadata["tags"] == '["auth", "ui"]'
    assert "optional" not in event.metadata
    assert event.metadata["count"] == 2


def test_search_filters(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.record_event(project_id="p1", event_type="note", body="Investigate router", metadata={"area": "routing"})
    store.record_event(project_id="p1", event_type="note", body="Fix styles", metadata={})

    results = store.search_events("router")
    assert len(results) == 1
    assert "router" in results[0].document
    assert store.search_events("ROUTING")[0].metadata["area"] == "routing"
    assert len(store.search_events(limit=1)) == 1


def test_command_runs_filtered_by_project(tmp_path: Path) -> None:
    store = _store(tmp_path)

    record = store.record_command_run(
        project_id="p1", run_id="r1", command="npm run build", kind="build", status="succeeded", returncode=0
    )
    store.record_command_run(project_id="p2", run_id="r2", command="npm start", kind="serve", status="running")

    assert isinstance(record, CommandRunRecord)
    runs = store.list_command_runs("p1")
    assert [(run.run_id, run.status, run.returncode) for run in runs] == [("r1", "succeeded", 0)]
    assert {run.run_id for run in store.list_command_runs()} == {"r1", "r2"}


def test_provisioning_records(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.record_provisioning(
        project_id="p1",
        framework="angular",
        status="failed",
        error="ng: exit code 1",
        metadata={"name": "shop"},
    )
    store.record_provisioning(project_id="p1", framework="angular", status="done", strategy="fallback")

    records = store.list_provisionings("p1")
    assert [record.status for record in records] == ["failed", "done"]
    assert records[0].error == "ng: exit code 1"
    assert records[0].metadata == {"name": "shop"}
    assert records[1].strategy == "fallback"
    assert store.list_provisionings("p2") == []


def test_record_output_keeps_stream_and_emission_time(tmp_path: Path) -> None:
    store = _store(tmp_path)
    emitted = datetime.fromisoformat("2024-12-31T23:59:59+00:00")
    event = OutputEvent(type="stderr", data="warning: budget exceeded", timestamp=emitted)

    stored = store.record_output("p1", event, run_id="r1")

    assert stored.event_type == "output"
    assert stored.document == "warning: budget exceeded"
    assert stored.metadata["stream"] == "stderr"
    assert stored.metadata["run_id"] == "r1"
    assert stored.metadata["emitted_at"] == emitted.isoformat()


def test_missing_chromadb_raises_unavailable(tmp_path: Path) -> None:
    def failing_factory():
        raise ChromaUnavailableError("chromadb package is not installed")

    store = ChromaStore(tmp_path, client_factory=failing_factory)

    with pytest.raises(ChromaUnavailableError):
        store.ping()
