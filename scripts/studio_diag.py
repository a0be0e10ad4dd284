"""Scaffold Studio diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from scaffold_studio.config import StudioSettings
from scaffold_studio.projects import ProjectRepository
from scaffold_studio.storage import ChromaStore, ChromaUnavailableError


def load_store(settings: StudioSettings) -> ChromaStore:
    return ChromaStore(settings.chroma_persist_path)


def _unavailable(exc: ChromaUnavailableError) -> None:
    print(f"Chroma unavailable: {exc}")
    raise SystemExit(1)


def cmd_projects(args: argparse.Namespace) -> None:
    settings = StudioSettings()
    projects = ProjectRepository(settings.projects_root).list_all()
    if args.json:
        print(json.dumps([project.model_dump(mode="json", by_alias=True) for project in projects], indent=2))
        return
    for project in projects:
        print(f"{project.id} [{project.framework.value}] {project.name} (updated {project.updated_at.isoformat()})")


def cmd_runs(args: argparse.Namespace) -> None:
    settings = StudioSettings()
    store = load_store(settings)
    try:
        runs = store.list_command_runs(args.project_id)
    except ChromaUnavailableError as exc:
        _unavailable(exc)
    if args.status:
        runs = [run for run in runs if run.status == args.status]
    payload = [
        {
            "run_id": run.run_id,
            "project_id": run.project_id,
            "command": run.command,
            "kind": run.kind,
            "status": run.status,
            "returncode": run.returncode,
            "recorded_at": run.recorded_at.isoformat(),
        }
        for run in runs
    ]
    print(json.dumps(payload, indent=2))


def cmd_provisionings(args: argparse.Namespace) -> None:
    settings = StudioSettings()
    store = load_store(settings)
    try:
        records = store.list_provisionings(args.project_id)
    except ChromaUnavailableError as exc:
        _unavailable(exc)
    payload = [
        {
            "project_id": record.project_id,
            "framework": record.framework,
            "status": record.status,
            "strategy": record.strategy,
            "error": record.error,
            "recorded_at": record.recorded_at.isoformat(),
        }
        for record in records
    ]
    print(json.dumps(payload, indent=2))


def cmd_events(args: argparse.Namespace) -> None:
    settings = StudioSettings()
    store = load_store(settings)
    try:
        events = store.fetch_project_events(args.project_id)
    except ChromaUnavailableError as exc:
        _unavailable(exc)
    if args.event_type:
        events = [event for event in events if event.event_type == args.event_type]
    if args.limit is not None and args.limit > 0:
        events = events[-args.limit :]
    payload = [
        {
            "event_id": event.id,
            "event_type": event.event_type,
            "sequence": event.metadata.get("sequence"),
            "timestamp": event.timestamp.isoformat(),
            "excerpt": event.document[:200],
        }
        for event in events
    ]
    print(json.dumps(payload, indent=2))


def cmd_metrics(args: argparse.Namespace) -> None:
    settings = StudioSettings()
    store = load_store(settings)
    try:
        provisionings = store.list_provisionings()
        runs = store.list_command_runs()
    except ChromaUnavailableError as exc:
        _unavailable(exc)

    provisioning_counts: dict[str, int] = {}
    strategy_counts: dict[str, int] = {}
    for record in provisionings:
        provisioning_counts[record.status] = provisioning_counts.get(record.status, 0) + 1
        if record.strategy:
            strategy_counts[record.strategy] = strategy_counts.get(record.strategy, 0) + 1

    run_counts: dict[str, int] = {}
    kind_counts: dict[str, int] = {}
    for run in runs:
        run_counts[run.status] = run_counts.get(run.status, 0) + 1
        kind = run.kind or "adhoc"
        kind_counts[kind] = kind_counts.get(kind, 0) + 1

    metrics = {
        "provisionings_total": len(provisionings),
        "provisioning_status_counts": provisioning_counts,
        "provisioning_strategy_counts": strategy_counts,
        "command_runs_total": len(runs),
        "command_run_status_counts": run_counts,
        "command_run_kind_counts": kind_counts,
    }
    print(json.dumps(metrics, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scaffold Studio diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_projects = sub.add_parser("projects", help="List provisioned projects")
    p_projects.add_argument("--json", action="store_true", help="Output JSON")
    p_projects.set_defaults(func=cmd_projects)

    p_runs = sub.add_parser("runs", help="List recorded command runs")
    p_runs.add_argument("--project-id")
    p_runs.add_argument("--status", help="Only show runs with this status")
    p_runs.set_defaults(func=cmd_runs)

    p_provisionings = sub.add_parser("provisionings", help="List provisioning attempts")
    p_provisionings.add_argument("--project-id")
    p_provisionings.set_defaults(func=cmd_provisionings)

    p_events = sub.add_parser("events", help="Show the stored event timeline for a project")
    p_events.add_argument("project_id")
    p_events.add_argument("--event-type")
    p_events.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N events",
    )
    p_events.set_defaults(func=cmd_events)

    p_metrics = sub.add_parser("metrics", help="Show provisioning and command run counts")
    p_metrics.set_defaults(func=cmd_metrics)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
