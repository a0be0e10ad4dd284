"""Tool registration for the Scaffold Studio MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..process import CommandFailed, LaunchError
from ..projects import CommandKind, FileNode, Framework, Project, ProjectConfig
from ..services import StudioServices
from ..storage import ChromaStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    create_project: Any
    list_projects: Any
    delete_project: Any
    execute_command: Any
    start_command: Any
    stop_command: Any
    command_status: Any
    read_file: Any
    write_file: Any
    project_history: Any


def _project_payload(project: Project) -> dict[str, Any]:
    return project.model_dump(mode="json", by_alias=True)


def _tree_payload(nodes: list[FileNode]) -> list[dict[str, Any]]:
    return [node.model_dump(mode="json", by_alias=True, exclude_none=True) for node in nodes]


def register_tools(server: FastMCP, *, services: StudioServices) -> ToolHandles:
    """Register the studio's MCP tools on the server."""

    chroma_store = services.chroma_store

    async def _create_project(
        name: str,
        framework: str,
        description: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Scaffold a new project and return its metadata and file tree."""

        config = ProjectConfig(name=name, framework=Framework(framework), description=description)
        result = await services.provisioner.provision(config)
        _emit_log(
            context,
            "info",
            "Created project",
            extra={"project_id": result.project.id, "framework": framework, "strategy": result.strategy},
        )
        return {
            "project": _project_payload(result.project),
            "strategy": result.strategy,
            "files": _tree_payload(result.files),
        }

    def _list_projects(context: Context | None = None) -> list[dict[str, Any]]:
        """List provisioned projects, oldest first."""

        projects = [_project_payload(project) for project in services.repository.list_all()]
        _emit_log(context, "debug", "Listing projects", extra={"count": len(projects)})
        return projects

    async def _delete_project(project_id: str, context: Context | None = None) -> dict[str, Any]:
        """Delete a project, stopping its commands first."""

        removed = await services.delete_project(project_id)
        _emit_log(context, "warning", "Deleted project", extra={"project_id": project_id, "removed": removed})
        return {"project_id": project_id, "removed": removed}

    tool_create = server.tool(
        name="create_project",
        description=(
            "Scaffold a new Angular or React project. The generator runs in a staging "
            "directory and the result is promoted only when it succeeds."
        ),
    )(_create_project)

    tool_list = server.tool(
        name="list_projects",
        description="List provisioned projects with framework and timestamps.",
    )(_list_projects)

    tool_delete = server.tool(
        name="delete_project",
        description="Delete a project directory after stopping its running commands.",
        annotations={"destructiveHint": True},
    )(_delete_project)

    async def _execute_command(
        project_id: str,
        command: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Run a shell-style command inside the project directory and wait for it."""

        try:
            result = await services.executor.execute(project_id, command)
        except CommandFailed as exc:
            _emit_log(
                context,
                "warning",
                "Project command failed",
                extra={"project_id": project_id, "exit_code": exc.exit_code},
            )
            return {"ok": False, "returncode": exc.exit_code, "error": str(exc)}
        except LaunchError as exc:
            return {"ok": False, "returncode": None, "error": str(exc)}

        return {
            "ok": True,
            "returncode": result.returncode,
            "stdout": result.stdout[-2000:],
            "stderr": result.stderr[-2000:],
        }

    async def _start_command(
        project_id: str,
        kind: str,
        command: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start install, build or serve in the background."""

        command_kind = CommandKind(kind)
        started = services.supervisor.start(project_id, command_kind, command)
        status = services.supervisor.status(project_id, command_kind)[command_kind.value]
        _emit_log(
            context,
            "info" if started else "warning",
            "Lifecycle command started" if started else "Lifecycle command already running",
            extra={"project_id": project_id, "kind": command_kind.value},
        )
        return {"started": started, "status": status.to_dict()}

    async def _stop_command(project_id: str, kind: str, context: Context | None = None) -> dict[str, Any]:
        """Stop a running lifecycle command and its child processes."""

        command_kind = CommandKind(kind)
        stopped = await services.supervisor.stop(project_id, command_kind)
        _emit_log(
            context,
            "info",
            "Stop requested",
            extra={"project_id": project_id, "kind": command_kind.value, "stopped": stopped},
        )
        status = services.supervisor.status(project_id, command_kind)[command_kind.value]
        return {"stopped": stopped, "status": status.to_dict()}

    def _command_status(project_id: str, kind: str | None = None, context: Context | None = None) -> dict[str, Any]:
        """Return the status of one or all lifecycle commands for a project."""

        command_kind = CommandKind(kind) if kind else None
        statuses = services.supervisor.status(project_id, command_kind)
        return {name: status.to_dict() for name, status in statuses.items()}

    tool_execute = server.tool(
        name="execute_command",
        description="Run a command in a project directory, streaming output to the project's log channel.",
        annotations={"destructiveHint": True},
    )(_execute_command)

    tool_start = server.tool(
        name="start_command",
        description="Start install/build/serve for a project. Returns started=false if it is already running.",
    )(_start_command)

    tool_stop = server.tool(
        name="stop_command",
        description="Stop a running install/build/serve command, terminating its process group.",
    )(_stop_command)

    tool_status = server.tool(
        name="command_status",
        description="Report lifecycle command state, recent output and serve URL.",
    )(_command_status)

    async def _read_file(project_id: str, path: str, context: Context | None = None) -> dict[str, Any]:
        """Read one project file."""

        content = await services.file_store.get(project_id, path)
        return {"project_id": project_id, "path": path, "content": content}

    async def _write_file(
        project_id: str,
        path: str,
        content: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Write one project file and refresh the project timestamp."""

        await services.file_store.put(project_id, path, content)
        _emit_log(context, "info", "Wrote project file", extra={"project_id": project_id, "path": path})
        return {"project_id": project_id, "path": path, "bytes": len(content.encode("utf-8"))}

    tool_read = server.tool(
        name="read_file",
        description="Read a file from a project by relative path.",
    )(_read_file)

    tool_write = server.tool(
        name="write_file",
        description="Create or overwrite a file in a project by relative path.",
        annotations={"destructiveHint": True},
    )(_write_file)

    def _require_chroma() -> ChromaStore:
        if chroma_store is None:
            raise RuntimeError("Chroma store is unavailable; enable persistence before using this tool")
        return chroma_store

    def _project_history(
        project_id: str,
        limit: int = 50,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Summarize provisioning and command history stored for a project."""

        store = _require_chroma()
        provisionings = store.list_provisionings(project_id)
        runs = store.list_command_runs(project_id)
        events = store.fetch_project_events(project_id)
        timeline = [
            {
                "sequence": event.metadata.get("sequence"),
                "event_type": event.event_type,
                "timestamp": event.timestamp.isoformat(),
                "excerpt": event.document[:200],
            }
            for event in events
        ]
        _emit_log(
            context,
            "debug",
            "Summarized project history",
            extra={"project_id": project_id, "event_count": len(events)},
        )
        return {
            "project_id": project_id,
            "provisionings": [
                {
                    "status": record.status,
                    "strategy": record.strategy,
                    "error": record.error,
                    "recorded_at": record.recorded_at.isoformat(),
                }
                for record in provisionings
            ],
            "command_runs": [
                {
                    "run_id": run.run_id,
                    "command": run.command,
                    "kind": run.kind,
                    "status": run.status,
                    "returncode": run.returncode,
                    "recorded_at": run.recorded_at.isoformat(),
                }
                for run in runs
            ],
            "event_count": len(events),
            "timeline": timeline[-limit:] if limit else timeline,
        }

    tool_history = server.tool(
        name="project_history",
        description="Summarize provisioning attempts and command runs recorded in Chroma for a project.",
    )(_project_history)

    return ToolHandles(
        create_project=tool_create,
        list_projects=tool_list,
        delete_project=tool_delete,
        execute_command=tool_execute,
        start_command=tool_start,
        stop_command=tool_stop,
        command_status=tool_status,
        read_file=tool_read,
        write_file=tool_write,
        project_history=tool_history,
    )


__all__ = ["register_tools", "ToolHandles"]


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
