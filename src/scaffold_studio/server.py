"""FastMCP server bootstrap for Scaffold Studio."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import StudioSettings, get_settings
from .projects import GeneratorLoadError
from .services import StudioServices, build_services
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the studio processes."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def build_status_payload(services: StudioServices) -> dict[str, Any]:
    """Summarize generators, projects, running commands and storage state."""

    settings = services.settings
    try:
        generators = services.generators.load_all()
        generator_summary = {
            framework.value: {
                "title": profile.title,
                "primary": profile.primary.command,
                "fallback": profile.fallback.command if profile.fallback else None,
            }
            for framework, profile in generators.items()
        }
        generator_error: str | None = None
    except GeneratorLoadError as exc:
        generator_summary = {}
        generator_error = str(exc)

    projects = services.repository.list_all()
    running = services.supervisor.running()
    by_kind: dict[str, int] = {}
    for status in running:
        by_kind[status.kind.value] = by_kind.get(status.kind.value, 0) + 1

    storage_error = None
    recent_provisionings: list[dict[str, Any]] = []
    if services.chroma_store is not None:
        try:
            recent_provisionings = [
                {
                    "project_id": record.project_id,
                    "framework": record.framework,
                    "status": record.status,
                    "strategy": record.strategy,
                }
                for record in services.chroma_store.list_provisionings()[-5:]
            ]
        except Exception as exc:  # keep the status resource readable
            storage_error = str(exc)

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server_version": __version__,
        "log_level": settings.log_level,
        "generators": {
            "frameworks": sorted(generator_summary),
            "details": generator_summary,
            "search_paths": [str(path) for path in services.generators.search_paths],
            "error": generator_error,
        },
        "projects": {
            "root": str(services.repository.root),
            "count": len(projects),
            "recent": [project.id for project in projects[-5:]],
        },
        "commands": {
            "running": len(running),
            "by_kind": by_kind,
            "serving": [
                {"project_id": status.project_id, "url": status.url}
                for status in running
                if status.url
            ],
        },
        "channels": {"subscribers": len(services.registry)},
        "storage": {
            "chroma": services.chroma_metadata,
            "provisionings_preview": recent_provisionings,
            "error": storage_error,
        },
    }


def create_server(
    settings: Optional[StudioSettings] = None,
    services: StudioServices | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the studio tools and status resource."""

    settings = settings or get_settings()
    services = services or build_services(settings)

    server = FastMCP(
        name="Scaffold Studio",
        version=__version__,
        instructions=(
            "Scaffold Studio provisions Angular and React projects, edits their files and "
            "runs install, build and serve commands while streaming output per project."
        ),
    )

    handles = register_tools(server, services=services)

    @server.resource(
        "resource://studio/status",
        name="studio_status",
        title="Scaffold Studio Status",
        description="Provides the current runtime status for the Scaffold Studio server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        payload = build_status_payload(services)
        payload["request_id"] = getattr(context, "request_id", None)
        return json.dumps(payload)

    setattr(server, "services", services)
    setattr(server, "chroma_store", services.chroma_store)
    setattr(server, "chroma_metadata", services.chroma_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Scaffold Studio MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Scaffold Studio MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "projects_root": str(settings.projects_root),
            "chroma_available": getattr(server, "chroma_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
