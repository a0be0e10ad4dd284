"""HTTP and WebSocket surface for the browser editor."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .channels import QueueSubscriber
from .config import StudioSettings, get_settings
from .process import CommandFailed, ProcessError
from .projects import (
    CommandKind,
    InvalidProjectIdError,
    ProjectConfig,
    ProjectNotFoundError,
    ProvisioningError,
    UnknownFrameworkError,
    build_file_tree,
)
from .server import build_status_payload, configure_logging
from .services import StudioServices, build_services
from .storage import InvalidPathError, StoreError

logger = logging.getLogger(__name__)


class FileWrite(BaseModel):
    path: str
    content: str


class ExecuteRequest(BaseModel):
    command: str


class CommandRequest(BaseModel):
    command: str | None = None


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def create_app(services: StudioServices | None = None, settings: StudioSettings | None = None) -> FastAPI:
    """Build the FastAPI application around one set of studio services."""

    if services is None:
        services = build_services(settings or get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        stopped = await services.supervisor.stop_all()
        if stopped:
            logger.info("Stopped running commands on shutdown", extra={"count": stopped})

    app = FastAPI(title="Scaffold Studio", version=__version__, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProjectNotFoundError)
    async def _not_found(request: Request, exc: ProjectNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(InvalidProjectIdError)
    async def _bad_project_id(request: Request, exc: InvalidProjectIdError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(UnknownFrameworkError)
    async def _bad_framework(request: Request, exc: UnknownFrameworkError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(InvalidPathError)
    async def _bad_path(request: Request, exc: InvalidPathError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(StoreError)
    async def _store_failed(request: Request, exc: StoreError) -> JSONResponse:
        if isinstance(exc.__cause__, FileNotFoundError):
            return _error(404, str(exc))
        return _error(500, str(exc))

    @app.exception_handler(ProvisioningError)
    async def _provisioning_failed(request: Request, exc: ProvisioningError) -> JSONResponse:
        return _error(500, str(exc), projectId=exc.project_id, state=exc.state.value)

    @app.exception_handler(ProcessError)
    async def _process_failed(request: Request, exc: ProcessError) -> JSONResponse:
        exit_code = exc.exit_code if isinstance(exc, CommandFailed) else None
        return _error(500, str(exc), exitCode=exit_code)

    @app.post("/projects", status_code=201)
    async def create_project(config: ProjectConfig) -> dict[str, Any]:
        result = await services.provisioner.provision(config)
        return {
            "project": result.project.model_dump(mode="json", by_alias=True),
            "strategy": result.strategy,
            "files": [node.model_dump(mode="json", by_alias=True, exclude_none=True) for node in result.files],
        }

    @app.get("/projects")
    async def list_projects() -> list[dict[str, Any]]:
        projects = await asyncio.to_thread(services.repository.list_all)
        return [project.model_dump(mode="json", by_alias=True) for project in projects]

    @app.get("/projects/{project_id}")
    async def get_project(project_id: str, include_content: bool = Query(False, alias="content")) -> dict[str, Any]:
        project = services.repository.load(project_id)
        root = services.repository.require_dir(project_id)
        files = await asyncio.to_thread(build_file_tree, root, include_content=include_content)
        return {
            "project": project.model_dump(mode="json", by_alias=True),
            "files": [node.model_dump(mode="json", by_alias=True, exclude_none=True) for node in files],
        }

    @app.delete("/projects/{project_id}")
    async def delete_project(project_id: str) -> dict[str, Any]:
        if not services.repository.exists(project_id):
            raise ProjectNotFoundError(f"Project '{project_id}' not found")
        removed = await services.delete_project(project_id)
        return {"projectId": project_id, "removed": removed}

    @app.get("/projects/{project_id}/file")
    async def read_file(project_id: str, path: str = Query(...)) -> dict[str, Any]:
        content = await services.file_store.get(project_id, path)
        return {"path": path, "content": content}

    @app.put("/projects/{project_id}/file")
    async def write_file(project_id: str, payload: FileWrite) -> dict[str, Any]:
        await services.file_store.put(project_id, payload.path, payload.content)
        project = services.repository.load(project_id)
        return {"path": payload.path, "updatedAt": project.updated_at.isoformat()}

    @app.delete("/projects/{project_id}/file")
    async def delete_file(project_id: str, path: str = Query(...)) -> dict[str, Any]:
        await services.file_store.delete(project_id, path)
        return {"path": path, "deleted": True}

    @app.post("/projects/{project_id}/execute")
    async def execute(project_id: str, payload: ExecuteRequest) -> dict[str, Any]:
        try:
            result = await services.executor.execute(project_id, payload.command)
        except ValueError as exc:
            return _error(400, str(exc))
        return {"ok": result.ok, "returncode": result.returncode, "stdout": result.stdout, "stderr": result.stderr}

    @app.post("/projects/{project_id}/commands/{kind}", status_code=202)
    async def start_command(
        project_id: str,
        kind: CommandKind,
        payload: CommandRequest | None = Body(default=None),
    ) -> Any:
        command = payload.command if payload is not None else None
        if not services.supervisor.start(project_id, kind, command):
            status = services.supervisor.status(project_id, kind)[kind.value]
            return _error(409, f"'{kind.value}' is already running", status=status.to_dict())
        return {"started": True, "status": services.supervisor.status(project_id, kind)[kind.value].to_dict()}

    @app.post("/projects/{project_id}/commands/{kind}/stop")
    async def stop_command(project_id: str, kind: CommandKind) -> dict[str, Any]:
        stopped = await services.supervisor.stop(project_id, kind)
        return {"stopped": stopped, "status": services.supervisor.status(project_id, kind)[kind.value].to_dict()}

    @app.get("/projects/{project_id}/status")
    async def command_status(project_id: str) -> dict[str, Any]:
        services.repository.require_dir(project_id)
        return {name: status.to_dict() for name, status in services.supervisor.status(project_id).items()}

    @app.get("/status")
    async def studio_status() -> dict[str, Any]:
        return build_status_payload(services)

    @app.websocket("/projects/{project_id}/logs")
    async def stream_logs(websocket: WebSocket, project_id: str) -> None:
        subscriber = QueueSubscriber()
        services.registry.register(project_id, subscriber)
        await websocket.accept()
        logger.info("Log channel connected", extra={"project_id": project_id})

        async def forward() -> None:
            async for event in subscriber.events():
                await websocket.send_json(event.to_wire())

        async def watch() -> None:
            # Clients send nothing after the handshake; this only notices the disconnect.
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return

        tasks = [asyncio.create_task(forward()), asyncio.create_task(watch())]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    raise exc
        finally:
            services.registry.unregister(project_id, subscriber)
            subscriber.close()
            logger.info("Log channel disconnected", extra={"project_id": project_id})

    return app


def main() -> None:
    """Run the HTTP API with uvicorn."""

    settings = get_settings()
    configure_logging(settings.log_level)
    app = create_app(settings=settings)
    logger.info(
        "Launching Scaffold Studio HTTP API",
        extra={"host": settings.http_host, "port": settings.http_port, "version": __version__},
    )
    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
