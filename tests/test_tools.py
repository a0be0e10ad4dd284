from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from scaffold_studio.config import StudioSettings
from scaffold_studio.projects import Framework, Project, ProjectConfig
from scaffold_studio.services import build_services
from scaffold_studio.tools import register_tools

_CREATE_REACT_APP = """\
mkdir -p src
echo '{"name": "demo"}' > package.json
echo 'export default function App() { return null; }' > src/App.tsx
"""


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


@pytest.fixture
def services(settings: StudioSettings, chroma_store):
    return build_services(settings, chroma_store=chroma_store)


@pytest.fixture
def handles(services):
    return register_tools(StubServer(), services=services)  # type: ignore[arg-type]


def _seed_project(services, project_id: str = "p1") -> Project:
    project = Project.from_config(project_id, ProjectConfig(name="demo", framework=Framework.REACT))
    services.repository.save(project)
    return project


def test_every_tool_is_registered(services) -> None:
    server = StubServer()

    register_tools(server, services=services)  # type: ignore[arg-type]

    assert set(server._tools) == {
        "create_project",
        "list_projects",
        "delete_project",
        "execute_command",
        "start_command",
        "stop_command",
        "command_status",
        "read_file",
        "write_file",
        "project_history",
    }


def test_create_project_returns_tree_and_is_listed(handles, bin_dir: Path, write_script) -> None:
    write_script("create-react-app", _CREATE_REACT_APP, directory=bin_dir)

    result = asyncio.run(handles.create_project.fn(name="demo", framework="react"))

    assert result["strategy"] == "primary"
    assert result["project"]["name"] == "demo"
    assert result["project"]["framework"] == "react"
    assert "createdAt" in result["project"]
    assert [node["name"] for node in result["files"]] == ["src", "package.json"]

    listed = handles.list_projects.fn()
    assert [project["id"] for project in listed] == [result["project"]["id"]]

    history = handles.project_history.fn(result["project"]["id"])
    assert [record["status"] for record in history["provisionings"]] == ["done"]


def test_create_project_rejects_unknown_framework(handles) -> None:
    with pytest.raises(ValueError):
        asyncio.run(handles.create_project.fn(name="demo", framework="vue"))


def test_write_then_read_file(handles, services) -> None:
    _seed_project(services)

    written = asyncio.run(handles.write_file.fn("p1", "src/app/main.ts", "console.log('hi');\n"))
    read = asyncio.run(handles.read_file.fn("p1", "src/app/main.ts"))

    assert written["bytes"] == len("console.log('hi');\n")
    assert read["content"] == "console.log('hi');\n"


def test_execute_command_reports_failure_without_raising(handles, services, write_script) -> None:
    _seed_project(services)
    ok_script = write_script("ok", "echo compiled\n")
    bad_script = write_script("bad", "echo broken >&2\nexit 3\n")

    ok = asyncio.run(handles.execute_command.fn("p1", str(ok_script)))
    bad = asyncio.run(handles.execute_command.fn("p1", str(bad_script)))

    assert ok == {"ok": True, "returncode": 0, "stdout": "compiled\n", "stderr": ""}
    assert bad["ok"] is False
    assert bad["returncode"] == 3


def test_start_status_and_stop_lifecycle_command(handles, services, write_script) -> None:
    _seed_project(services)
    script = write_script("serve", "echo listening\nexec sleep 30\n")

    async def scenario() -> None:
        started = await handles.start_command.fn("p1", "serve", str(script))
        assert started["started"] is True

        async def listening() -> None:
            while "listening" not in handles.command_status.fn("p1", "serve")["serve"]["output"]:
                await asyncio.sleep(0.02)

        await asyncio.wait_for(listening(), timeout=5)
        again = await handles.start_command.fn("p1", "serve", str(script))
        assert again["started"] is False

        status = handles.command_status.fn("p1", "serve")
        assert status["serve"]["state"] == "running"

        stopped = await handles.stop_command.fn("p1", "serve")
        assert stopped["stopped"] is True
        assert stopped["status"]["state"] == "stopped"

    asyncio.run(scenario())


def test_delete_project_removes_directory(handles, services) -> None:
    _seed_project(services)

    result = asyncio.run(handles.delete_project.fn("p1"))

    assert result == {"project_id": "p1", "removed": True}
    assert handles.list_projects.fn() == []
    history = handles.project_history.fn("p1")
    assert history["timeline"][-1]["event_type"] == "project_deleted"


def test_project_history_requires_event_log(settings: StudioSettings, monkeypatch: pytest.MonkeyPatch) -> None:
    services = build_services(settings)
    monkeypatch.setattr(services, "chroma_store", None)
    handles = register_tools(StubServer(), services=services)  # type: ignore[arg-type]

    with pytest.raises(RuntimeError):
        handles.project_history.fn("p1")
