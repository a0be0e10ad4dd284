from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from scaffold_studio.api import create_app
from scaffold_studio.editor import EditorPreferences, EditorSession, SaveCoordinator
from scaffold_studio.projects import Framework, Project, ProjectConfig
from scaffold_studio.services import build_services
from scaffold_studio.storage import ApiFileStore, StoreError

_CREATE_REACT_APP = """\
mkdir -p src
echo '{"name": "shop"}' > package.json
echo 'export const App = () => null;' > src/App.tsx
"""


@pytest.fixture
def services(settings, chroma_store):
    services = build_services(settings, chroma_store=chroma_store)
    services.repository.save(
        Project.from_config("p1", ProjectConfig(name="demo", framework=Framework.ANGULAR))
    )
    (services.repository.path_for("p1") / "src").mkdir()
    (services.repository.path_for("p1") / "src" / "main.ts").write_text("bootstrap();\n", encoding="utf-8")
    return services


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as client:
        yield client


def test_create_and_list_projects(client: TestClient, bin_dir: Path, write_script) -> None:
    write_script("create-react-app", _CREATE_REACT_APP, directory=bin_dir)

    response = client.post("/projects", json={"name": "shop", "framework": "react"})

    assert response.status_code == 201
    body = response.json()
    assert body["strategy"] == "primary"
    assert body["project"]["framework"] == "react"
    ids = [project["id"] for project in client.get("/projects").json()]
    assert ids == ["p1", body["project"]["id"]]


def test_create_project_validates_body(client: TestClient) -> None:
    response = client.post("/projects", json={"name": "1bad", "framework": "react"})

    assert response.status_code == 422


def test_get_project_with_tree(client: TestClient) -> None:
    response = client.get("/projects/p1", params={"content": "true"})

    assert response.status_code == 200
    body = response.json()
    assert body["project"]["name"] == "demo"
    src = body["files"][0]
    assert src["name"] == "src"
    assert src["children"][0]["content"] == "bootstrap();\n"


def test_missing_project_is_404(client: TestClient) -> None:
    assert client.get("/projects/ghost").status_code == 404
    assert client.delete("/projects/ghost").status_code == 404
    assert client.get("/projects/ghost/file", params={"path": "a.ts"}).status_code == 404


def test_file_round_trip_refreshes_timestamp(client: TestClient) -> None:
    before = client.get("/projects/p1").json()["project"]["updatedAt"]

    written = client.put("/projects/p1/file", json={"path": "src/app.ts", "content": "export {};\n"})

    assert written.status_code == 200
    assert written.json()["updatedAt"] >= before
    read = client.get("/projects/p1/file", params={"path": "src/app.ts"})
    assert read.json() == {"path": "src/app.ts", "content": "export {};\n"}

    deleted = client.delete("/projects/p1/file", params={"path": "src/app.ts"})
    assert deleted.json()["deleted"] is True
    assert client.get("/projects/p1/file", params={"path": "src/app.ts"}).status_code == 404


def test_path_traversal_is_rejected(client: TestClient) -> None:
    response = client.get("/projects/p1/file", params={"path": "../../etc/passwd"})

    assert response.status_code == 400
    assert "error" in response.json()


def test_execute_command(client: TestClient, write_script) -> None:
    ok = write_script("ok", "echo built\n")
    bad = write_script("bad", "exit 4\n")

    response = client.post("/projects/p1/execute", json={"command": str(ok)})
    assert response.json()["stdout"] == "built\n"

    failed = client.post("/projects/p1/execute", json={"command": str(bad)})
    assert failed.status_code == 500
    assert failed.json()["exitCode"] == 4

    assert client.post("/projects/p1/execute", json={"command": "  "}).status_code == 400


def test_lifecycle_commands(client: TestClient, write_script) -> None:
    script = write_script("serve", "exec sleep 30\n")

    started = client.post("/projects/p1/commands/serve", json={"command": str(script)})
    assert started.status_code == 202
    conflict = client.post("/projects/p1/commands/serve", json={"command": str(script)})
    assert conflict.status_code == 409

    status = client.get("/projects/p1/status").json()
    assert status["serve"]["state"] == "running"
    assert status["build"]["state"] == "idle"

    stopped = client.post("/projects/p1/commands/serve/stop")
    assert stopped.json()["stopped"] is True
    assert stopped.json()["status"]["state"] == "stopped"


def test_log_stream_receives_published_events(client: TestClient, services) -> None:
    with client.websocket_connect("/projects/p1/logs") as websocket:
        services.registry.emit("p1", "stdout", "compiled successfully")
        message = websocket.receive_json()

    assert message["type"] == "stdout"
    assert message["data"] == "compiled successfully"
    assert "timestamp" in message


def test_delete_project(client: TestClient, services) -> None:
    response = client.delete("/projects/p1")

    assert response.json() == {"projectId": "p1", "removed": True}
    assert not services.repository.path_for("p1").exists()
    assert client.get("/projects").json() == []


def test_status_endpoint(client: TestClient) -> None:
    body = client.get("/status").json()

    assert body["projects"]["count"] == 1
    assert set(body["generators"]["frameworks"]) == {"angular", "react"}


class ClientSession:
    """Routes ``requests``-style calls into the in-process test client."""

    def __init__(self, client: TestClient, base_url: str) -> None:
        self.client = client
        self.base_url = base_url
        self.closed = False

    def request(self, method: str, url: str, *, timeout=None, **kwargs):
        return self.client.request(method, url[len(self.base_url):], **kwargs)

    def close(self) -> None:
        self.closed = True


def test_api_file_store_saves_through_http(client: TestClient) -> None:
    session_adapter = ClientSession(client, "http://studio")
    store = ApiFileStore("http://studio/", session=session_adapter)

    async def scenario() -> None:
        session = EditorSession("p1")
        coordinator = SaveCoordinator(session, store, preferences=EditorPreferences(auto_save=False))
        tab = session.open("main.ts", "src/main.ts", await store.get("p1", "src/main.ts"))
        session.edit(tab.id, "bootstrapApplication(App);\n")

        assert await coordinator.save(tab.id) is True
        assert await store.get("p1", "src/main.ts") == "bootstrapApplication(App);\n"
        assert tab.dirty is False

        with pytest.raises(StoreError) as excinfo:
            await store.get("p1", "../outside.ts")
        assert "400" in str(excinfo.value)

    asyncio.run(scenario())
    store.close()

    assert session_adapter.closed
