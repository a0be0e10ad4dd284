from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from scaffold_studio.channels import CallbackSubscriber, LogChannelRegistry, OutputEvent
from scaffold_studio.process import CommandFailed, LaunchError
from scaffold_studio.projects import (
    CommandExecutor,
    Framework,
    Project,
    ProjectConfig,
    ProjectNotFoundError,
    ProjectRepository,
    parse_command,
)


@pytest.fixture
def repository(tmp_path: Path) -> ProjectRepository:
    repository = ProjectRepository(tmp_path / "projects")
    repository.save(Project.from_config("p1", ProjectConfig(name="demo", framework=Framework.ANGULAR)))
    return repository


def test_parse_command_splits_shell_style_strings() -> None:
    assert parse_command("npm run build -- --configuration 'prod env'") == [
        "npm",
        "run",
        "build",
        "--",
        "--configuration",
        "prod env",
    ]
    assert parse_command(["npm", "start"]) == ["npm", "start"]
    with pytest.raises(ValueError):
        parse_command("   ")


def test_execute_streams_output_through_registry(repository: ProjectRepository, write_script) -> None:
    script = write_script("build", 'echo "building in $(basename "$PWD")"\necho done\n')
    registry = LogChannelRegistry()
    events: list[OutputEvent] = []
    registry.register("p1", CallbackSubscriber(events.append))
    executor = CommandExecutor(repository=repository, registry=registry)

    result = asyncio.run(executor.execute("p1", f"{script} --prod"))

    assert result.ok
    assert [(event.type, event.data) for event in events] == [
        ("info", f"$ {script} --prod"),
        ("stdout", "building in p1"),
        ("stdout", "done"),
        ("info", f"Command finished: {script} --prod"),
    ]


def test_execute_without_subscriber_still_runs(repository: ProjectRepository, write_script) -> None:
    script = write_script("build", "echo quiet\n")
    executor = CommandExecutor(repository=repository, registry=LogChannelRegistry())
    seen: list[OutputEvent] = []

    result = asyncio.run(executor.execute("p1", [str(script)], on_event=seen.append))

    assert result.stdout == "quiet\n"
    assert [event.data for event in seen][1] == "quiet"


def test_execute_failure_publishes_error_and_raises(repository: ProjectRepository, write_script) -> None:
    script = write_script("build", "echo 'ERROR in src/main.ts' >&2\nexit 2\n")
    registry = LogChannelRegistry()
    events: list[OutputEvent] = []
    registry.register("p1", CallbackSubscriber(events.append))
    executor = CommandExecutor(repository=repository, registry=registry)

    with pytest.raises(CommandFailed) as excinfo:
        asyncio.run(executor.execute("p1", str(script)))

    assert excinfo.value.exit_code == 2
    assert events[-2].type == "stderr"
    assert events[-1].type == "error"
    assert "exit code 2" in events[-1].data


def test_execute_unknown_project_or_tool(repository: ProjectRepository, tmp_path: Path) -> None:
    executor = CommandExecutor(repository=repository, registry=LogChannelRegistry())

    with pytest.raises(ProjectNotFoundError):
        asyncio.run(executor.execute("missing", "npm start"))
    with pytest.raises(LaunchError):
        asyncio.run(executor.execute("p1", str(tmp_path / "no-such-tool")))


def test_execute_records_runs_and_output(repository: ProjectRepository, write_script, chroma_store) -> None:
    script = write_script("build", "echo compiled\n")
    executor = CommandExecutor(
        repository=repository,
        registry=LogChannelRegistry(),
        event_log=chroma_store,
        persist_output=True,
    )

    asyncio.run(executor.execute("p1", str(script), kind="build"))

    runs = chroma_store.list_command_runs("p1")
    assert [run.status for run in runs] == ["running", "succeeded"]
    assert runs[-1].kind == "build"
    assert runs[-1].returncode == 0
    output = chroma_store.search_events(filters={"event_type": "output"})
    assert [event.document for event in output] == [f"$ {script}", "compiled", f"Command finished: {script}"]
    assert output[1].metadata["stream"] == "stdout"
