import asyncio

import pytest
from typer.testing import CliRunner

import flowpilot.credentials as credentials
import flowpilot.persistence as persistence
import flowpilot.scheduling as scheduling
from flowpilot.cli import app
from flowpilot.persistence import InMemoryWorkflowRepository
from flowpilot.scheduling import InMemoryScheduleStore

WORKFLOW_YAML = """
id: picker
name: Pick fields
steps:
  - id: pick
    module: utilities.json.pick
    inputs:
      data: "{{trigger}}"
      keys: ["a"]
"""

runner = CliRunner()


@pytest.fixture(autouse=True)
def stores(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWPILOT_CONFIG", str(tmp_path / "absent.yaml"))
    repo = InMemoryWorkflowRepository()
    schedule_store = InMemoryScheduleStore()
    persistence._repository_instance = repo
    scheduling._store_instance = schedule_store
    credentials._store_instance = credentials.InMemorySecretStore()
    yield repo, schedule_store
    persistence._repository_instance = None
    scheduling._store_instance = None
    credentials._store_instance = None


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "picker.yaml"
    path.write_text(WORKFLOW_YAML)
    return path


def test_workflow_add_and_list(stores, workflow_file):
    repo, _ = stores
    result = runner.invoke(app, ["workflow", "add", str(workflow_file)])
    assert result.exit_code == 0, result.stdout
    assert "Workflow picker saved" in result.stdout
    assert asyncio.run(repo.get_workflow("picker")) is not None

    listed = runner.invoke(app, ["workflow", "list"])
    assert listed.exit_code == 0
    assert "picker" in listed.stdout
    assert "Pick fields" in listed.stdout


def test_workflow_validate_reports_unknown_modules(tmp_path, workflow_file):
    ok = runner.invoke(app, ["workflow", "validate", str(workflow_file)])
    assert ok.exit_code == 0, ok.stdout
    assert "is valid" in ok.stdout

    bad = tmp_path / "bad.yaml"
    bad.write_text("steps:\n  - id: x\n    module: social.nowhere.post\n")
    result = runner.invoke(app, ["workflow", "validate", str(bad)])
    assert result.exit_code == 1
    assert "Unknown module: social.nowhere.post" in result.stdout


def test_workflow_credentials_lists_requirements(tmp_path):
    path = tmp_path / "needs.yaml"
    path.write_text(
        "steps:\n"
        "  - id: ask\n"
        "    module: ai.openai.chat\n"
        "    inputs:\n"
        "      key: '{{credential.openai}}'\n"
    )
    result = runner.invoke(app, ["workflow", "credentials", str(path)])
    assert result.exit_code == 0
    assert "openai\tapi_key\t{{credential.openai}}" in result.stdout


def test_workflow_run_then_run_list_and_show(stores, workflow_file):
    repo, _ = stores
    result = runner.invoke(
        app, ["workflow", "run", str(workflow_file), "--data", '{"a": 1, "b": 2}']
    )
    assert result.exit_code == 0, result.stdout
    assert "success" in result.stdout
    assert '"a": 1' in result.stdout
    assert '"b"' not in result.stdout

    runs = asyncio.run(repo.list_runs(workflow_id="picker"))
    assert len(runs) == 1

    listed = runner.invoke(app, ["run", "list", "--workflow", "picker"])
    assert runs[0].id in listed.stdout

    shown = runner.invoke(app, ["run", "show", runs[0].id])
    assert shown.exit_code == 0
    assert "pick: succeeded" in shown.stdout

    missing = runner.invoke(app, ["run", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Run not found" in missing.stdout


def test_workflow_run_unknown_workflow_fails():
    result = runner.invoke(app, ["workflow", "run", "does-not-exist"])
    assert result.exit_code == 1
    assert "Workflow not found" in result.stdout


def test_schedule_lifecycle(stores):
    _, schedule_store = stores
    created = runner.invoke(
        app, ["schedule", "add", "picker", "--every", "2h", "--days", "1,3,5", "--max", "3"]
    )
    assert created.exit_code == 0, created.stdout

    tasks = asyncio.run(schedule_store.list_tasks())
    assert len(tasks) == 1
    task = tasks[0]
    assert task.schedule.interval.unit == "hours"
    assert task.restrictions.days_of_week == [1, 3, 5]

    listed = runner.invoke(app, ["schedule", "list"])
    assert task.id in listed.stdout

    assert "paused" in runner.invoke(app, ["schedule", "pause", task.id]).stdout
    assert "active" in runner.invoke(app, ["schedule", "resume", task.id]).stdout
    assert "cancelled" in runner.invoke(app, ["schedule", "cancel", task.id]).stdout

    again = runner.invoke(app, ["schedule", "cancel", task.id])
    assert again.exit_code == 1


def test_schedule_add_requires_one_timing_option():
    result = runner.invoke(app, ["schedule", "add", "picker"])
    assert result.exit_code == 1
    bad = runner.invoke(app, ["schedule", "add", "picker", "--every", "soon"])
    assert bad.exit_code == 1
    assert "Could not create schedule" in bad.stdout
    both = runner.invoke(app, ["schedule", "add", "picker", "--every", "1h", "--cron", "0 9 * * *"])
    assert both.exit_code == 1


def test_schedule_add_with_cron(stores):
    _, schedule_store = stores
    created = runner.invoke(app, ["schedule", "add", "picker", "--cron", "0 9 * * 1-5"])
    assert created.exit_code == 0, created.stdout

    (task,) = asyncio.run(schedule_store.list_tasks())
    assert task.schedule.type == "cron"
    assert task.schedule.cron == "0 9 * * 1-5"

    bad = runner.invoke(app, ["schedule", "add", "picker", "--cron", "not a cron"])
    assert bad.exit_code == 1
    assert "Could not create schedule" in bad.stdout


def test_credential_add_and_list():
    rejected = runner.invoke(app, ["credential", "add", "openai", "not-a-key"])
    assert rejected.exit_code == 1

    stored = runner.invoke(app, ["credential", "add", "openai", "sk-" + "x" * 32])
    assert stored.exit_code == 0, stored.stdout

    multi = runner.invoke(
        app, ["credential", "add", "twilio", "--field", "sid=AC1", "--field", "token=t0k"]
    )
    assert multi.exit_code == 0, multi.stdout

    listed = runner.invoke(app, ["credential", "list"])
    assert "openai\tapi_key" in listed.stdout
    assert "twilio" in listed.stdout
    assert "sk-" not in listed.stdout


def test_capability_list_filters_by_category():
    result = runner.invoke(app, ["capability", "list", "--category", "utilities"])
    assert result.exit_code == 0
    assert "utilities.json.pick(data, keys)" in result.stdout
