"""Command line interface for flowpilot."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from flowpilot import build_runtime, get_repository
from flowpilot.cli_utils.workflow import (
    _load_workflow_file,
    _parse_datetime,
    _parse_days,
    _parse_interval,
    _parse_json_option,
    _parse_window,
    _unknown_modules,
)
from flowpilot.config import load_config
from flowpilot.contracts import RunRequest, TriggerType
from flowpilot.credentials import analyze_workflow_credentials
from flowpilot.errors import FlowpilotError
from flowpilot.scheduling import Restrictions, ScheduleStatus

app = typer.Typer(help="CLI for flowpilot workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
run_app = typer.Typer(help="Commands for inspecting workflow runs")
schedule_app = typer.Typer(help="Commands for managing schedules")
credential_app = typer.Typer(help="Commands for managing stored credentials")
capability_app = typer.Typer(help="Commands for inspecting capabilities")
worker_app = typer.Typer(help="Commands for running workers")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")
app.add_typer(schedule_app, name="schedule")
app.add_typer(credential_app, name="credential")
app.add_typer(capability_app, name="capability")
app.add_typer(worker_app, name="worker")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override the configured log level"),
) -> None:
    """Flowpilot CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# workflow


@workflow_app.command("add")
def workflow_add(path: Path, workflow_id: Optional[str] = typer.Option(None, "--id")) -> None:
    """
    Validate a workflow file and store it in the repository.

    The workflow id defaults to the ``id`` key of the file, then its stem.

    Example:
        flowpilot workflow add ./workflows/daily_digest.yaml
    """
    try:
        definition = _load_workflow_file(path)
    except (OSError, FlowpilotError) as exc:
        _fail(f"Could not load workflow: {exc}")
    workflow_id = workflow_id or definition.id
    asyncio.run(get_repository().save_workflow(workflow_id, definition))
    typer.echo(f"Workflow {workflow_id} saved ({len(definition.steps)} top-level steps)")


@workflow_app.command("list")
def workflow_list() -> None:
    """List stored workflow definitions."""
    workflows = asyncio.run(get_repository().list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.name or ''}")


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """
    Check a workflow file's structure and that every module it uses exists.

    Example:
        flowpilot workflow validate ./workflows/daily_digest.yaml
    """
    try:
        definition = _load_workflow_file(path)
    except (OSError, FlowpilotError) as exc:
        _fail(f"Invalid workflow: {exc}")
    runtime = build_runtime()
    unknown = _unknown_modules(definition, runtime.registry)
    if unknown:
        for module in unknown:
            typer.secho(f"Unknown module: {module}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {definition.id} is valid")


@workflow_app.command("credentials")
def workflow_credentials(path: Path) -> None:
    """List the credentials a workflow file needs before it can run."""
    try:
        definition = _load_workflow_file(path)
    except (OSError, FlowpilotError) as exc:
        _fail(f"Invalid workflow: {exc}")
    required = analyze_workflow_credentials(definition)
    if not required:
        typer.echo("No credentials required")
        return
    for item in required:
        typer.echo(f"{item.platform}\t{item.type}\t{{{{{item.variable}}}}}")


@workflow_app.command("run")
def workflow_run(
    target: str,
    data: Optional[str] = typer.Option(None, help="JSON trigger payload"),
    user: Optional[str] = typer.Option(None, help="User id for credential lookup"),
) -> None:
    """
    Execute a workflow once in this process and print the run result.

    ``target`` is either a stored workflow id or a path to a workflow file.

    Example:
        flowpilot workflow run daily_digest --data '{"topic": "python"}'
    """
    try:
        trigger_data = _parse_json_option(data)
    except ValueError as exc:
        _fail(f"Invalid --data: {exc}")

    definition = None
    path = Path(target)
    if path.is_file():
        try:
            definition = _load_workflow_file(path)
        except FlowpilotError as exc:
            _fail(f"Invalid workflow: {exc}")
    workflow_id = definition.id if definition is not None else target

    runtime = build_runtime()
    request = RunRequest(
        workflow_id=workflow_id,
        trigger_type=TriggerType.MANUAL,
        trigger_data=trigger_data,
        user_id=user,
    )
    run = asyncio.run(runtime.executor.execute(request, definition))
    typer.echo(f"Run {run.id}: {run.status} ({run.duration}ms)")
    if run.status == "success":
        typer.echo(json.dumps(run.output, indent=2, default=str))
        return
    _fail(f"Failed at {run.error_step or '-'}: {run.error}")


# ----------------------------------------------------------------------
# run


@run_app.command("list")
def run_list(
    workflow: Optional[str] = typer.Option(None, help="Only runs of this workflow"),
    limit: int = typer.Option(20, help="Maximum number of runs to show"),
) -> None:
    """
    List recent runs, newest first.

    Example:
        flowpilot run list --workflow daily_digest
        # Output: 4f1c...    daily_digest    success    2024-01-01T10:00:00+00:00
    """
    runs = asyncio.run(get_repository().list_runs(workflow_id=workflow, limit=limit))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.id}\t{run.workflow_id}\t{run.status}\t{run.started_at.isoformat()}")


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show a run's status, output or error, and per-step states."""
    run = asyncio.run(get_repository().get_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.id}: {run.status}")
    typer.echo(f"Workflow: {run.workflow_id} (attempt {run.attempt}, trigger {run.trigger_type.value})")
    if run.duration is not None:
        typer.echo(f"Duration: {run.duration}ms")
    if run.status == "success":
        typer.echo(f"Output: {json.dumps(run.output, default=str)}")
    elif run.error:
        typer.echo(f"Error at {run.error_step or '-'} ({run.error_type}): {run.error}")
    for step_id, state in run.context_snapshot.get("steps", {}).items():
        typer.echo(f"- {step_id}: {state}")


# ----------------------------------------------------------------------
# schedule


@schedule_app.command("add")
def schedule_add(
    workflow_id: str,
    name: Optional[str] = typer.Option(None, help="Schedule name"),
    at: Optional[str] = typer.Option(None, help="ISO timestamp for a one-time run"),
    every: Optional[str] = typer.Option(None, help="Interval such as '15 minutes' or '1 day'"),
    cron: Optional[str] = typer.Option(None, help="Cron expression, e.g. '0 9 * * 1-5'"),
    start: Optional[str] = typer.Option(None, help="ISO start date"),
    end: Optional[str] = typer.Option(None, help="ISO end date"),
    tz: Optional[str] = typer.Option(None, "--timezone", help="IANA timezone name"),
    days: Optional[str] = typer.Option(None, help="Allowed weekdays, 0=Sunday, e.g. '1,3,5'"),
    window: Optional[str] = typer.Option(None, help="Allowed time window, e.g. '09:00-17:00'"),
    max_executions: Optional[int] = typer.Option(None, "--max", help="Stop after N runs"),
    data: Optional[str] = typer.Option(None, help="JSON payload passed to each run"),
) -> None:
    """
    Register a one-time (--at), interval (--every) or cron (--cron) schedule.

    Example:
        flowpilot schedule add daily_digest --every "1 day" --days 1,2,3,4,5
        flowpilot schedule add report --at 2030-01-01T09:00:00+00:00
        flowpilot schedule add daily_digest --cron "0 9 * * 1-5" --timezone Europe/Berlin
    """
    if sum(bool(option) for option in (at, every, cron)) != 1:
        _fail("Pass exactly one of --at, --every or --cron")
    try:
        restrictions = Restrictions(
            days_of_week=_parse_days(days) if days else None,
            time_window=_parse_window(window) if window else None,
            max_executions=max_executions,
        )
        scheduler = build_runtime().scheduler
        task = asyncio.run(
            scheduler.create_schedule(
                name or workflow_id,
                workflow_id,
                execute_at=_parse_datetime(at),
                interval=_parse_interval(every) if every else None,
                cron=cron,
                start_date=_parse_datetime(start),
                end_date=_parse_datetime(end),
                timezone=tz,
                restrictions=restrictions,
                data=_parse_json_option(data),
            )
        )
    except (ValueError, FlowpilotError) as exc:
        _fail(f"Could not create schedule: {exc}")
    typer.echo(f"Schedule {task.id} created, next run at {task.next_execution_at.isoformat()}")


@schedule_app.command("list")
def schedule_list(
    workflow: Optional[str] = typer.Option(None, help="Only schedules of this workflow"),
    status: Optional[ScheduleStatus] = typer.Option(None, help="Filter by status"),
    limit: Optional[int] = typer.Option(None, help="Maximum number of schedules"),
) -> None:
    """List schedules ordered by their next execution."""
    scheduler = build_runtime().scheduler
    tasks = asyncio.run(scheduler.list_schedules(workflow, status, limit))
    if not tasks:
        typer.echo("No schedules found")
        return
    for task in tasks:
        next_at = task.next_execution_at.isoformat() if task.next_execution_at else "-"
        typer.echo(
            f"{task.id}\t{task.workflow_id}\t{task.status.value}\t{next_at}\t{task.execution_count}"
        )


def _change_schedule(action: str, task_id: str) -> None:
    scheduler = build_runtime().scheduler
    try:
        task = asyncio.run(getattr(scheduler, action)(task_id))
    except FlowpilotError as exc:
        _fail(str(exc))
    typer.echo(f"Schedule {task.id}: {task.status.value}")


@schedule_app.command("pause")
def schedule_pause(task_id: str) -> None:
    """Pause an active schedule."""
    _change_schedule("pause", task_id)


@schedule_app.command("resume")
def schedule_resume(task_id: str) -> None:
    """Resume a paused schedule."""
    _change_schedule("resume", task_id)


@schedule_app.command("cancel")
def schedule_cancel(task_id: str) -> None:
    """Cancel a schedule permanently."""
    _change_schedule("cancel", task_id)


# ----------------------------------------------------------------------
# credential


@credential_app.command("add")
def credential_add(
    platform: str,
    value: Optional[str] = typer.Argument(None),
    credential_type: str = typer.Option("api_key", "--type", help="api_key, token, secret, ..."),
    kind: str = typer.Option("api_key", help="api_key or oauth"),
    key: Optional[str] = typer.Option(None, help="Store key; defaults to the platform"),
    field: Optional[list[str]] = typer.Option(None, help="name=value for multi-field secrets"),
    validate: bool = typer.Option(True, help="Check the value's format"),
) -> None:
    """
    Encrypt and store a credential.

    Example:
        flowpilot credential add openai sk-...
        flowpilot credential add twitter_oauth TOKEN --kind oauth
        flowpilot credential add reddit --field client_id=abc --field client_secret=xyz
    """
    fields = {}
    for item in field or []:
        name, sep, field_value = item.partition("=")
        if not sep:
            _fail(f"Expected name=value, got {item!r}")
        fields[name] = field_value
    if value is None and not fields:
        _fail("Pass a value or at least one --field")
    if kind not in ("api_key", "oauth"):
        _fail("--kind must be api_key or oauth")

    service = build_runtime().credentials
    try:
        secret = asyncio.run(
            service.store_credential(
                platform,
                value,
                fields=fields or None,
                credential_type=credential_type,
                kind=kind,
                key=key,
                validate=validate,
            )
        )
    except FlowpilotError as exc:
        _fail(str(exc))
    typer.echo(f"Stored {secret.kind} credential '{secret.key}'")


@credential_app.command("list")
def credential_list() -> None:
    """List stored credentials without revealing their values."""
    items = asyncio.run(build_runtime().credentials.list_credentials())
    if not items:
        typer.echo("No credentials found")
        return
    for item in items:
        typer.echo(f"{item['key']}\t{item['kind']}\t{item['type']}\t{item['created_at']}")


# ----------------------------------------------------------------------
# capability


@capability_app.command("list")
def capability_list(
    category: Optional[str] = typer.Option(None, help="Only this category"),
) -> None:
    """List registered capabilities with their parameters."""
    for item in build_runtime().registry.describe():
        if category and not item["path"].startswith(f"{category.lower()}."):
            continue
        params = ", ".join(item["params"])
        typer.echo(f"{item['path']}({params})")


# ----------------------------------------------------------------------
# worker


@worker_app.command("start")
def worker_start(
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run until interrupted)"
    ),
) -> None:
    """
    Run the worker pool and the schedule poller.

    Example:
        flowpilot worker start
        flowpilot worker start --lifespan 300
    """
    runtime = build_runtime()
    typer.echo(
        f"Starting {runtime.config.queue.max_concurrent} workers "
        f"on the {runtime.config.queue.backend} queue"
    )
    asyncio.run(runtime.serve(lifespan=lifespan))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
