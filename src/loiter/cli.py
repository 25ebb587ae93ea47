"""Typer CLI for loiter."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Annotated, Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from loiter import commands
from loiter.errors import LoiterError
from loiter.models import Log, Project, Task
from loiter.persistence import Store
from loiter.timeparse import format_duration, format_timestamp, now_local, parse_duration, parse_timestamp

DEFAULT_PATH = Path("~/.loiter")

app = typer.Typer(
    name="loiter",
    help="A simple command line time tracker for projects and tasks.",
    no_args_is_help=True,
)
add_app = typer.Typer(help="Add a project, task or log.", no_args_is_help=True)
list_app = typer.Typer(help="List projects, tasks or logs.", no_args_is_help=True)
update_app = typer.Typer(help="Update existing tasks.", no_args_is_help=True)
rename_app = typer.Typer(help="Rename a project.", no_args_is_help=True)
remove_app = typer.Typer(help="Remove a project and everything in it.", no_args_is_help=True)

app.add_typer(add_app, name="add")
app.add_typer(list_app, name="list")
app.add_typer(list_app, name="ls", hidden=True)
app.add_typer(update_app, name="update")
app.add_typer(rename_app, name="rename")
app.add_typer(remove_app, name="remove")
app.add_typer(remove_app, name="rm", hidden=True)

console = Console()
err_console = Console(stderr=True)

_settings: dict[str, Path] = {"path": DEFAULT_PATH}


def _get_store() -> Store:
    return Store(_settings["path"])


@contextmanager
def _fail_on_error() -> Iterator[None]:
    """Report loiter errors in red and exit with status 1."""
    try:
        yield
    except LoiterError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e


def _complete_project_id(incomplete: str) -> list[str]:
    """Shell completion for project IDs."""
    try:
        projects = _get_store().projects()
    except LoiterError:
        return []
    return [p.id for p in projects if p.id.startswith(incomplete.lower())]


def _timestamp(text: str | None, now: datetime) -> datetime | None:
    return parse_timestamp(text, now) if text else None


def _duration(text: str | None) -> timedelta | None:
    return parse_duration(text) if text else None


def _fmt(value: object) -> str:
    if value is None:
        return "-"
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, timedelta):
        return format_duration(value) or "0s"
    if isinstance(value, (set, frozenset)):
        return ", ".join(sorted(value)) or "-"
    return escape(str(value))


@app.callback()
def main(
    path: Annotated[
        Path,
        typer.Option("--path", "-p", envvar="LOITER_PATH", help="Where loiter keeps its data"),
    ] = DEFAULT_PATH,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    """Track the time you spend on projects and tasks."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    _settings["path"] = path


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _project_table(projects: list[Project]) -> Table:
    table = Table(title="Projects")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Description")
    table.add_column("Deadline")
    table.add_column("Tags")
    for p in projects:
        table.add_row(_fmt(p.id), _fmt(p.name), _fmt(p.description), _fmt(p.deadline), _fmt(p.tags))
    return table


def _task_table(tasks: list[Task]) -> Table:
    table = Table(title="Tasks")
    table.add_column("Project")
    table.add_column("ID", style="bold", justify="right")
    table.add_column("Description")
    table.add_column("Priority", justify="right")
    table.add_column("State")
    table.add_column("Deadline")
    table.add_column("Tags")
    for t in tasks:
        table.add_row(
            _fmt(t.project_id),
            _fmt(t.id),
            _fmt(t.description),
            _fmt(t.effective_priority),
            _fmt(t.state),
            _fmt(t.deadline),
            _fmt(t.tags),
        )
    return table


def _log_table(logs: list[Log]) -> Table:
    table = Table(title="Logs")
    table.add_column("Project")
    table.add_column("Task", justify="right")
    table.add_column("ID", style="bold", justify="right")
    table.add_column("Start")
    table.add_column("Duration", justify="right")
    table.add_column("Comment")
    table.add_column("Tags")
    total = timedelta(0)
    for lg in logs:
        table.add_row(
            _fmt(lg.project_id),
            _fmt(lg.task_id),
            _fmt(lg.id),
            _fmt(lg.start),
            _fmt(lg.duration) if not lg.is_open else "[yellow]active[/yellow]",
            _fmt(lg.comment),
            _fmt(lg.tags),
        )
        total += lg.duration or timedelta(0)
    table.caption = f"Total: {format_duration(total) or '0s'}"
    return table


# ---------------------------------------------------------------------------
# add
# ---------------------------------------------------------------------------


@add_app.command("project")
def add_project(
    name: str,
    description: Annotated[Optional[str], typer.Option("--description", "-d", help="Project description")] = None,
    deadline: Annotated[Optional[str], typer.Option(help="Deadline timestamp")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags")] = None,
) -> None:
    """Create a new project."""
    with _fail_on_error():
        store = _get_store()
        params = commands.AddProject(
            name=name,
            description=description,
            deadline=_timestamp(deadline, now_local()),
            tags=tags,
        )
        project = commands.add_project(store, params)
    console.print(f"[green]Created project {project.id}[/green]")


@add_app.command("task")
def add_task(
    project: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    description: str,
    state: Annotated[Optional[str], typer.Option("--state", "-s", help="Initial task state")] = None,
    priority: Annotated[Optional[int], typer.Option("--priority", "-P", help="1 (highest) to 10 (lowest)")] = None,
    deadline: Annotated[Optional[str], typer.Option(help="Deadline timestamp")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags")] = None,
) -> None:
    """Add a task to a project."""
    with _fail_on_error():
        store = _get_store()
        params = commands.AddTask(
            project_id=store.project(project).id,
            description=description,
            state=state,
            priority=priority,
            deadline=_timestamp(deadline, now_local()),
            tags=tags,
        )
        task = commands.add_task(store, params)
    console.print(f"[green]Added task {task.id} to project {task.project_id}[/green]")


@add_app.command("log")
def add_log(
    project: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    task: Annotated[Optional[int], typer.Option("--task", "-T", help="Task ID within the project")] = None,
    start: Annotated[Optional[str], typer.Option("--start", "-s", help="When the work started")] = None,
    stop: Annotated[Optional[str], typer.Option(help="When the work stopped")] = None,
    duration: Annotated[Optional[str], typer.Option("--duration", "-d", help="How long, e.g. 1h30m")] = None,
    comment: Annotated[Optional[str], typer.Option("--comment", "-c", help="What was done")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags")] = None,
) -> None:
    """Record a log of work that has already happened."""
    with _fail_on_error():
        store = _get_store()
        now = now_local()
        params = commands.AddLog(
            project_id=store.project(project).id,
            task_id=task,
            start=_timestamp(start, now),
            stop=_timestamp(stop, now),
            duration=_duration(duration),
            comment=comment,
            tags=tags,
        )
        log = commands.add_log(store, params)
    console.print(f"[green]Added log {log.id} to project {log.project_id}[/green]")


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@list_app.command("projects")
def list_projects(
    deadline: Annotated[Optional[str], typer.Option(help="Deadline filter, e.g. 'week' or 'before 2022-01-01'")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags (any)")] = None,
    sort: Annotated[Optional[str], typer.Option("--sort", "-S", help="e.g. 'deadline:desc,name'")] = None,
) -> None:
    """List projects."""
    with _fail_on_error():
        params = commands.ListProjects(deadline=deadline, tags=tags, sort=sort)
        projects = commands.list_projects(_get_store(), params)
    console.print(_project_table(projects))


@list_app.command("tasks")
def list_tasks(
    project: Annotated[Optional[str], typer.Option("--project", "-p", help="Comma-separated project IDs")] = None,
    project_deadline: Annotated[Optional[str], typer.Option(help="Project deadline filter")] = None,
    project_tags: Annotated[Optional[str], typer.Option(help="Project tags (any)")] = None,
    task: Annotated[Optional[str], typer.Option("--task", "-T", help="Comma-separated task IDs")] = None,
    priority: Annotated[Optional[str], typer.Option("--priority", "-P", help="Comma-separated priorities")] = None,
    state: Annotated[Optional[str], typer.Option("--state", "-s", help="Comma-separated states")] = None,
    state_not: Annotated[Optional[str], typer.Option(help="Exclude tasks in this state")] = None,
    deadline: Annotated[Optional[str], typer.Option(help="Task deadline filter")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Task tags (any)")] = None,
    sort: Annotated[Optional[str], typer.Option("--sort", "-S", help="e.g. 'priority,deadline:desc'")] = None,
) -> None:
    """List tasks across projects."""
    with _fail_on_error():
        params = commands.ListTasks(
            project_ids=project,
            project_deadline=project_deadline,
            project_tags=project_tags,
            task_ids=task,
            priorities=priority,
            states=state,
            state_not=state_not,
            deadline=deadline,
            tags=tags,
            sort=sort,
        )
        tasks = commands.list_tasks(_get_store(), params)
    console.print(_task_table(tasks))


@list_app.command("logs")
def list_logs(
    project: Annotated[Optional[str], typer.Option("--project", "-p", help="Comma-separated project IDs")] = None,
    project_deadline: Annotated[Optional[str], typer.Option(help="Project deadline filter")] = None,
    project_tags: Annotated[Optional[str], typer.Option(help="Project tags (any)")] = None,
    task: Annotated[Optional[str], typer.Option("--task", "-T", help="Comma-separated task IDs")] = None,
    task_state: Annotated[Optional[str], typer.Option(help="Comma-separated task states")] = None,
    task_deadline: Annotated[Optional[str], typer.Option(help="Task deadline filter")] = None,
    task_tags: Annotated[Optional[str], typer.Option(help="Task tags (any)")] = None,
    start: Annotated[Optional[str], typer.Option("--start", "-s", help="Start filter, e.g. 'today' or '3 days'")] = None,
    duration: Annotated[Optional[str], typer.Option("--duration", "-d", help="Duration filter, e.g. '>= 1h'")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Log tags (any)")] = None,
    sort: Annotated[Optional[str], typer.Option("--sort", "-S", help="e.g. 'start:desc'")] = None,
) -> None:
    """List logs across projects and tasks."""
    with _fail_on_error():
        params = commands.ListLogs(
            project_ids=project,
            project_deadline=project_deadline,
            project_tags=project_tags,
            task_ids=task,
            task_states=task_state,
            task_deadline=task_deadline,
            task_tags=task_tags,
            start=start,
            duration=duration,
            tags=tags,
            sort=sort,
        )
        logs = commands.list_logs(_get_store(), params)
    console.print(_log_table(logs))


# ---------------------------------------------------------------------------
# update / done / states
# ---------------------------------------------------------------------------


@update_app.command("task")
def update_task(
    project: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    task_ids: Annotated[str, typer.Argument(help="Comma-separated task IDs")],
    description: Annotated[Optional[str], typer.Option("--description", "-d", help="New description")] = None,
    state: Annotated[Optional[str], typer.Option("--state", "-s", help="New state")] = None,
    priority: Annotated[Optional[int], typer.Option("--priority", "-P", help="New priority")] = None,
    deadline: Annotated[Optional[str], typer.Option(help="New deadline")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Replacement tags")] = None,
) -> None:
    """Update fields of one or more tasks."""
    with _fail_on_error():
        store = _get_store()
        params = commands.UpdateTasks(
            project_id=store.project(project).id,
            task_ids=task_ids,
            description=description,
            state=state,
            priority=priority,
            deadline=_timestamp(deadline, now_local()),
            tags=tags,
        )
        tasks = commands.update_tasks(store, params)
    for t in tasks:
        console.print(f"[green]Updated task {t.id} in project {t.project_id}[/green]")


@app.command()
def done(
    project: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    task_ids: Annotated[str, typer.Argument(help="Comma-separated task IDs")],
) -> None:
    """Mark tasks as done."""
    with _fail_on_error():
        tasks = commands.mark_done(_get_store(), project, task_ids)
    for t in tasks:
        console.print(f"[green]Task {t.id} in project {t.project_id} is now {t.state}[/green]")


@app.command()
def states(
    project: Annotated[Optional[str], typer.Argument(autocompletion=_complete_project_id)] = None,
) -> None:
    """Show the ordered task states for a project (or the defaults)."""
    with _fail_on_error():
        names = commands.task_states(_get_store(), project)
    for name in names:
        console.print(name)


# ---------------------------------------------------------------------------
# Time tracking
# ---------------------------------------------------------------------------


@app.command()
def start(
    project: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    task: Annotated[Optional[int], typer.Argument(help="Task ID within the project")] = None,
    at: Annotated[Optional[str], typer.Option("--at", "-a", help="Start time (default: now)")] = None,
    comment: Annotated[Optional[str], typer.Option("--comment", "-c", help="What you are working on")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Comma-separated tags")] = None,
) -> None:
    """Start tracking time, stopping any active log first."""
    with _fail_on_error():
        store = _get_store()
        now = now_local()
        stopped = store.active_log()
        params = commands.StartLog(
            project_id=store.project(project).id,
            task_id=task,
            start=_timestamp(at, now),
            comment=comment,
            tags=tags,
        )
        log = commands.start_log(store, params, now)
    if stopped is not None:
        console.print(f"[yellow]Stopped log {stopped.id} in project {stopped.project_id}[/yellow]")
    console.print(f"[green]Started log {log.id} in project {log.project_id} at {format_timestamp(log.start)}[/green]")


@app.command()
def stop(
    at: Annotated[Optional[str], typer.Option("--at", "-a", help="Stop time (default: now)")] = None,
    duration: Annotated[Optional[str], typer.Option("--duration", "-d", help="Log duration instead of a stop time")] = None,
    comment: Annotated[Optional[str], typer.Option("--comment", "-c", help="Replace the log's comment")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", "-t", help="Replace the log's tags")] = None,
) -> None:
    """Stop the active log."""
    with _fail_on_error():
        now = now_local()
        params = commands.StopLog(stop=_timestamp(at, now), duration=_duration(duration), comment=comment, tags=tags)
        log = commands.stop_log(_get_store(), params, now)
    console.print(f"[green]Stopped log {log.id} in project {log.project_id} after {format_duration(log.duration) or '0s'}[/green]")


@app.command()
def cancel() -> None:
    """Discard the active log."""
    with _fail_on_error():
        log = commands.cancel_log(_get_store())
    if log is None:
        console.print("[yellow]No active log.[/yellow]")
        return
    console.print(f"[green]Cancelled log {log.id} in project {log.project_id}[/green]")


@app.command()
def status() -> None:
    """Show what is currently being tracked."""
    with _fail_on_error():
        current = commands.active_log_status(_get_store())
    if current is None:
        console.print("[dim]Nothing is being tracked.[/dim]")
        return
    log = current.log
    task_part = f" task {log.task_id}" if log.task_id is not None else ""
    console.print(f"[bold]Project:[/bold] {escape(log.project_id)}{task_part}")
    console.print(f"[bold]Log:[/bold] {log.id}")
    console.print(f"[bold]Started:[/bold] {_fmt(log.start)}")
    console.print(f"[bold]Active for:[/bold] {_fmt(current.active_for)}")
    if log.comment:
        console.print(f"[bold]Comment:[/bold] {escape(log.comment)}")


# ---------------------------------------------------------------------------
# rename / remove
# ---------------------------------------------------------------------------


@rename_app.command("project")
def rename_project(
    project: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    new_name: str,
) -> None:
    """Rename a project; its ID follows the new name."""
    with _fail_on_error():
        renamed = commands.rename_project(_get_store(), project, new_name)
    console.print(f"[green]Renamed project {project} to {renamed.id}[/green]")


@remove_app.command("project")
def remove_project(
    project: Annotated[str, typer.Argument(autocompletion=_complete_project_id)],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
) -> None:
    """Delete a project with all of its tasks and logs."""
    if not yes:
        typer.confirm(f"Remove project {project} and all of its tasks and logs?", abort=True)
    with _fail_on_error():
        removed = commands.remove_project(_get_store(), project)
    console.print(f"[green]Removed project {removed}[/green]")


if __name__ == "__main__":
    app()
