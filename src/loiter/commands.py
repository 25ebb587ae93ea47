"""User-level operations composed from store reads and writes.

Each operation takes a ``Store`` and a small request object (as produced by
the CLI). Sequences that touch more than one document, such as starting a
log while another one is active, are performed here step by step; the store
itself has no transactions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from loiter.errors import NoActiveLogError, ProjectAlreadyExistsError
from loiter.filters import build_log_filter, build_project_filter, build_task_filter
from loiter.models import Log, Project, Task, parse_comma_separated, parse_id_list
from loiter.persistence import Store
from loiter.sorting import LogField, ProjectField, SortSpec, TaskField
from loiter.timeparse import now_local

logger = logging.getLogger(__name__)


def _describe(log: Log) -> str:
    task_part = f", task {log.task_id}" if log.task_id is not None else ""
    return f"log {log.id} for project {log.project_id}{task_part}"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@dataclass
class AddProject:
    name: str
    description: str | None = None
    deadline: datetime | None = None
    tags: str | None = None


def add_project(store: Store, params: AddProject) -> Project:
    project = Project(
        name=params.name,
        description=params.description,
        deadline=params.deadline,
        tags=set(parse_comma_separated(params.tags)),
    )
    if store.project_path(project.id).exists():
        raise ProjectAlreadyExistsError(project.id)
    store.save_project(project)
    logger.debug("Created new project %s", project.name)
    return project


def rename_project(store: Store, project_id: str, new_name: str) -> Project:
    """Rename a project, moving its directory and any active-log pointer."""
    project = store.project(project_id)
    renamed = project.renamed(new_name)
    store.rename_project(project.id, renamed)
    state = store.state()
    if state.active_log and state.active_log.project_id == project.id:
        store.set_active_log(state.active_log._replace(project_id=renamed.id))
        logger.debug("Moved active log pointer to project %s", renamed.id)
    return renamed


def remove_project(store: Store, project_id: str) -> str:
    """Delete a project and everything beneath it; returns the removed ID."""
    project = store.project(project_id)
    state = store.state()
    store.remove_project(project.id)
    if state.active_log and state.active_log.project_id == project.id:
        store.set_active_log(None)
        logger.debug("Cleared active log pointer for removed project %s", project.id)
    return project.id


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@dataclass
class AddTask:
    project_id: str
    description: str
    state: str | None = None
    priority: int | None = None
    deadline: datetime | None = None
    tags: str | None = None


def add_task(store: Store, params: AddTask) -> Task:
    task = Task(
        project_id=params.project_id,
        description=params.description,
        priority=params.priority,
        state=params.state,
        deadline=params.deadline,
        tags=set(parse_comma_separated(params.tags)),
    )
    task = store.save_task(task)
    logger.debug("Added task %s for project %s", task.id, task.project_id)
    return task


@dataclass
class UpdateTasks:
    """Field changes applied to one or more tasks of a project.

    ``task_ids`` is a comma-separated list such as ``"1,4,5"``.
    """

    project_id: str
    task_ids: str
    description: str | None = None
    state: str | None = None
    priority: int | None = None
    deadline: datetime | None = None
    tags: str | None = None

    def apply(self, task: Task) -> Task:
        changes = {}
        if self.description is not None:
            changes["description"] = self.description
        if self.state is not None:
            changes["state"] = self.state
        if self.priority is not None:
            changes["priority"] = self.priority
        if self.deadline is not None:
            changes["deadline"] = self.deadline
        if self.tags is not None:
            changes["tags"] = set(parse_comma_separated(self.tags))
        return replace(task, **changes)


def update_tasks(store: Store, params: UpdateTasks) -> list[Task]:
    # Load everything first so an unknown ID fails before any write.
    tasks = [store.task(params.project_id, tid) for tid in parse_id_list(params.task_ids)]
    updated = []
    for task in tasks:
        saved = store.save_task(params.apply(task))
        logger.debug("Updated task %s for project %s", saved.id, saved.project_id)
        updated.append(saved)
    return updated


def mark_done(store: Store, project_id: str, task_ids: str) -> list[Task]:
    """Move the given tasks to their project's "done" state."""
    project = store.project(project_id)
    done = project.states_config(store.config().task_state_config).done
    return update_tasks(store, UpdateTasks(project_id=project.id, task_ids=task_ids, state=done))


def task_states(store: Store, project_id: str | None = None) -> list[str]:
    """Ordered task states for a project, or the global defaults."""
    default = store.config().task_state_config
    if project_id is None:
        return list(default.states)
    return list(store.project(project_id).states_config(default).states)


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


@dataclass
class AddLog:
    project_id: str
    task_id: int | None = None
    start: datetime | None = None
    stop: datetime | None = None
    duration: timedelta | None = None
    comment: str | None = None
    tags: str | None = None


def add_log(store: Store, params: AddLog) -> Log:
    log = Log(
        project_id=params.project_id,
        task_id=params.task_id,
        start=params.start,
        comment=params.comment,
        tags=set(parse_comma_separated(params.tags)),
    ).with_duration_or_stop(params.duration, params.stop)
    log = store.save_log(log)
    logger.debug("Added %s", _describe(log))
    return log


@dataclass
class StartLog:
    project_id: str
    task_id: int | None = None
    start: datetime | None = None
    comment: str | None = None
    tags: str | None = None


@dataclass
class StopLog:
    stop: datetime | None = None
    duration: timedelta | None = None
    comment: str | None = None
    tags: str | None = None


def start_log(store: Store, params: StartLog, now: datetime | None = None) -> Log:
    """Start tracking a new log, stopping the active one first.

    If the new log belongs to a task, the task moves to its in-progress state.
    """
    now = now or now_local()
    # Resolve the target before touching the active log.
    project = store.project(params.project_id)
    task = store.task(project.id, params.task_id) if params.task_id is not None else None
    log = Log(
        project_id=project.id,
        task_id=params.task_id,
        start=params.start or now,
        comment=params.comment,
        tags=set(parse_comma_separated(params.tags)),
    )

    if store.state().active_log is not None:
        stop_log(store, StopLog(stop=params.start), now)

    log = store.save_log(log)
    store.set_active_log(log.ref)

    if task is not None:
        in_progress = project.states_config(store.config().task_state_config).in_progress
        store.save_task(replace(task, state=in_progress))
        logger.debug("Moved task %s to state %s", task.id, in_progress)

    logger.debug("Started %s", _describe(log))
    return log


def stop_log(store: Store, params: StopLog | None = None, now: datetime | None = None) -> Log:
    """Close the active log with a duration, a stop time, or ``now``."""
    params = params or StopLog()
    now = now or now_local()
    active = store.active_log()
    if active is None:
        raise NoActiveLogError()

    if params.duration is None and params.stop is None:
        active = active.with_stop(now)
    else:
        active = active.with_duration_or_stop(params.duration, params.stop)
    if params.comment is not None:
        active = replace(active, comment=params.comment)
    if params.tags is not None:
        active = replace(active, tags=set(parse_comma_separated(params.tags)))

    active = store.save_log(active)
    store.set_active_log(None)
    logger.debug("Stopped %s after %s", _describe(active), active.duration)
    return active


def cancel_log(store: Store) -> Log | None:
    """Delete the active log, if any, and clear the active pointer."""
    active = store.active_log()
    if active is None:
        return None
    store.delete_log(active.project_id, active.task_id, active.id)
    store.set_active_log(None)
    logger.debug("Cancelled %s", _describe(active))
    return active


@dataclass
class LogStatus:
    log: Log
    active_for: timedelta


def active_log_status(store: Store, now: datetime | None = None) -> LogStatus | None:
    active = store.active_log()
    if active is None:
        return None
    now = now or now_local()
    elapsed = now - active.start if active.start is not None else timedelta(0)
    return LogStatus(log=active, active_for=timedelta(seconds=int(elapsed.total_seconds())))


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@dataclass
class ListProjects:
    deadline: str | None = None
    tags: str | None = None
    sort: str | None = None


@dataclass
class ListTasks:
    project_ids: str | None = None
    project_deadline: str | None = None
    project_tags: str | None = None
    task_ids: str | None = None
    priorities: str | None = None
    states: str | None = None
    state_not: str | None = None
    deadline: str | None = None
    tags: str | None = None
    sort: str | None = None


@dataclass
class ListLogs:
    project_ids: str | None = None
    project_deadline: str | None = None
    project_tags: str | None = None
    task_ids: str | None = None
    task_states: str | None = None
    task_deadline: str | None = None
    task_tags: str | None = None
    start: str | None = None
    duration: str | None = None
    tags: str | None = None
    sort: str | None = None


def list_projects(store: Store, params: ListProjects, now: datetime | None = None) -> list[Project]:
    now = now or now_local()
    project_filter = build_project_filter(deadline=params.deadline, tags=params.tags, now=now)
    sort_spec = SortSpec.parse(params.sort, ProjectField) if params.sort else SortSpec.default(ProjectField)
    return sort_spec.sort(store.projects(project_filter, now))


def list_tasks(store: Store, params: ListTasks, now: datetime | None = None) -> list[Task]:
    now = now or now_local()
    project_filter = build_project_filter(
        params.project_ids, params.project_deadline, params.project_tags, now=now
    )
    task_filter = build_task_filter(
        params.states,
        params.deadline,
        params.tags,
        now=now,
        task_ids=parse_id_list(params.task_ids) if params.task_ids else None,
        priorities=parse_id_list(params.priorities) if params.priorities else None,
        state_not=params.state_not,
    )
    sort_spec = SortSpec.parse(params.sort, TaskField) if params.sort else SortSpec.default(TaskField)
    return sort_spec.sort(store.tasks(project_filter, task_filter, now))


def list_logs(store: Store, params: ListLogs, now: datetime | None = None) -> list[Log]:
    now = now or now_local()
    project_filter = build_project_filter(
        params.project_ids, params.project_deadline, params.project_tags, now=now
    )
    task_filter = build_task_filter(params.task_states, params.task_deadline, params.task_tags, now=now)
    log_filter = build_log_filter(
        params.start,
        params.duration,
        params.tags,
        now=now,
        task_ids=parse_id_list(params.task_ids) if params.task_ids else None,
    )
    sort_spec = SortSpec.parse(params.sort, LogField) if params.sort else SortSpec.default(LogField)
    return sort_spec.sort(store.logs(project_filter, task_filter, log_filter, now))
