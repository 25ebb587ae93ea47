"""Filesystem-backed JSON store for projects, tasks and logs.

Every object lives in its own pretty-printed JSON file:

    <root>/state.json                                  active log pointer
    <root>/config.json                                 default task states
    <root>/<project>/project.json                      project metadata
    <root>/<project>/logs/00001.json                   log with no task
    <root>/<project>/tasks/0001/task.json              task metadata
    <root>/<project>/tasks/0001/00001.json             log for task 1

Identifiers live only in the file and directory names; documents never
repeat them. New identifiers are max(existing) + 1 within their directory.
"""

from __future__ import annotations

import functools
import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from loiter.errors import (
    CorruptDocumentError,
    InvalidIdentifierError,
    LogNotFoundError,
    LoiterError,
    NotFoundError,
    ProjectAlreadyExistsError,
    ProjectNotFoundError,
    StorageIOError,
    TaskNotFoundError,
)
from loiter.filters import FilterSpec, LogFilter, LogFilterKind, ProjectFilter, TaskFilter
from loiter.models import Config, Log, LogRef, Project, State, Task, slugify
from loiter.timeparse import now_local

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
CONFIG_FILE = "config.json"
PROJECT_FILE = "project.json"
TASK_FILE = "task.json"
LOGS_DIR = "logs"
TASKS_DIR = "tasks"

STARTING_ID = 1

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def load_document(path: Path, decode: Callable[[dict], T]) -> T:
    """Read the JSON document at ``path`` and turn it into a model.

    Raises NotFoundError if ``path`` is not a regular file and
    CorruptDocumentError if it does not decode.
    """
    if not path.is_file():
        raise NotFoundError(f"file not found: {path}")
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StorageIOError("read", path, e) from e
    try:
        return decode(json.loads(raw))
    except (ValueError, KeyError, TypeError, OverflowError, LoiterError) as e:
        raise CorruptDocumentError(path, raw, str(e)) from e


def save_document(path: Path, data: dict) -> None:
    """Write ``data`` to ``path``, creating parent directories as needed."""
    ensure_dir(path.parent)
    try:
        path.write_text(json.dumps(data, indent=4, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        raise StorageIOError("write", path, e) from e


def ensure_dir(path: Path) -> None:
    if path.is_dir():
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create directory", path, e) from e
    logger.debug("Created path: %s", path)


def _iter_dir(path: Path) -> Iterator[Path]:
    if not path.is_dir():
        return
    try:
        entries = sorted(path.iterdir())
    except OSError as e:
        raise StorageIOError("list", path, e) from e
    yield from entries


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def task_id_from_path(path: Path) -> int:
    name = path.name
    if not name.isdigit():
        raise InvalidIdentifierError(name, f"not a task directory: {path}")
    return int(name)


def log_id_from_path(path: Path) -> int:
    if path.suffix != ".json" or not path.stem.isdigit():
        raise InvalidIdentifierError(path.name, f"not a log file: {path}")
    return int(path.stem)


def _is_task_dir(path: Path) -> bool:
    return path.is_dir() and path.name.isdigit()


def _is_log_file(path: Path) -> bool:
    return path.is_file() and path.suffix == ".json" and path.stem.isdigit()


def next_id(scope: Path, is_candidate: Callable[[Path], bool], parse: Callable[[Path], int]) -> int:
    """One past the highest numeric identifier among ``scope``'s children.

    There is no persisted counter, so deleting the highest-numbered sibling
    frees its number for the next save.
    """
    ids = [parse(p) for p in _iter_dir(scope) if is_candidate(p)]
    return max(ids, default=STARTING_ID - 1) + 1


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class Store:
    """Reads and writes projects, tasks and logs under a root directory."""

    def __init__(self, root: str | Path):
        root = Path(root).expanduser()
        ensure_dir(root)
        self.root = root.resolve()

    # -- paths --------------------------------------------------------------

    def state_path(self) -> Path:
        return self.root / STATE_FILE

    def config_path(self) -> Path:
        return self.root / CONFIG_FILE

    def project_path(self, project_id: str) -> Path:
        return self.root / project_id

    def project_meta_path(self, project_id: str) -> Path:
        return self.project_path(project_id) / PROJECT_FILE

    def tasks_path(self, project_id: str) -> Path:
        return self.project_path(project_id) / TASKS_DIR

    def task_path(self, project_id: str, task_id: int) -> Path:
        return self.tasks_path(project_id) / f"{task_id:04d}"

    def task_meta_path(self, project_id: str, task_id: int) -> Path:
        return self.task_path(project_id, task_id) / TASK_FILE

    def logs_path(self, project_id: str, task_id: int | None) -> Path:
        if task_id is None:
            return self.project_path(project_id) / LOGS_DIR
        return self.task_path(project_id, task_id)

    def log_path(self, project_id: str, task_id: int | None, log_id: int) -> Path:
        return self.logs_path(project_id, task_id) / f"{log_id:05d}.json"

    # -- singletons ---------------------------------------------------------

    def state(self) -> State:
        """Current time tracking state; created empty on first use."""
        path = self.state_path()
        if not path.is_file():
            state = State()
            save_document(path, state.to_dict())
            return state
        return load_document(path, State.from_dict)

    def save_state(self, state: State) -> None:
        save_document(self.state_path(), state.to_dict())

    def config(self) -> Config:
        """Global configuration; created with defaults on first use."""
        path = self.config_path()
        if not path.is_file():
            config = Config()
            save_document(path, config.to_dict())
            return config
        return load_document(path, Config.from_dict)

    def save_config(self, config: Config) -> None:
        save_document(self.config_path(), config.to_dict())

    # -- projects -----------------------------------------------------------

    def project(self, project_id: str) -> Project:
        """Load a project by slug (or by a name that slugifies to it)."""
        slug = slugify(project_id)
        path = self.project_meta_path(slug)
        if not path.is_file():
            raise ProjectNotFoundError(project_id)
        return load_document(path, lambda d: Project.from_dict(slug, d))

    def save_project(self, project: Project) -> Project:
        save_document(self.project_meta_path(project.id), project.to_dict())
        return project

    def remove_project(self, project_id: str) -> None:
        """Delete a project with all of its tasks and logs."""
        path = self.project_path(project_id)
        if not path.is_dir():
            raise ProjectNotFoundError(project_id)
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise StorageIOError("remove", path, e) from e
        logger.debug("Removed directory: %s", path)

    def rename_project(self, old_id: str, project: Project) -> Project:
        """Move ``old_id``'s subtree to ``project.id`` and re-save its metadata."""
        old_path = self.project_path(old_id)
        if not old_path.is_dir():
            raise ProjectNotFoundError(old_id)
        new_path = self.project_path(project.id)
        if new_path.exists():
            raise ProjectAlreadyExistsError(project.id)
        try:
            old_path.rename(new_path)
        except OSError as e:
            raise StorageIOError("rename", old_path, e) from e
        logger.debug("Renamed directory %s to %s", old_path, new_path)
        return self.save_project(project)

    def projects(
        self,
        filter_spec: FilterSpec[ProjectFilter] | None = None,
        now: datetime | None = None,
    ) -> list[Project]:
        """All projects matching ``filter_spec``."""
        filter_spec = filter_spec or FilterSpec.passthrough(ProjectFilter)
        now = now or now_local()
        logger.debug("Filtering projects by spec: %s", filter_spec)
        projects = []
        for path in _iter_dir(self.root):
            if not path.is_dir() or not (path / PROJECT_FILE).is_file():
                continue
            project = load_document(path / PROJECT_FILE, functools.partial(Project.from_dict, path.name))
            if filter_spec.matches(project, now):
                logger.debug("Project matches filter spec: %s", project.id)
                projects.append(project)
            else:
                logger.debug("Project does not match filter spec, skipping: %s", project.id)
        return projects

    # -- tasks --------------------------------------------------------------

    def task(self, project_id: str, task_id: int) -> Task:
        path = self.task_meta_path(project_id, task_id)
        if not path.is_file():
            raise TaskNotFoundError(project_id, task_id)
        return load_document(path, lambda d: Task.from_dict(project_id, task_id, d))

    def next_task_id(self, project_id: str) -> int:
        return next_id(self.tasks_path(project_id), _is_task_dir, task_id_from_path)

    def save_task(self, task: Task) -> Task:
        """Create or update a task.

        The state is validated against the project's own state config, or
        the global one, and defaults to the initial state. Tasks without an
        ID get the next free one in their project.
        """
        project = self.project(task.project_id)
        states = project.states_config(self.config().task_state_config)
        state = states.validate_or_initial(task.state)
        task_id = task.id if task.id is not None else self.next_task_id(project.id)
        saved = Task(
            project_id=project.id,
            description=task.description,
            id=task_id,
            priority=task.priority,
            state=state,
            deadline=task.deadline,
            tags=set(task.tags),
        )
        save_document(self.task_meta_path(project.id, task_id), saved.to_dict())
        return saved

    def project_tasks(
        self,
        project_id: str,
        filter_spec: FilterSpec[TaskFilter] | None = None,
        now: datetime | None = None,
    ) -> list[Task]:
        """Tasks of one project matching ``filter_spec``.

        Directories whose names are not task numbers are skipped.
        """
        filter_spec = filter_spec or FilterSpec.passthrough(TaskFilter)
        now = now or now_local()
        tasks = []
        for path in _iter_dir(self.tasks_path(project_id)):
            if not _is_task_dir(path) or not (path / TASK_FILE).is_file():
                continue
            task = self.task(project_id, task_id_from_path(path))
            if filter_spec.matches(task, now):
                logger.debug("Task matches filter spec: %s/%s", project_id, task.id)
                tasks.append(task)
            else:
                logger.debug("Task does not match filter spec: %s/%s", project_id, task.id)
        return tasks

    def tasks(
        self,
        project_filter: FilterSpec[ProjectFilter] | None = None,
        task_filter: FilterSpec[TaskFilter] | None = None,
        now: datetime | None = None,
    ) -> list[Task]:
        """Tasks matching ``task_filter`` within projects matching ``project_filter``.

        Tasks of projects that do not match are never read.
        """
        now = now or now_local()
        tasks = []
        for project in self.projects(project_filter, now):
            tasks.extend(self.project_tasks(project.id, task_filter, now))
        return tasks

    # -- logs ---------------------------------------------------------------

    def log(self, project_id: str, task_id: int | None, log_id: int) -> Log:
        path = self.log_path(project_id, task_id, log_id)
        if not path.is_file():
            raise LogNotFoundError(project_id, task_id, log_id)
        return load_document(path, lambda d: Log.from_dict(project_id, task_id, log_id, d))

    def next_log_id(self, project_id: str, task_id: int | None) -> int:
        return next_id(self.logs_path(project_id, task_id), _is_log_file, log_id_from_path)

    def save_log(self, log: Log) -> Log:
        """Create or update a log, assigning the next free ID if it has none."""
        if not self.project_path(log.project_id).is_dir():
            raise ProjectNotFoundError(log.project_id)
        if log.task_id is not None and not self.task_path(log.project_id, log.task_id).is_dir():
            raise TaskNotFoundError(log.project_id, log.task_id)
        log_id = log.id if log.id is not None else self.next_log_id(log.project_id, log.task_id)
        saved = Log(
            project_id=log.project_id,
            task_id=log.task_id,
            id=log_id,
            start=log.start,
            duration=log.duration,
            comment=log.comment,
            tags=set(log.tags),
        )
        save_document(self.log_path(log.project_id, log.task_id, log_id), saved.to_dict())
        return saved

    def delete_log(self, project_id: str, task_id: int | None, log_id: int) -> None:
        path = self.log_path(project_id, task_id, log_id)
        if not path.is_file():
            raise LogNotFoundError(project_id, task_id, log_id)
        try:
            path.unlink()
        except OSError as e:
            raise StorageIOError("remove", path, e) from e
        logger.debug("Removed file: %s", path)

    def scope_logs(
        self,
        project_id: str,
        task_id: int | None,
        filter_spec: FilterSpec[LogFilter] | None = None,
        now: datetime | None = None,
    ) -> list[Log]:
        """Logs held directly by a project (``task_id`` None) or by one task."""
        filter_spec = filter_spec or FilterSpec.passthrough(LogFilter)
        now = now or now_local()
        logs = []
        for path in _iter_dir(self.logs_path(project_id, task_id)):
            if not _is_log_file(path):
                continue
            log = self.log(project_id, task_id, log_id_from_path(path))
            if filter_spec.matches(log, now):
                logs.append(log)
        return logs

    def logs(
        self,
        project_filter: FilterSpec[ProjectFilter] | None = None,
        task_filter: FilterSpec[TaskFilter] | None = None,
        log_filter: FilterSpec[LogFilter] | None = None,
        now: datetime | None = None,
    ) -> list[Log]:
        """Logs from matching projects and from matching tasks, concatenated.

        When ``task_filter`` constrains anything and ``log_filter`` names no
        task IDs, logs must also belong to a task, so that project-level logs
        do not slip past the task filter.
        """
        now = now or now_local()
        task_filter = task_filter or FilterSpec.passthrough(TaskFilter)
        log_filter = log_filter or FilterSpec.passthrough(LogFilter)
        if not task_filter.is_passthrough and not log_filter.has(LogFilterKind.TASKS):
            log_filter = log_filter.and_then(LogFilter.has_task())
            logger.debug("Task filter active; restricting logs to those with a task")

        projects = self.projects(project_filter, now)
        logs = []
        for project in projects:
            logs.extend(self.scope_logs(project.id, None, log_filter, now))
        for project in projects:
            for task in self.project_tasks(project.id, task_filter, now):
                logs.extend(self.scope_logs(project.id, task.id, log_filter, now))
        return logs

    def active_log(self) -> Log | None:
        ref = self.state().active_log
        if ref is None:
            return None
        return self.log(*ref)

    def set_active_log(self, ref: LogRef | None) -> State:
        state = State(active_log=ref)
        self.save_state(state)
        return state
