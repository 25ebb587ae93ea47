"""Project, task and log models plus the two singleton documents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, NamedTuple

from loiter.errors import (
    InvalidIdentifierError,
    InvalidPriorityError,
    InvalidStateError,
    InvalidTagError,
    LogTimingError,
    TaskStateConfigError,
)
from loiter.timeparse import (
    format_duration,
    parse_duration,
    timestamp_from_json,
    timestamp_to_json,
)

MIN_TASK_STATES = 3

DEFAULT_INITIAL_TASK_STATE = "inbox"
DEFAULT_IN_PROGRESS_TASK_STATE = "doing"
DEFAULT_DONE_TASK_STATE = "done"
DEFAULT_TASK_STATES = (
    DEFAULT_INITIAL_TASK_STATE,
    "todo",
    "blocked",
    DEFAULT_IN_PROGRESS_TASK_STATE,
    DEFAULT_DONE_TASK_STATE,
)

# Lower values mean higher priority.
MIN_TASK_PRIORITY = 1
MAX_TASK_PRIORITY = 10
DEFAULT_TASK_PRIORITY = MAX_TASK_PRIORITY

_TAG_RE = re.compile(r"^[a-z0-9_-]*$")


def slugify(name: str) -> str:
    """Filesystem-safe project identifier derived from a human name."""
    kept = []
    for c in name.lower():
        if "a" <= c <= "z" or "0" <= c <= "9":
            kept.append(c)
        elif c in " -_":
            kept.append("-")
    return re.sub(r"-+", "-", "".join(kept)).strip("-")


def validate_tag(tag: str) -> str:
    tag = tag.lower()
    if not _TAG_RE.match(tag):
        raise InvalidTagError(tag)
    return tag


def validate_tags(tags: Iterable[str]) -> set[str]:
    return {validate_tag(t) for t in tags}


def parse_comma_separated(text: str | None) -> list[str]:
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def parse_id_list(text: str) -> list[int]:
    """Parse ``"1,2, 3"`` into integer identifiers."""
    ids = []
    for part in parse_comma_separated(text):
        if not part.isdigit():
            raise InvalidIdentifierError(part, f"in {text!r}")
        ids.append(int(part))
    return ids


# ---------------------------------------------------------------------------
# Configuration and global state
# ---------------------------------------------------------------------------


@dataclass
class TaskStateConfig:
    """Ordered set of valid task states with three designated states."""

    states: list[str] = field(default_factory=lambda: list(DEFAULT_TASK_STATES))
    initial: str = DEFAULT_INITIAL_TASK_STATE
    in_progress: str = DEFAULT_IN_PROGRESS_TASK_STATE
    done: str = DEFAULT_DONE_TASK_STATE

    def __post_init__(self) -> None:
        if len(self.states) < MIN_TASK_STATES:
            raise TaskStateConfigError(
                f"too few task states ({len(self.states)}) - there must be at least {MIN_TASK_STATES}"
            )
        if len(set(self.states)) != len(self.states):
            raise TaskStateConfigError(
                f'task states must be unique; duplicate found in "{", ".join(self.states)}"'
            )
        for state in (self.initial, self.in_progress, self.done):
            if state not in self.states:
                raise TaskStateConfigError(
                    f'designated state "{state}" is not one of: {", ".join(self.states)}'
                )

    def validate_or_initial(self, state: str | None) -> str:
        """Return ``state`` if allowed, or the initial state when it is None."""
        if state is None:
            return self.initial
        if state not in self.states:
            raise InvalidStateError(state, self.states)
        return state

    def to_dict(self) -> dict:
        return {
            "states": list(self.states),
            "initial": self.initial,
            "in_progress": self.in_progress,
            "done": self.done,
        }

    @classmethod
    def from_dict(cls, d: dict) -> TaskStateConfig:
        return cls(
            states=list(d["states"]),
            initial=d["initial"],
            in_progress=d["in_progress"],
            done=d["done"],
        )


@dataclass
class Config:
    """Process-wide settings stored in ``config.json``."""

    task_state_config: TaskStateConfig = field(default_factory=TaskStateConfig)

    def to_dict(self) -> dict:
        return {"task_state_config": self.task_state_config.to_dict()}

    @classmethod
    def from_dict(cls, d: dict) -> Config:
        return cls(task_state_config=TaskStateConfig.from_dict(d["task_state_config"]))


class LogRef(NamedTuple):
    project_id: str
    task_id: int | None
    log_id: int


@dataclass
class State:
    """The active-log pointer stored in ``state.json``."""

    active_log: LogRef | None = None

    def to_dict(self) -> dict:
        return {"active_log": list(self.active_log) if self.active_log else None}

    @classmethod
    def from_dict(cls, d: dict) -> State:
        raw = d.get("active_log")
        if raw is None:
            return cls()
        project_id, task_id, log_id = raw
        return cls(active_log=LogRef(str(project_id), task_id, int(log_id)))


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@dataclass
class Project:
    """Groups tasks and logs. Its id is the slug of its name."""

    name: str
    description: str | None = None
    deadline: datetime | None = None
    tags: set[str] = field(default_factory=set)
    task_state_config: TaskStateConfig | None = None
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = slugify(self.name)
        if not self.id:
            raise InvalidIdentifierError(self.name, "project names need at least one letter or digit")
        self.tags = validate_tags(self.tags)

    def renamed(self, name: str) -> Project:
        return replace(self, name=name, id=slugify(name))

    def states_config(self, default: TaskStateConfig) -> TaskStateConfig:
        return self.task_state_config or default

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "deadline": timestamp_to_json(self.deadline),
            "tags": sorted(self.tags),
            "task_state_config": self.task_state_config.to_dict() if self.task_state_config else None,
        }

    @classmethod
    def from_dict(cls, project_id: str, d: dict) -> Project:
        tsc = d.get("task_state_config")
        return cls(
            id=project_id,
            name=d["name"],
            description=d.get("description"),
            deadline=timestamp_from_json(d.get("deadline")),
            tags=set(d.get("tags", [])),
            task_state_config=TaskStateConfig.from_dict(tsc) if tsc else None,
        )


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@dataclass
class Task:
    """A unit of work within a project, identified by (project_id, id)."""

    project_id: str
    description: str
    id: int | None = None
    priority: int | None = None
    state: str | None = None
    deadline: datetime | None = None
    tags: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.priority is not None and not MIN_TASK_PRIORITY <= self.priority <= MAX_TASK_PRIORITY:
            raise InvalidPriorityError(self.priority, MIN_TASK_PRIORITY, MAX_TASK_PRIORITY)
        self.tags = validate_tags(self.tags)

    @property
    def effective_priority(self) -> int:
        return self.priority if self.priority is not None else DEFAULT_TASK_PRIORITY

    def to_dict(self) -> dict:
        return {
            "priority": self.priority,
            "description": self.description,
            "state": self.state,
            "deadline": timestamp_to_json(self.deadline),
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, project_id: str, task_id: int, d: dict) -> Task:
        return cls(
            project_id=project_id,
            id=task_id,
            description=d["description"],
            priority=d.get("priority"),
            state=d.get("state"),
            deadline=timestamp_from_json(d.get("deadline")),
            tags=set(d.get("tags", [])),
        )


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


@dataclass
class Log:
    """Work done (closed) or underway (open) on a project or one of its tasks.

    A log is open while it has a start but no duration. The stop time is
    always derived from start + duration and never stored.
    """

    project_id: str
    task_id: int | None = None
    id: int | None = None
    start: datetime | None = None
    duration: timedelta | None = None
    comment: str | None = None
    tags: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.tags = validate_tags(self.tags)

    @property
    def stop(self) -> datetime | None:
        if self.start is None or self.duration is None:
            return None
        return self.start + self.duration

    @property
    def is_open(self) -> bool:
        return self.start is not None and self.duration is None

    @property
    def ref(self) -> LogRef:
        if self.id is None:
            raise InvalidIdentifierError("<unsaved log>", "log has not been assigned an ID")
        return LogRef(self.project_id, self.task_id, self.id)

    def with_stop(self, stop: datetime) -> Log:
        if self.start is None:
            raise LogTimingError("a log without a start time cannot be stopped")
        if stop < self.start:
            raise LogTimingError("cannot stop a log before it starts")
        elapsed = timedelta(seconds=int((stop - self.start).total_seconds()))
        return replace(self, duration=elapsed)

    def with_duration_or_stop(self, duration: timedelta | None, stop: datetime | None) -> Log:
        if duration is not None and stop is not None:
            raise LogTimingError("cannot accept both duration and stop time - please supply only one of these")
        if duration is not None:
            return replace(self, duration=duration)
        if stop is not None:
            return self.with_stop(stop)
        return self

    def to_dict(self) -> dict:
        return {
            "start": timestamp_to_json(self.start),
            "duration": format_duration(self.duration) if self.duration is not None else None,
            "comment": self.comment,
            "tags": sorted(self.tags),
        }

    @classmethod
    def from_dict(cls, project_id: str, task_id: int | None, log_id: int, d: dict) -> Log:
        duration = d.get("duration")
        return cls(
            project_id=project_id,
            task_id=task_id,
            id=log_id,
            start=timestamp_from_json(d.get("start")),
            duration=parse_duration(duration) if duration is not None else None,
            comment=d.get("comment"),
            tags=set(d.get("tags", [])),
        )
