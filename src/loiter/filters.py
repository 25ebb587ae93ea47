"""Composable predicates over projects, tasks and logs.

Every filter exposes ``matches(item, now)``. ``now`` is always passed in so
that evaluation never reads the clock itself. A ``FilterSpec`` ANDs a list of
filters of one type together.
"""

from __future__ import annotations

import enum
import operator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Generic, Iterable, TypeVar

from loiter import timeparse
from loiter.errors import InvalidFilterError
from loiter.models import Log, Project, Task, parse_comma_separated, validate_tag


def _tag_set(tags: Iterable[str]) -> frozenset[str]:
    return frozenset(validate_tag(t) for t in tags)


def _shares_tag(item_tags: set[str], wanted: frozenset[str]) -> bool:
    return not wanted.isdisjoint(item_tags)


# ---------------------------------------------------------------------------
# Timestamp filters
# ---------------------------------------------------------------------------


class TimestampFilterKind(enum.StrEnum):
    TODAY = "today"
    TOMORROW = "tomorrow"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this-week"
    DAYS = "days"
    THIS_MONTH = "this-month"
    THIS_YEAR = "this-year"
    STARTING = "starting"
    BEFORE = "before"


_TIMESTAMP_KEYWORDS = {
    "today": TimestampFilterKind.TODAY,
    "tomorrow": TimestampFilterKind.TOMORROW,
    "tmrw": TimestampFilterKind.TOMORROW,
    "yesterday": TimestampFilterKind.YESTERDAY,
    "yst": TimestampFilterKind.YESTERDAY,
    "week": TimestampFilterKind.THIS_WEEK,
    "this-week": TimestampFilterKind.THIS_WEEK,
    "month": TimestampFilterKind.THIS_MONTH,
    "this-month": TimestampFilterKind.THIS_MONTH,
    "year": TimestampFilterKind.THIS_YEAR,
    "this-year": TimestampFilterKind.THIS_YEAR,
}

MAX_FILTER_DAYS = 65535

_STARTING_WORDS = {"from", "starting", "start"}
_BEFORE_WORDS = {"to", "before", "ending"}


@dataclass(frozen=True)
class TimestampFilter:
    """A human-friendly time window, resolved against ``now`` when matched.

    ``value`` holds the day count for ``DAYS`` and the boundary timestamp for
    ``STARTING``/``BEFORE``.
    """

    kind: TimestampFilterKind
    value: int | datetime | None = None

    @classmethod
    def today(cls) -> TimestampFilter:
        return cls(TimestampFilterKind.TODAY)

    @classmethod
    def tomorrow(cls) -> TimestampFilter:
        return cls(TimestampFilterKind.TOMORROW)

    @classmethod
    def yesterday(cls) -> TimestampFilter:
        return cls(TimestampFilterKind.YESTERDAY)

    @classmethod
    def this_week(cls) -> TimestampFilter:
        return cls(TimestampFilterKind.THIS_WEEK)

    @classmethod
    def days(cls, n: int) -> TimestampFilter:
        if not 0 <= n <= MAX_FILTER_DAYS:
            raise InvalidFilterError(f"day count must be between 0 and {MAX_FILTER_DAYS}, got {n}")
        return cls(TimestampFilterKind.DAYS, n)

    @classmethod
    def this_month(cls) -> TimestampFilter:
        return cls(TimestampFilterKind.THIS_MONTH)

    @classmethod
    def this_year(cls) -> TimestampFilter:
        return cls(TimestampFilterKind.THIS_YEAR)

    @classmethod
    def starting(cls, ts: datetime) -> TimestampFilter:
        return cls(TimestampFilterKind.STARTING, ts)

    @classmethod
    def before(cls, ts: datetime) -> TimestampFilter:
        return cls(TimestampFilterKind.BEFORE, ts)

    def bounds(self, now: datetime) -> tuple[datetime | None, datetime | None]:
        """Half-open ``[lower, upper)`` interval; ``None`` means unbounded."""
        kind = self.kind
        if kind is TimestampFilterKind.TODAY:
            return timeparse.start_of_day(now), timeparse.start_of_tomorrow(now)
        if kind is TimestampFilterKind.TOMORROW:
            return timeparse.start_of_tomorrow(now), timeparse.days_forward(now, 2)
        if kind is TimestampFilterKind.YESTERDAY:
            return timeparse.start_of_yesterday(now), timeparse.start_of_day(now)
        if kind is TimestampFilterKind.THIS_WEEK:
            return timeparse.start_of_week(now), timeparse.start_of_next_week(now)
        if kind is TimestampFilterKind.DAYS:
            return now - timedelta(days=self.value), now
        if kind is TimestampFilterKind.THIS_MONTH:
            return timeparse.start_of_month(now), timeparse.start_of_next_month(now)
        if kind is TimestampFilterKind.THIS_YEAR:
            return timeparse.start_of_year(now), timeparse.start_of_next_year(now)
        if kind is TimestampFilterKind.STARTING:
            return self.value, None
        return None, self.value

    def matches(self, ts: datetime | None, now: datetime) -> bool:
        if ts is None:
            return False
        lower, upper = self.bounds(now)
        if lower is not None and ts < lower:
            return False
        if upper is not None and ts >= upper:
            return False
        return True

    @classmethod
    def parse(cls, text: str, now: datetime) -> TimestampFilter:
        """Parse ``today``, ``week``, ``3 days``, ``from 2021-11-01 09:00`` etc."""
        cleaned = text.strip().lower()
        if cleaned in _TIMESTAMP_KEYWORDS:
            return cls(_TIMESTAMP_KEYWORDS[cleaned])

        parts = cleaned.split()
        if len(parts) < 2:
            raise InvalidFilterError(f'invalid timestamp filter: "{text}"')
        if parts[1] == "days" and len(parts) == 2:
            if not parts[0].isdigit():
                raise InvalidFilterError(f'invalid number of days in timestamp filter: "{text}"')
            return cls.days(int(parts[0]))
        rest = " ".join(parts[1:])
        if parts[0] in _STARTING_WORDS:
            return cls.starting(timeparse.parse_timestamp(rest, now))
        if parts[0] in _BEFORE_WORDS:
            return cls.before(timeparse.parse_timestamp(rest, now))
        raise InvalidFilterError(f'invalid timestamp filter: "{text}"')


# ---------------------------------------------------------------------------
# Duration filters
# ---------------------------------------------------------------------------


class DurationOp(enum.StrEnum):
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    EQ = "="


_DURATION_OPS = {
    DurationOp.LT: operator.lt,
    DurationOp.LE: operator.le,
    DurationOp.GT: operator.gt,
    DurationOp.GE: operator.ge,
    DurationOp.EQ: operator.eq,
}


@dataclass(frozen=True)
class DurationFilter:
    op: DurationOp
    duration: timedelta

    def matches(self, duration: timedelta | None) -> bool:
        if duration is None:
            return False
        return _DURATION_OPS[self.op](duration, self.duration)

    @classmethod
    def parse(cls, text: str) -> DurationFilter:
        """Parse ``< 1h``, ``>=30m``, ``2h`` (equality) and so on."""
        text = text.strip()
        idx = next((i for i, c in enumerate(text) if c.isdigit()), None)
        if idx is None:
            raise InvalidFilterError(f'invalid duration filter: "{text}"')
        op_text = text[:idx].strip()
        if op_text in ("", "=="):
            op_text = "="
        try:
            op = DurationOp(op_text)
        except ValueError:
            raise InvalidFilterError(f'invalid duration filter operator "{op_text}" in filter: "{text}"') from None
        return cls(op, timeparse.parse_duration(text[idx:]))


# ---------------------------------------------------------------------------
# Entity filters
# ---------------------------------------------------------------------------


class ProjectFilterKind(enum.StrEnum):
    ALL = "all"
    IDS = "ids"
    DEADLINE = "deadline"
    TAGS = "tags"


@dataclass(frozen=True)
class ProjectFilter:
    kind: ProjectFilterKind = ProjectFilterKind.ALL
    value: Any = None

    @classmethod
    def all(cls) -> ProjectFilter:
        return cls()

    @classmethod
    def ids(cls, project_ids: Iterable[str]) -> ProjectFilter:
        return cls(ProjectFilterKind.IDS, frozenset(project_ids))

    @classmethod
    def deadline(cls, ts_filter: TimestampFilter) -> ProjectFilter:
        return cls(ProjectFilterKind.DEADLINE, ts_filter)

    @classmethod
    def tags(cls, tags: Iterable[str]) -> ProjectFilter:
        return cls(ProjectFilterKind.TAGS, _tag_set(tags))

    def matches(self, project: Project, now: datetime) -> bool:
        kind = self.kind
        if kind is ProjectFilterKind.ALL:
            return True
        if kind is ProjectFilterKind.IDS:
            return project.id in self.value
        if kind is ProjectFilterKind.DEADLINE:
            return self.value.matches(project.deadline, now)
        return _shares_tag(project.tags, self.value)


class TaskFilterKind(enum.StrEnum):
    ALL = "all"
    PROJECT = "project"
    IDS = "ids"
    PRIORITY = "priority"
    STATE = "state"
    STATE_NOT = "state-not"
    DEADLINE = "deadline"
    TAGS = "tags"


@dataclass(frozen=True)
class TaskFilter:
    kind: TaskFilterKind = TaskFilterKind.ALL
    value: Any = None

    @classmethod
    def all(cls) -> TaskFilter:
        return cls()

    @classmethod
    def project(cls, project_id: str) -> TaskFilter:
        return cls(TaskFilterKind.PROJECT, project_id)

    @classmethod
    def ids(cls, task_ids: Iterable[int]) -> TaskFilter:
        return cls(TaskFilterKind.IDS, frozenset(task_ids))

    @classmethod
    def priorities(cls, priorities: Iterable[int]) -> TaskFilter:
        return cls(TaskFilterKind.PRIORITY, frozenset(priorities))

    @classmethod
    def states(cls, states: Iterable[str]) -> TaskFilter:
        return cls(TaskFilterKind.STATE, frozenset(states))

    @classmethod
    def state_not(cls, state: str) -> TaskFilter:
        # Excludes one state; not the complement of ``states`` over the config.
        return cls(TaskFilterKind.STATE_NOT, state)

    @classmethod
    def deadline(cls, ts_filter: TimestampFilter) -> TaskFilter:
        return cls(TaskFilterKind.DEADLINE, ts_filter)

    @classmethod
    def tags(cls, tags: Iterable[str]) -> TaskFilter:
        return cls(TaskFilterKind.TAGS, _tag_set(tags))

    def matches(self, task: Task, now: datetime) -> bool:
        kind = self.kind
        if kind is TaskFilterKind.ALL:
            return True
        if kind is TaskFilterKind.PROJECT:
            return task.project_id == self.value
        if kind is TaskFilterKind.IDS:
            return task.id in self.value
        if kind is TaskFilterKind.PRIORITY:
            return task.effective_priority in self.value
        if kind is TaskFilterKind.STATE:
            return task.state in self.value
        if kind is TaskFilterKind.STATE_NOT:
            return task.state != self.value
        if kind is TaskFilterKind.DEADLINE:
            return self.value.matches(task.deadline, now)
        return _shares_tag(task.tags, self.value)


class LogFilterKind(enum.StrEnum):
    ALL = "all"
    PROJECT = "project"
    HAS_TASK = "has-task"
    TASKS = "tasks"
    START = "start"
    DURATION = "duration"
    TAGS = "tags"


@dataclass(frozen=True)
class LogFilter:
    kind: LogFilterKind = LogFilterKind.ALL
    value: Any = None

    @classmethod
    def all(cls) -> LogFilter:
        return cls()

    @classmethod
    def project(cls, project_id: str) -> LogFilter:
        return cls(LogFilterKind.PROJECT, project_id)

    @classmethod
    def has_task(cls) -> LogFilter:
        return cls(LogFilterKind.HAS_TASK)

    @classmethod
    def tasks(cls, task_ids: Iterable[int]) -> LogFilter:
        return cls(LogFilterKind.TASKS, frozenset(task_ids))

    @classmethod
    def start(cls, ts_filter: TimestampFilter) -> LogFilter:
        return cls(LogFilterKind.START, ts_filter)

    @classmethod
    def duration(cls, dur_filter: DurationFilter) -> LogFilter:
        return cls(LogFilterKind.DURATION, dur_filter)

    @classmethod
    def tags(cls, tags: Iterable[str]) -> LogFilter:
        return cls(LogFilterKind.TAGS, _tag_set(tags))

    def matches(self, log: Log, now: datetime) -> bool:
        kind = self.kind
        if kind is LogFilterKind.ALL:
            return True
        if kind is LogFilterKind.PROJECT:
            return log.project_id == self.value
        if kind is LogFilterKind.HAS_TASK:
            return log.task_id is not None
        if kind is LogFilterKind.TASKS:
            return log.task_id is not None and log.task_id in self.value
        if kind is LogFilterKind.START:
            return self.value.matches(log.start, now)
        if kind is LogFilterKind.DURATION:
            return self.value.matches(log.duration)
        return _shares_tag(log.tags, self.value)


# ---------------------------------------------------------------------------
# Specifications
# ---------------------------------------------------------------------------

F = TypeVar("F", ProjectFilter, TaskFilter, LogFilter)


@dataclass(frozen=True)
class FilterSpec(Generic[F]):
    """AND-combination of filters over a single entity type.

    A spec made only of the type's default ("all") filter is a passthrough;
    appending a real filter to it replaces the sentinel instead of adding a
    no-op clause.
    """

    filters: tuple[F, ...]

    def __post_init__(self) -> None:
        if not self.filters:
            raise InvalidFilterError("a filter specification needs at least one filter")

    @classmethod
    def new(cls, f: F) -> FilterSpec[F]:
        return cls((f,))

    @classmethod
    def passthrough(cls, filter_type: type[F]) -> FilterSpec[F]:
        return cls((filter_type(),))

    def and_then(self, f: F) -> FilterSpec[F]:
        if self.is_passthrough:
            return FilterSpec((f,))
        return FilterSpec(self.filters + (f,))

    @property
    def is_passthrough(self) -> bool:
        return all(f == type(f)() for f in self.filters)

    def has(self, kind: enum.Enum) -> bool:
        return any(f.kind is kind for f in self.filters)

    def matches(self, item: Any, now: datetime) -> bool:
        return all(f.matches(item, now) for f in self.filters)


# ---------------------------------------------------------------------------
# Building specs from text
# ---------------------------------------------------------------------------


def build_project_filter(
    project_ids: str | None = None,
    deadline: str | None = None,
    tags: str | None = None,
    *,
    now: datetime,
) -> FilterSpec[ProjectFilter]:
    spec = FilterSpec.passthrough(ProjectFilter)
    if project_ids:
        spec = spec.and_then(ProjectFilter.ids(parse_comma_separated(project_ids)))
    if deadline:
        spec = spec.and_then(ProjectFilter.deadline(TimestampFilter.parse(deadline, now)))
    if tags:
        spec = spec.and_then(ProjectFilter.tags(parse_comma_separated(tags)))
    return spec


def build_task_filter(
    states: str | None = None,
    deadline: str | None = None,
    tags: str | None = None,
    *,
    now: datetime,
    task_ids: Iterable[int] | None = None,
    priorities: Iterable[int] | None = None,
    state_not: str | None = None,
) -> FilterSpec[TaskFilter]:
    spec = FilterSpec.passthrough(TaskFilter)
    if task_ids:
        spec = spec.and_then(TaskFilter.ids(task_ids))
    if priorities:
        spec = spec.and_then(TaskFilter.priorities(priorities))
    if states:
        spec = spec.and_then(TaskFilter.states(parse_comma_separated(states)))
    if state_not:
        spec = spec.and_then(TaskFilter.state_not(state_not))
    if deadline:
        spec = spec.and_then(TaskFilter.deadline(TimestampFilter.parse(deadline, now)))
    if tags:
        spec = spec.and_then(TaskFilter.tags(parse_comma_separated(tags)))
    return spec


def build_log_filter(
    start: str | None = None,
    duration: str | None = None,
    tags: str | None = None,
    *,
    now: datetime,
    task_ids: Iterable[int] | None = None,
) -> FilterSpec[LogFilter]:
    spec = FilterSpec.passthrough(LogFilter)
    if task_ids:
        spec = spec.and_then(LogFilter.tasks(task_ids))
    if start:
        spec = spec.and_then(LogFilter.start(TimestampFilter.parse(start, now)))
    if duration:
        spec = spec.and_then(LogFilter.duration(DurationFilter.parse(duration)))
    if tags:
        spec = spec.and_then(LogFilter.tags(parse_comma_separated(tags)))
    return spec
