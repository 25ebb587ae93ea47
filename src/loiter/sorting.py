"""Multi-key ordering of projects, tasks and logs.

A sort specification is an ordered list of ``(field, order)`` pairs written
as ``"priority,deadline:desc,id"``. Fields are compared in sequence and the
first non-equal comparison wins; full ties keep their original order.
"""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from loiter.errors import InvalidSortError, UnrecognizedFieldError
from loiter.models import Log, Project, Task


def _cmp(a: Any, b: Any) -> int:
    # None sorts before any present value.
    if a is None or b is None:
        return (a is not None) - (b is not None)
    return (a > b) - (a < b)


class Order(enum.StrEnum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, text: str) -> Order:
        text = text.strip()
        if text in ("asc", "a"):
            return cls.ASC
        if text in ("desc", "d"):
            return cls.DESC
        raise InvalidSortError(f"unrecognized sort order: {text}")


class ProjectField(enum.StrEnum):
    ID = "id"
    NAME = "name"
    DESCRIPTION = "description"
    DEADLINE = "deadline"

    def compare(self, a: Project, b: Project) -> int:
        return _cmp(_PROJECT_KEYS[self](a), _PROJECT_KEYS[self](b))

    @classmethod
    def parse(cls, text: str) -> ProjectField:
        return _parse_field(cls, "project", text, {"desc": cls.DESCRIPTION})


_PROJECT_KEYS: dict[ProjectField, Callable[[Project], Any]] = {
    ProjectField.ID: lambda p: p.id,
    ProjectField.NAME: lambda p: p.name,
    ProjectField.DESCRIPTION: lambda p: p.description,
    ProjectField.DEADLINE: lambda p: p.deadline,
}


class TaskField(enum.StrEnum):
    ID = "id"
    PROJECT_ID = "project-id"
    DESCRIPTION = "description"
    PRIORITY = "priority"
    STATE = "state"
    DEADLINE = "deadline"

    def compare(self, a: Task, b: Task) -> int:
        return _cmp(_TASK_KEYS[self](a), _TASK_KEYS[self](b))

    @classmethod
    def parse(cls, text: str) -> TaskField:
        aliases = {
            "project_id": cls.PROJECT_ID,
            "project": cls.PROJECT_ID,
            "desc": cls.DESCRIPTION,
        }
        return _parse_field(cls, "task", text, aliases)


_TASK_KEYS: dict[TaskField, Callable[[Task], Any]] = {
    TaskField.ID: lambda t: t.id,
    TaskField.PROJECT_ID: lambda t: t.project_id,
    TaskField.DESCRIPTION: lambda t: t.description,
    TaskField.PRIORITY: lambda t: t.effective_priority,
    TaskField.STATE: lambda t: t.state,
    TaskField.DEADLINE: lambda t: t.deadline,
}


class LogField(enum.StrEnum):
    ID = "id"
    PROJECT_ID = "project-id"
    TASK_ID = "task-id"
    START = "start"
    DURATION = "duration"
    COMMENT = "comment"

    def compare(self, a: Log, b: Log) -> int:
        return _cmp(_LOG_KEYS[self](a), _LOG_KEYS[self](b))

    @classmethod
    def parse(cls, text: str) -> LogField:
        aliases = {
            "project_id": cls.PROJECT_ID,
            "project": cls.PROJECT_ID,
            "task_id": cls.TASK_ID,
            "task": cls.TASK_ID,
        }
        return _parse_field(cls, "work log", text, aliases)


_LOG_KEYS: dict[LogField, Callable[[Log], Any]] = {
    LogField.ID: lambda lg: lg.id,
    LogField.PROJECT_ID: lambda lg: lg.project_id,
    LogField.TASK_ID: lambda lg: lg.task_id,
    LogField.START: lambda lg: lg.start,
    LogField.DURATION: lambda lg: lg.duration,
    LogField.COMMENT: lambda lg: lg.comment,
}


def _parse_field(field_type, kind: str, text: str, aliases: dict):
    name = text.strip()
    if name in aliases:
        return aliases[name]
    try:
        return field_type(name)
    except ValueError:
        raise UnrecognizedFieldError(kind, name) from None


# ---------------------------------------------------------------------------
# Specifications
# ---------------------------------------------------------------------------

C = TypeVar("C", ProjectField, TaskField, LogField)

DEFAULT_SORTS = {
    ProjectField: ((ProjectField.NAME, Order.ASC),),
    TaskField: (
        (TaskField.PRIORITY, Order.ASC),
        (TaskField.PROJECT_ID, Order.ASC),
        (TaskField.ID, Order.ASC),
    ),
    LogField: (
        (LogField.PROJECT_ID, Order.ASC),
        (LogField.TASK_ID, Order.ASC),
        (LogField.ID, Order.ASC),
    ),
}


@dataclass(frozen=True)
class SortSpec(Generic[C]):
    keys: tuple[tuple[C, Order], ...]

    @classmethod
    def new(cls, field: C, order: Order = Order.ASC) -> SortSpec[C]:
        return cls(((field, order),))

    def and_then(self, field: C, order: Order = Order.ASC) -> SortSpec[C]:
        return SortSpec(self.keys + ((field, order),))

    @classmethod
    def default(cls, field_type: type[C]) -> SortSpec[C]:
        return cls(DEFAULT_SORTS[field_type])

    @classmethod
    def parse(cls, text: str, field_type: type[C]) -> SortSpec[C]:
        """Parse ``"name:desc,id"`` into a spec over ``field_type``."""
        keys = []
        for component in text.split(","):
            parts = component.strip().split(":")
            if not parts[0]:
                raise InvalidSortError(f"sort specification cannot have empty components: {text}")
            if len(parts) > 2:
                raise InvalidSortError(
                    f'sort specification "{text}" has too many parts in "{component}" '
                    "(only a single colon is allowed for each field)"
                )
            field = field_type.parse(parts[0])
            order = Order.parse(parts[1]) if len(parts) == 2 else Order.ASC
            keys.append((field, order))
        return cls(tuple(keys))

    def compare(self, a: Any, b: Any) -> int:
        for field, order in self.keys:
            result = field.compare(a, b)
            if result:
                return -result if order is Order.DESC else result
        return 0

    def sort(self, items: list) -> list:
        """Return a new list ordered by this spec (stable)."""
        return sorted(items, key=functools.cmp_to_key(self.compare))

    def __str__(self) -> str:
        rendered = []
        for field, order in self.keys:
            rendered.append(field.value if order is Order.ASC else f"{field.value}:{order.value}")
        return ",".join(rendered)
