"""Exception types raised by the store, the query engine and the parsers."""

from __future__ import annotations

from pathlib import Path


class LoiterError(Exception):
    """Base class for every error raised by loiter."""


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class NotFoundError(LoiterError):
    pass


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f'project "{project_id}" not found')


class TaskNotFoundError(NotFoundError):
    def __init__(self, project_id: str, task_id: int):
        self.project_id = project_id
        self.task_id = task_id
        super().__init__(f'task for project "{project_id}" with ID {task_id} does not exist')


class LogNotFoundError(NotFoundError):
    def __init__(self, project_id: str, task_id: int | None, log_id: int):
        self.project_id = project_id
        self.task_id = task_id
        self.log_id = log_id
        task_part = f", task ID {task_id}," if task_id is not None else ""
        super().__init__(f'log for project "{project_id}"{task_part} with ID {log_id} does not exist')


class AlreadyExistsError(LoiterError):
    pass


class ProjectAlreadyExistsError(AlreadyExistsError):
    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f'project "{project_id}" already exists')


# ---------------------------------------------------------------------------
# Documents and identifiers
# ---------------------------------------------------------------------------


class CorruptDocumentError(LoiterError):
    """A JSON document exists but could not be decoded.

    The raw file content is kept on the exception so it can be shown to the
    user.
    """

    def __init__(self, path: Path, raw: str, reason: str):
        self.path = path
        self.raw = raw
        self.reason = reason
        super().__init__(f"failed to decode {path}: {reason}\n{raw}")


class InvalidIdentifierError(LoiterError):
    def __init__(self, value: str, detail: str = ""):
        self.value = value
        message = f'invalid identifier "{value}"'
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class StorageIOError(LoiterError):
    """Wraps an OSError raised while touching the storage directory."""

    def __init__(self, action: str, path: Path, cause: OSError):
        self.action = action
        self.path = path
        super().__init__(f"I/O failure while trying to {action} {path}: {cause}")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class InvalidStateError(LoiterError):
    def __init__(self, state: str, allowed: list[str]):
        self.state = state
        self.allowed = list(allowed)
        super().__init__(f'invalid task state: "{state}" (supported values: {", ".join(allowed)})')


class TaskStateConfigError(LoiterError):
    pass


class InvalidTagError(LoiterError):
    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"tag contains invalid characters (can only be alphanumeric, '-' or '_'): \"{tag}\"")


class InvalidPriorityError(LoiterError):
    def __init__(self, priority: int, lowest: int, highest: int):
        self.priority = priority
        super().__init__(f"invalid task priority {priority} (must be between {lowest} and {highest})")


class LogTimingError(LoiterError):
    pass


class NoActiveLogError(LoiterError):
    def __init__(self) -> None:
        super().__init__("there is currently no active log")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class InvalidTimestampError(LoiterError):
    def __init__(self, text: str):
        self.text = text
        super().__init__(f"invalid date/time: {text}")


class InvalidDurationError(LoiterError):
    pass


class InvalidFilterError(LoiterError):
    pass


class InvalidSortError(LoiterError):
    pass


class UnrecognizedFieldError(InvalidSortError):
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"unrecognized {kind} field: {name}")
