from datetime import datetime, timedelta, timezone

import pytest

from loiter.errors import InvalidSortError, UnrecognizedFieldError
from loiter.models import Log, Project, Task
from loiter.sorting import LogField, Order, ProjectField, SortSpec, TaskField

EDT = timezone(timedelta(hours=-4))


def _task(tid, priority=None, project="p", deadline=None, description="d"):
    return Task(project_id=project, description=description, id=tid, priority=priority, deadline=deadline)


def test_default_task_sort():
    tasks = [_task(2, 5, "b"), _task(1, None, "a"), _task(1, 5, "a"), _task(3, 1, "z")]
    ordered = SortSpec.default(TaskField).sort(tasks)
    assert [(t.project_id, t.id) for t in ordered] == [("z", 3), ("a", 1), ("b", 2), ("a", 1)]
    assert ordered[-1].priority is None


def test_sort_is_stable():
    tasks = [_task(1, description="first"), _task(1, description="second"), _task(1, description="third")]
    ordered = SortSpec.new(TaskField.PRIORITY).sort(tasks)
    assert [t.description for t in ordered] == ["first", "second", "third"]


def test_descending_and_none_first():
    early = datetime(2021, 1, 1, tzinfo=EDT)
    late = datetime(2021, 6, 1, tzinfo=EDT)
    tasks = [_task(1, deadline=late), _task(2), _task(3, deadline=early)]

    asc = SortSpec.new(TaskField.DEADLINE).sort(tasks)
    assert [t.id for t in asc] == [2, 3, 1]

    desc = SortSpec.new(TaskField.DEADLINE, Order.DESC).sort(tasks)
    assert [t.id for t in desc] == [1, 3, 2]


def test_first_non_equal_key_wins():
    tasks = [_task(2, 3), _task(1, 3), _task(3, 1)]
    spec = SortSpec.new(TaskField.PRIORITY, Order.DESC).and_then(TaskField.ID)
    assert [t.id for t in spec.sort(tasks)] == [1, 2, 3]


def test_parse_sort_spec():
    spec = SortSpec.parse("deadline:desc, project ,id:a", TaskField)
    assert spec.keys == (
        (TaskField.DEADLINE, Order.DESC),
        (TaskField.PROJECT_ID, Order.ASC),
        (TaskField.ID, Order.ASC),
    )
    assert str(spec) == "deadline:desc,project-id,id"


def test_parse_aliases():
    assert SortSpec.parse("desc", ProjectField).keys == ((ProjectField.DESCRIPTION, Order.ASC),)
    assert SortSpec.parse("task:d", LogField).keys == ((LogField.TASK_ID, Order.DESC),)


def test_parse_unrecognized_field():
    with pytest.raises(UnrecognizedFieldError, match="unrecognized task field: size"):
        SortSpec.parse("size", TaskField)


@pytest.mark.parametrize("text", ["id,,name", "name:asc:desc", "name:up"])
def test_parse_syntax_errors(text):
    with pytest.raises(InvalidSortError):
        SortSpec.parse(text, ProjectField)


def test_project_and_log_fields():
    projects = [Project(name="beta"), Project(name="Alpha"), Project(name="alpha two")]
    assert [p.id for p in SortSpec.default(ProjectField).sort(projects)] == ["alpha", "alpha-two", "beta"]

    start = datetime(2021, 11, 4, 9, 0, tzinfo=EDT)
    logs = [
        Log(project_id="p", id=1, start=start, duration=timedelta(hours=2)),
        Log(project_id="p", id=2, start=start, duration=timedelta(minutes=10)),
    ]
    assert [lg.id for lg in SortSpec.new(LogField.DURATION).sort(logs)] == [2, 1]
