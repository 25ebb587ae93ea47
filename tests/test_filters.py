from datetime import datetime, timedelta, timezone

import pytest

from loiter.errors import InvalidFilterError
from loiter.filters import (
    DurationFilter,
    DurationOp,
    FilterSpec,
    LogFilter,
    LogFilterKind,
    ProjectFilter,
    TaskFilter,
    TimestampFilter,
    TimestampFilterKind,
    build_log_filter,
    build_task_filter,
)
from loiter.models import Log, Project, Task

EDT = timezone(timedelta(hours=-4))
NOW = datetime(2021, 11, 4, 17, 0, tzinfo=EDT)
MIDNIGHT = datetime(2021, 11, 4, 0, 0, tzinfo=EDT)


def test_today_is_half_open():
    today = TimestampFilter.today()
    assert today.matches(MIDNIGHT, NOW)
    assert today.matches(MIDNIGHT + timedelta(hours=23, minutes=59), NOW)
    assert not today.matches(MIDNIGHT + timedelta(days=1), NOW)
    assert not today.matches(MIDNIGHT - timedelta(seconds=1), NOW)


def test_absent_timestamp_never_matches():
    assert not TimestampFilter.today().matches(None, NOW)
    assert not TimestampFilter.before(NOW).matches(None, NOW)


def test_this_week_starts_monday():
    week = TimestampFilter.this_week()
    assert week.matches(datetime(2021, 11, 1, 0, 0, tzinfo=EDT), NOW)
    assert not week.matches(datetime(2021, 10, 31, 23, 59, tzinfo=EDT), NOW)
    assert not week.matches(datetime(2021, 11, 8, 0, 0, tzinfo=EDT), NOW)


def test_days_window_ends_at_now():
    days = TimestampFilter.days(2)
    assert days.matches(NOW - timedelta(days=2), NOW)
    assert not days.matches(NOW - timedelta(days=2, seconds=1), NOW)
    assert not days.matches(NOW, NOW)


def test_starting_and_before():
    assert TimestampFilter.starting(MIDNIGHT).matches(MIDNIGHT, NOW)
    assert not TimestampFilter.before(MIDNIGHT).matches(MIDNIGHT, NOW)


@pytest.mark.parametrize(
    "text, kind, value",
    [
        ("today", TimestampFilterKind.TODAY, None),
        ("TMRW", TimestampFilterKind.TOMORROW, None),
        ("week", TimestampFilterKind.THIS_WEEK, None),
        ("this-year", TimestampFilterKind.THIS_YEAR, None),
        ("3 days", TimestampFilterKind.DAYS, 3),
        ("from yesterday@10:00", TimestampFilterKind.STARTING, datetime(2021, 11, 3, 10, 0, tzinfo=EDT)),
        ("before 2021-11-01 08:00", TimestampFilterKind.BEFORE, datetime(2021, 11, 1, 8, 0, tzinfo=EDT)),
    ],
)
def test_parse_timestamp_filter(text, kind, value):
    f = TimestampFilter.parse(text, NOW)
    assert f.kind is kind
    assert f.value == value


@pytest.mark.parametrize("text", ["", "fortnight", "x days", "after 10:00"])
def test_parse_timestamp_filter_invalid(text):
    with pytest.raises(InvalidFilterError):
        TimestampFilter.parse(text, NOW)


def test_duration_filter():
    f = DurationFilter.parse(">= 1h")
    assert f.op is DurationOp.GE
    assert f.matches(timedelta(hours=1))
    assert not f.matches(timedelta(minutes=59))
    assert not f.matches(None)

    assert DurationFilter.parse("30m") == DurationFilter(DurationOp.EQ, timedelta(minutes=30))
    assert DurationFilter.parse("==30m").op is DurationOp.EQ


def test_duration_filter_invalid():
    with pytest.raises(InvalidFilterError):
        DurationFilter.parse("~1h")
    with pytest.raises(InvalidFilterError):
        DurationFilter.parse("<")


def test_passthrough_and_then_replaces_sentinel():
    spec = FilterSpec.passthrough(TaskFilter)
    assert spec.is_passthrough

    spec = spec.and_then(TaskFilter.states(["todo"]))
    assert spec.filters == (TaskFilter.states(["todo"]),)
    assert not spec.is_passthrough

    spec = spec.and_then(TaskFilter.priorities([1]))
    assert len(spec.filters) == 2


def test_filter_spec_needs_a_filter():
    with pytest.raises(InvalidFilterError):
        FilterSpec(())


def test_spec_is_conjunction():
    task = Task(project_id="p", description="d", id=1, priority=2, state="todo", tags={"home"})
    spec = FilterSpec.new(TaskFilter.states(["todo"])).and_then(TaskFilter.tags(["home", "work"]))
    assert spec.matches(task, NOW)
    assert not spec.and_then(TaskFilter.priorities([1])).matches(task, NOW)


def test_task_filters():
    task = Task(project_id="p", description="d", id=4, state="doing")
    assert TaskFilter.ids([4, 5]).matches(task, NOW)
    assert TaskFilter.priorities([10]).matches(task, NOW)
    assert TaskFilter.state_not("done").matches(task, NOW)
    assert not TaskFilter.state_not("doing").matches(task, NOW)
    assert not TaskFilter.tags(["x"]).matches(task, NOW)
    assert not TaskFilter.deadline(TimestampFilter.today()).matches(task, NOW)


def test_project_filters():
    project = Project(name="Home", tags={"personal"}, deadline=NOW)
    assert ProjectFilter.ids(["home"]).matches(project, NOW)
    assert ProjectFilter.tags(["Personal"]).matches(project, NOW)
    assert ProjectFilter.deadline(TimestampFilter.this_month()).matches(project, NOW)


def test_log_filters():
    project_log = Log(project_id="p", id=1, start=NOW, duration=timedelta(minutes=5))
    task_log = Log(project_id="p", task_id=2, id=1, start=NOW, duration=timedelta(hours=2))
    assert not LogFilter.has_task().matches(project_log, NOW)
    assert LogFilter.has_task().matches(task_log, NOW)
    assert LogFilter.tasks([2]).matches(task_log, NOW)
    assert not LogFilter.tasks([2]).matches(project_log, NOW)
    assert LogFilter.duration(DurationFilter.parse("> 1h")).matches(task_log, NOW)
    assert LogFilter.start(TimestampFilter.days(1)).matches(
        Log(project_id="p", start=NOW - timedelta(hours=1)), NOW
    )


def test_builders():
    assert build_task_filter(now=NOW).is_passthrough
    spec = build_task_filter("todo,doing", None, "a", now=NOW, task_ids=[1])
    assert len(spec.filters) == 3

    log_spec = build_log_filter("today", ">1h", None, now=NOW, task_ids=[3])
    assert log_spec.has(LogFilterKind.TASKS)
    assert not build_log_filter(now=NOW).has(LogFilterKind.TASKS)


def test_days_filter_is_bounded():
    assert TimestampFilter.parse("65535 days", NOW).matches(NOW - timedelta(days=1), NOW)
    with pytest.raises(InvalidFilterError):
        TimestampFilter.parse("3000000 days", NOW)
    with pytest.raises(InvalidFilterError, match="between 0 and 65535"):
        TimestampFilter.days(70000)


def test_project_scoped_task_and_log_filters():
    task = Task(project_id="home", description="d", id=1)
    assert TaskFilter.project("home").matches(task, NOW)
    assert not TaskFilter.project("work").matches(task, NOW)

    log = Log(project_id="home", task_id=1, id=1, start=NOW)
    assert LogFilter.project("home").matches(log, NOW)
    assert not FilterSpec.new(LogFilter.has_task()).and_then(LogFilter.project("work")).matches(log, NOW)
