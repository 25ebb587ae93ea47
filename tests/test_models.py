from datetime import datetime, timedelta, timezone

import pytest

from loiter.errors import (
    InvalidIdentifierError,
    InvalidPriorityError,
    InvalidStateError,
    InvalidTagError,
    LogTimingError,
    TaskStateConfigError,
)
from loiter.models import (
    Config,
    Log,
    LogRef,
    Project,
    State,
    Task,
    TaskStateConfig,
    parse_id_list,
    slugify,
)

EDT = timezone(timedelta(hours=-4))
START = datetime(2021, 11, 4, 9, 0, tzinfo=EDT)


@pytest.mark.parametrize(
    "name, slug",
    [
        ("My Project", "my-project"),
        ("  Hello,  World!  ", "hello-world"),
        ("snake_case__name", "snake-case-name"),
        ("--Already-Slugged--", "already-slugged"),
        ("Ünïcode 42", "ncode-42"),
    ],
)
def test_slugify(name, slug):
    assert slugify(name) == slug
    assert slugify(slug) == slug


def test_project_id_from_name():
    p = Project(name="Client Work", tags={"Billable"})
    assert p.id == "client-work"
    assert p.tags == {"billable"}


def test_project_renamed():
    p = Project(name="Old Name", description="desc")
    r = p.renamed("New Name")
    assert r.id == "new-name"
    assert r.description == "desc"
    assert p.id == "old-name"


def test_invalid_tag():
    with pytest.raises(InvalidTagError):
        Project(name="x", tags={"no spaces"})


def test_project_serialization():
    p = Project(
        name="Thesis",
        description="Write it",
        deadline=START,
        tags={"b", "a"},
        task_state_config=TaskStateConfig(states=["new", "wip", "shipped"], initial="new", in_progress="wip", done="shipped"),
    )
    d = p.to_dict()
    assert "id" not in d
    assert d["tags"] == ["a", "b"]

    p2 = Project.from_dict("thesis", d)
    assert p2 == p


def test_task_serialization():
    t = Task(project_id="thesis", description="Outline", id=3, priority=2, state="todo", tags={"writing"})
    d = t.to_dict()
    assert "id" not in d and "project_id" not in d
    assert Task.from_dict("thesis", 3, d) == t


def test_task_priority_bounds():
    assert Task(project_id="p", description="d").effective_priority == 10
    with pytest.raises(InvalidPriorityError):
        Task(project_id="p", description="d", priority=0)
    with pytest.raises(InvalidPriorityError):
        Task(project_id="p", description="d", priority=11)


def test_log_serialization_stores_display_duration():
    lg = Log(project_id="p", task_id=1, id=2, start=START, duration=timedelta(minutes=90), comment="hi")
    d = lg.to_dict()
    assert d["duration"] == "1h 30m"
    assert Log.from_dict("p", 1, 2, d) == lg


def test_log_open_and_stop():
    lg = Log(project_id="p", start=START)
    assert lg.is_open
    assert lg.stop is None

    closed = lg.with_stop(START + timedelta(hours=1, microseconds=500))
    assert not closed.is_open
    assert closed.duration == timedelta(hours=1)
    assert closed.stop == START + timedelta(hours=1)


def test_log_stop_before_start():
    with pytest.raises(LogTimingError):
        Log(project_id="p", start=START).with_stop(START - timedelta(minutes=1))


def test_log_stop_without_start():
    with pytest.raises(LogTimingError):
        Log(project_id="p").with_stop(START)


def test_log_rejects_duration_and_stop():
    with pytest.raises(LogTimingError):
        Log(project_id="p", start=START).with_duration_or_stop(timedelta(hours=1), START + timedelta(hours=1))


def test_task_state_config_validation():
    with pytest.raises(TaskStateConfigError):
        TaskStateConfig(states=["a", "b"], initial="a", in_progress="b", done="b")
    with pytest.raises(TaskStateConfigError):
        TaskStateConfig(states=["a", "b", "b"], initial="a", in_progress="b", done="b")
    with pytest.raises(TaskStateConfigError):
        TaskStateConfig(states=["a", "b", "c"], initial="a", in_progress="b", done="z")


def test_task_state_config_validate_or_initial():
    config = TaskStateConfig()
    assert config.validate_or_initial(None) == "inbox"
    assert config.validate_or_initial("blocked") == "blocked"
    with pytest.raises(InvalidStateError, match="inbox, todo, blocked, doing, done"):
        config.validate_or_initial("someday")


def test_config_and_state_serialization():
    config = Config()
    assert Config.from_dict(config.to_dict()) == config

    state = State(active_log=LogRef("p", None, 4))
    assert state.to_dict() == {"active_log": ["p", None, 4]}
    assert State.from_dict(state.to_dict()) == state
    assert State.from_dict({"active_log": None}) == State()


def test_parse_id_list():
    assert parse_id_list("1,2, 3") == [1, 2, 3]
    with pytest.raises(InvalidIdentifierError):
        parse_id_list("1,two")


def test_project_name_without_slug_characters():
    with pytest.raises(InvalidIdentifierError, match="at least one letter or digit"):
        Project(name="!!!")
    with pytest.raises(InvalidIdentifierError):
        Project(name="Fine").renamed("???")
