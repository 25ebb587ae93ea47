import json

from typer.testing import CliRunner

from loiter.cli import app

runner = CliRunner()


def _invoke(tmp_path, *args):
    return runner.invoke(app, ["--path", str(tmp_path), *args])


def test_add_and_list_projects(tmp_path):
    result = _invoke(tmp_path, "add", "project", "Garden Work", "-d", "Weeding", "-t", "home")
    assert result.exit_code == 0, result.stdout
    assert "garden-work" in result.stdout
    assert (tmp_path / "garden-work" / "project.json").is_file()

    result = _invoke(tmp_path, "list", "projects")
    assert result.exit_code == 0, result.stdout
    assert "garden-work" in result.stdout
    assert "Weeding" in result.stdout


def test_duplicate_project_fails(tmp_path):
    _invoke(tmp_path, "add", "project", "Dup")
    result = _invoke(tmp_path, "add", "project", "dup")
    assert result.exit_code == 1
    assert "already exists" in result.stdout


def test_tasks_and_done(tmp_path):
    _invoke(tmp_path, "add", "project", "Chores")
    result = _invoke(tmp_path, "add", "task", "chores", "Dishes", "-P", "2")
    assert result.exit_code == 0, result.stdout
    assert "Added task 1" in result.stdout

    result = _invoke(tmp_path, "done", "chores", "1")
    assert result.exit_code == 0, result.stdout
    assert "now done" in result.stdout

    data = json.loads((tmp_path / "chores" / "tasks" / "0001" / "task.json").read_text())
    assert data["state"] == "done"
    assert data["priority"] == 2

    result = _invoke(tmp_path, "ls", "tasks", "--state", "done")
    assert result.exit_code == 0, result.stdout
    assert "Dishes" in result.stdout


def test_update_task(tmp_path):
    _invoke(tmp_path, "add", "project", "Chores")
    _invoke(tmp_path, "add", "task", "chores", "Laundry")
    result = _invoke(tmp_path, "update", "task", "chores", "1", "--state", "blocked", "-t", "wait")
    assert result.exit_code == 0, result.stdout
    data = json.loads((tmp_path / "chores" / "tasks" / "0001" / "task.json").read_text())
    assert data["state"] == "blocked"
    assert data["tags"] == ["wait"]


def test_invalid_state_is_reported(tmp_path):
    _invoke(tmp_path, "add", "project", "Chores")
    result = _invoke(tmp_path, "add", "task", "chores", "Laundry", "--state", "someday")
    assert result.exit_code == 1
    assert "invalid task state" in result.stdout


def test_start_status_stop(tmp_path):
    _invoke(tmp_path, "add", "project", "Reading")
    result = _invoke(tmp_path, "start", "reading", "--comment", "chapter one")
    assert result.exit_code == 0, result.stdout
    assert "Started log 1" in result.stdout

    result = _invoke(tmp_path, "status")
    assert result.exit_code == 0, result.stdout
    assert "reading" in result.stdout
    assert "chapter one" in result.stdout

    result = _invoke(tmp_path, "stop", "--duration", "1h30m")
    assert result.exit_code == 0, result.stdout
    assert "1h 30m" in result.stdout

    data = json.loads((tmp_path / "reading" / "logs" / "00001.json").read_text())
    assert data["duration"] == "1h 30m"

    result = _invoke(tmp_path, "status")
    assert "Nothing is being tracked" in result.stdout


def test_stop_without_active_log(tmp_path):
    result = _invoke(tmp_path, "stop")
    assert result.exit_code == 1
    assert "no active log" in result.stdout


def test_cancel(tmp_path):
    _invoke(tmp_path, "add", "project", "Reading")
    _invoke(tmp_path, "start", "reading")
    result = _invoke(tmp_path, "cancel")
    assert result.exit_code == 0, result.stdout
    assert "Cancelled log 1" in result.stdout
    assert not (tmp_path / "reading" / "logs" / "00001.json").exists()


def test_add_and_list_logs(tmp_path):
    _invoke(tmp_path, "add", "project", "Gym")
    result = _invoke(tmp_path, "add", "log", "gym", "--start", "2021-11-04 07:00", "--duration", "45m", "-c", "legs")
    assert result.exit_code == 0, result.stdout

    result = _invoke(tmp_path, "list", "logs", "--duration", ">= 30m")
    assert result.exit_code == 0, result.stdout
    assert "legs" in result.stdout
    assert "Total: 45m" in result.stdout

    result = _invoke(tmp_path, "list", "logs", "--sort", "bogus")
    assert result.exit_code == 1
    assert "unrecognized work log field" in result.stdout


def test_states(tmp_path):
    result = _invoke(tmp_path, "states")
    assert result.exit_code == 0, result.stdout
    assert result.stdout.split() == ["inbox", "todo", "blocked", "doing", "done"]


def test_rename_and_remove_project(tmp_path):
    _invoke(tmp_path, "add", "project", "Alpha")
    _invoke(tmp_path, "add", "project", "Beta")

    result = _invoke(tmp_path, "rename", "project", "alpha", "Beta")
    assert result.exit_code == 1
    assert (tmp_path / "alpha").is_dir()

    result = _invoke(tmp_path, "rename", "project", "alpha", "Gamma")
    assert result.exit_code == 0, result.stdout
    assert (tmp_path / "gamma" / "project.json").is_file()

    result = _invoke(tmp_path, "rm", "project", "gamma", "--yes")
    assert result.exit_code == 0, result.stdout
    assert not (tmp_path / "gamma").exists()


def test_path_from_environment(tmp_path):
    result = runner.invoke(app, ["add", "project", "Env"], env={"LOITER_PATH": str(tmp_path)})
    assert result.exit_code == 0, result.stdout
    assert (tmp_path / "env" / "project.json").is_file()
