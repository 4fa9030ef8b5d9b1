"""
Tests for the task store: seeding, column moves and deletes.
"""
import pytest

from conftest import DAY, USER_ID
from lifereboot.schema import NotFoundError, SyncStatus, TaskStatus, ValidationError
from lifereboot.tasks import TaskStore


@pytest.fixture
def store(remote, events):
    return TaskStore(remote, USER_ID, events=events)


def test_fetch_seeds_three_default_tasks(store):
    """An empty date gets the three scheduled defaults, all todo"""
    tasks = store.fetch(DAY)
    assert [t.title for t in tasks] == [
        "Review daily goals", "Complete work project", "Exercise session",
    ]
    assert [t.scheduled_time for t in tasks] == ["09:00", "14:00", "18:00"]
    assert all(t.status == TaskStatus.TODO for t in tasks)


def test_fetch_without_seed(store):
    """seed=False leaves an empty date empty"""
    assert store.fetch(DAY, seed=False) == []


def test_any_column_reachable(store, sqlite_remote):
    """todo -> done -> todo -> in_progress are all allowed"""
    store.fetch(DAY)
    task = store.items[0]
    for status in (TaskStatus.DONE, TaskStatus.TODO, TaskStatus.IN_PROGRESS):
        assert store.move(task.id, status).status == status
    assert sqlite_remote.select_one("tasks", {"id": task.id})["status"] == "in_progress"


def test_task_moves_write_no_history(store, sqlite_remote):
    """Only habits keep a completion log"""
    store.fetch(DAY)
    store.move(store.items[0].id, "done")
    assert sqlite_remote.select("history") == []


def test_move_same_column_is_noop(store, remote):
    """Dropping on the current column makes no remote call"""
    store.fetch(DAY)
    remote.calls.clear()
    task = store.items[0]
    assert store.move(task.id, "todo") is task
    assert remote.calls == []


def test_move_emits_readable_column(store, events):
    """Notifications name the column with spaces"""
    store.fetch(DAY)
    seen = []
    events.subscribe("task_moved", lambda **kw: seen.append(kw))
    store.move(store.items[0].id, "in_progress")
    assert seen[0]["status"] == "in progress"


def test_move_failure_keeps_status(store, remote):
    """A failed update leaves the card where it was"""
    store.fetch(DAY)
    task = store.items[0]
    remote.fail = True
    assert store.move(task.id, TaskStatus.DONE) is None
    assert store.get(task.id).status == TaskStatus.TODO
    assert store.sync_status == SyncStatus.ERROR


def test_move_unknown_task(store):
    store.fetch(DAY)
    with pytest.raises(NotFoundError):
        store.move("missing", "done")


def test_add_task(store):
    """New tasks start in todo with a validated time"""
    store.fetch(DAY)
    task = store.add("Call family", None, "19:30")
    assert task.status == TaskStatus.TODO
    assert task.scheduled_time == "19:30"
    assert len(store.by_status(TaskStatus.TODO)) == 4

    with pytest.raises(ValidationError):
        store.add("Bad time", None, "7pm")


def test_delete_task(store, sqlite_remote):
    store.fetch(DAY)
    task = store.items[0]
    assert store.delete(task.id)
    assert store.get(task.id) is None
    assert len(sqlite_remote.select("tasks", eq={"user_id": USER_ID})) == 2


def test_delete_failure(store, remote):
    """A failed delete keeps the task"""
    store.fetch(DAY)
    task = store.items[0]
    remote.fail = True
    assert store.delete(task.id) is False
    assert store.get(task.id) is not None
