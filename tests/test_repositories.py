from datetime import datetime, timedelta, timezone

import pytest

from tasksync.models import TaskPriority, TaskStatus
from tasksync.repositories import NotFoundError, SqlNotificationStore, SqlTaskStore
from tasksync.schemas import TaskCreate, TaskFilter, TaskUpdate


def _fields(title, due, *, priority=TaskPriority.MEDIUM, status=TaskStatus.TODO, creator="u1", assignee=None):
    return TaskCreate(
        title=title,
        description=f"{title} description",
        due_date=due,
        priority=priority,
        status=status,
        creator_id=creator,
        assigned_to_id=assignee,
    )


def test_create_requires_creator(db):
    store = SqlTaskStore(db)
    with pytest.raises(ValueError):
        store.create(_fields("orphan", datetime(2030, 1, 1), creator=None))


def test_aware_due_dates_are_stored_as_utc(db):
    store = SqlTaskStore(db)
    plus_two = timezone(timedelta(hours=2))
    task = store.create(_fields("tz", datetime(2030, 1, 1, 12, 0, tzinfo=plus_two)))

    assert store.find_by_id(task.id).due_date == datetime(2030, 1, 1, 10, 0)


def test_list_filters_by_status_and_priority(db):
    store = SqlTaskStore(db)
    due = datetime(2030, 1, 1)
    store.create(_fields("a", due, priority=TaskPriority.HIGH, status=TaskStatus.TODO))
    store.create(_fields("b", due, priority=TaskPriority.HIGH, status=TaskStatus.COMPLETED))
    store.create(_fields("c", due, priority=TaskPriority.LOW, status=TaskStatus.TODO))

    assert [t.title for t in store.list(TaskFilter(status=TaskStatus.TODO))] == ["a", "c"]
    assert [t.title for t in store.list(TaskFilter(priority=TaskPriority.HIGH))] == ["a", "b"]
    both = store.list(TaskFilter(status=TaskStatus.TODO, priority=TaskPriority.HIGH))
    assert [t.title for t in both] == ["a"]
    assert store.list(TaskFilter(status=TaskStatus.REVIEW)) == []


def test_list_sorts_by_due_date(db):
    store = SqlTaskStore(db)
    base = datetime(2030, 1, 1)
    store.create(_fields("middle", base + timedelta(days=2)))
    store.create(_fields("first", base + timedelta(days=1)))
    store.create(_fields("last", base + timedelta(days=3)))
    store.create(_fields("first again", base + timedelta(days=1)))

    asc = [t.title for t in store.list(TaskFilter(sort_by_due_date="asc"))]
    desc = [t.title for t in store.list(TaskFilter(sort_by_due_date="desc"))]
    unsorted = [t.title for t in store.list(TaskFilter())]

    assert asc == ["first", "first again", "middle", "last"]
    assert desc == ["last", "middle", "first", "first again"]
    assert unsorted == ["middle", "first", "last", "first again"]


def test_update_applies_only_sent_fields(db):
    store = SqlTaskStore(db)
    task = store.create(_fields("orig", datetime(2030, 1, 1), assignee="u2"))

    updated = store.update(task.id, TaskUpdate(title="renamed"))

    assert updated.title == "renamed"
    assert updated.description == "orig description"
    assert updated.assigned_to_id == "u2"
    assert updated.updated_at is not None


def test_update_and_delete_missing_raise(db):
    store = SqlTaskStore(db)
    with pytest.raises(NotFoundError) as exc:
        store.update("nope", TaskUpdate(title="x"))
    assert exc.value.kind == "Task"
    assert exc.value.obj_id == "nope"
    with pytest.raises(NotFoundError):
        store.delete("nope")


def test_delete_returns_detached_snapshot(db):
    store = SqlTaskStore(db)
    task = store.create(_fields("gone", datetime(2030, 1, 1)))
    task_id = task.id

    snap = store.delete(task_id)

    assert snap.id == task_id
    assert snap.title == "gone"
    assert store.find_by_id(task_id) is None


def test_find_by_creator_or_assignee_newest_first(db):
    store = SqlTaskStore(db)
    due = datetime(2030, 1, 1)
    store.create(_fields("created by me", due, creator="me"))
    store.create(_fields("not mine", due, creator="other"))
    store.create(_fields("assigned to me", due, creator="other", assignee="me"))

    assert [t.title for t in store.find_by_creator_or_assignee("me")] == ["assigned to me", "created by me"]


def test_find_overdue_excludes_completed_and_future(db):
    store = SqlTaskStore(db)
    now = datetime(2030, 6, 1)
    store.create(_fields("two days late", now - timedelta(days=2)))
    store.create(_fields("one day late", now - timedelta(days=1), creator="other", assignee="me"))
    store.create(_fields("finished late", now - timedelta(days=5), status=TaskStatus.COMPLETED))
    store.create(_fields("in review late", now - timedelta(days=3), status=TaskStatus.REVIEW, creator="other"))
    store.create(_fields("due later", now + timedelta(days=1)))

    everyone = store.find_overdue(now)
    assert [t.title for t in everyone] == ["in review late", "two days late", "one day late"]
    for t in everyone:
        assert t.due_date < now
        assert t.status != TaskStatus.COMPLETED

    mine = store.find_overdue(now, "me")
    assert [t.title for t in mine] == ["one day late"]


def test_notifications_round_trip(db):
    store = SqlNotificationStore(db)
    first = store.create(user_id="u1", message="first")
    second = store.create(user_id="u1", message="second")
    store.create(user_id="u2", message="elsewhere")

    assert [n.id for n in store.list_by_user("u1")] == [second.id, first.id]
    assert store.count_unread("u1") == 2

    marked = store.mark_read(first.id)
    assert marked.read is True
    assert store.count_unread("u1") == 1

    removed = store.delete(second.id)
    assert removed.message == "second"
    assert [n.id for n in store.list_by_user("u1")] == [first.id]
    assert store.count_unread("u2") == 1


def test_notification_missing_id_raises(db):
    store = SqlNotificationStore(db)
    with pytest.raises(NotFoundError) as exc:
        store.mark_read("nope")
    assert exc.value.kind == "Notification"
    with pytest.raises(NotFoundError):
        store.delete("nope")
