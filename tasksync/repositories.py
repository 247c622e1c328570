from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .models import Notification, Task, TaskStatus
from .schemas import TaskCreate, TaskFilter, TaskUpdate
from .utils.time_utils import now_utc, to_utc_naive


class NotFoundError(LookupError):
    """Raised when a task or notification id does not exist."""

    def __init__(self, kind: str, obj_id: str):
        super().__init__(f"{kind} not found: {obj_id}")
        self.kind = kind
        self.obj_id = obj_id


# ---- Contracts ---------------------------------------------------------------------


class TaskStore(Protocol):
    def create(self, fields: TaskCreate) -> Task: ...

    def update(self, task_id: str, changes: TaskUpdate) -> Task: ...

    def delete(self, task_id: str) -> Task: ...

    def find_by_id(self, task_id: str) -> Optional[Task]: ...

    def list(self, filter: TaskFilter) -> list[Task]: ...

    def find_by_creator_or_assignee(self, user_id: str) -> list[Task]: ...

    def find_overdue(self, as_of: datetime, user_id: Optional[str] = None) -> list[Task]: ...


class NotificationStore(Protocol):
    def create(self, *, user_id: str, message: str) -> Notification: ...

    def list_by_user(self, user_id: str) -> list[Notification]: ...

    def mark_read(self, notification_id: str) -> Notification: ...

    def delete(self, notification_id: str) -> Notification: ...

    def count_unread(self, user_id: str) -> int: ...


# ---- SQLAlchemy implementations ----------------------------------------------------


def _commit(db: Session) -> None:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


class SqlTaskStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, fields: TaskCreate) -> Task:
        if not fields.creator_id:
            raise ValueError("creator_id is required")
        task = Task(
            title=fields.title,
            description=fields.description,
            due_date=to_utc_naive(fields.due_date),
            priority=fields.priority,
            status=fields.status,
            creator_id=fields.creator_id,
            assigned_to_id=(fields.assigned_to_id or None),
            created_at=now_utc(),
        )
        self.db.add(task)
        _commit(self.db)
        self.db.refresh(task)
        return task

    def update(self, task_id: str, changes: TaskUpdate) -> Task:
        task = self.db.query(Task).filter(Task.id == str(task_id)).first()
        if not task:
            raise NotFoundError("Task", task_id)

        for name, value in changes.changes().items():
            if name == "due_date":
                value = to_utc_naive(value)
            setattr(task, name, value)

        self.db.add(task)
        _commit(self.db)
        self.db.refresh(task)
        return task

    def delete(self, task_id: str) -> Task:
        task = self.db.query(Task).filter(Task.id == str(task_id)).first()
        if not task:
            raise NotFoundError("Task", task_id)

        snapshot = Task(**{c.key: getattr(task, c.key) for c in Task.__table__.columns})
        self.db.delete(task)
        _commit(self.db)
        return snapshot

    def find_by_id(self, task_id: str) -> Optional[Task]:
        return self.db.query(Task).filter(Task.id == str(task_id)).first()

    def list(self, filter: TaskFilter) -> list[Task]:
        q = self.db.query(Task)
        if filter.status is not None:
            q = q.filter(Task.status == filter.status)
        if filter.priority is not None:
            q = q.filter(Task.priority == filter.priority)

        # Insertion order is the tie-breaker so due-date sorting stays stable.
        if filter.sort_by_due_date == "desc":
            q = q.order_by(Task.due_date.desc(), Task.created_at.asc(), Task.id.asc())
        elif filter.sort_by_due_date == "asc":
            q = q.order_by(Task.due_date.asc(), Task.created_at.asc(), Task.id.asc())
        else:
            q = q.order_by(Task.created_at.asc(), Task.id.asc())
        return q.all()

    def find_by_creator_or_assignee(self, user_id: str) -> list[Task]:
        uid = str(user_id)
        return (
            self.db.query(Task)
            .filter(or_(Task.creator_id == uid, Task.assigned_to_id == uid))
            .order_by(Task.created_at.desc())
            .all()
        )

    def find_overdue(self, as_of: datetime, user_id: Optional[str] = None) -> list[Task]:
        q = (
            self.db.query(Task)
            .filter(Task.due_date < to_utc_naive(as_of))
            .filter(Task.status != TaskStatus.COMPLETED)
        )
        if user_id:
            uid = str(user_id)
            q = q.filter(or_(Task.creator_id == uid, Task.assigned_to_id == uid))
        return q.order_by(Task.due_date.asc()).all()


class SqlNotificationStore:
    def __init__(self, db: Session):
        self.db = db

    def _get(self, notification_id: str) -> Notification:
        n = self.db.query(Notification).filter(Notification.id == str(notification_id)).first()
        if not n:
            raise NotFoundError("Notification", notification_id)
        return n

    def create(self, *, user_id: str, message: str) -> Notification:
        n = Notification(
            user_id=str(user_id),
            message=str(message),
            read=False,
            created_at=now_utc(),
        )
        self.db.add(n)
        _commit(self.db)
        self.db.refresh(n)
        return n

    def list_by_user(self, user_id: str) -> list[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == str(user_id))
            .order_by(Notification.created_at.desc())
            .all()
        )

    def mark_read(self, notification_id: str) -> Notification:
        n = self._get(notification_id)
        n.read = True
        self.db.add(n)
        _commit(self.db)
        self.db.refresh(n)
        return n

    def delete(self, notification_id: str) -> Notification:
        n = self._get(notification_id)
        snapshot = Notification(**{c.key: getattr(n, c.key) for c in Notification.__table__.columns})
        self.db.delete(n)
        _commit(self.db)
        return snapshot

    def count_unread(self, user_id: str) -> int:
        return int(
            self.db.query(Notification)
            .filter(Notification.user_id == str(user_id))
            .filter(Notification.read.is_(False))
            .count()
        )
