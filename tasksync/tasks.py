"""Task lifecycle: persist first, then run best-effort side effects.

A mutating call commits through the task store before anything is announced.
If the store call fails nothing is emitted and the error reaches the caller.
Once it succeeds, each side effect (a live emit, an assignment notification)
runs on its own; a failing effect is logged and recorded on
`last_effect_failures` and never changes the returned task.

Reassignment is detected against the assignee read just before the write.
Two concurrent updates of the same task can still race on that read unless a
`KeyedLock` is supplied, in which case read, write and detection are
serialized per task id within this process.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, Optional

from .models import Task
from .notifications import NotificationService, assignment_message
from .realtime import (
    EVENT_TASK_ASSIGNED,
    EVENT_TASK_CREATED,
    EVENT_TASK_DELETED,
    EVENT_TASK_UPDATED,
    EventEmitter,
)
from .repositories import TaskStore
from .schemas import TaskCreate, TaskFilter, TaskUpdate, task_payload
from .utils.time_utils import now_utc

logger = logging.getLogger("tasksync.tasks")


@dataclass(frozen=True)
class EffectFailure:
    name: str
    error: Exception


@dataclass
class Dashboard:
    mine: list[Task]
    overdue: list[Task]


class KeyedLock:
    """One mutex per key, created on demand and dropped when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        k = str(key)
        with self._guard:
            entry = self._entries.get(k)
            if entry is None:
                entry = self._entries[k] = [threading.Lock(), 0]
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(k, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


Effect = tuple[str, Callable[[], object]]


class TaskLifecycleService:
    def __init__(
        self,
        tasks: TaskStore,
        notifications: NotificationService,
        channel: EventEmitter,
        *,
        locks: KeyedLock | None = None,
    ):
        self.tasks = tasks
        self.notifications = notifications
        self.channel = channel
        self.locks = locks
        self.last_effect_failures: list[EffectFailure] = []

    # ---- side effects ----------------------------------------------------------------

    def _run_effects(self, op: str, effects: list[Effect]) -> list[EffectFailure]:
        failures: list[EffectFailure] = []
        for name, fn in effects:
            try:
                fn()
            except Exception as e:
                logger.exception("Side effect failed (%s: %s)", op, name)
                failures.append(EffectFailure(name=name, error=e))
        self.last_effect_failures = failures
        return failures

    def _emit(self, name: str, data_fn: Callable[[], object]) -> Effect:
        return (f"emit {name}", lambda: self.channel.emit(name, data_fn()))

    def _notify_assignee(self, user_id: str, title: str) -> Effect:
        return ("notify assignee", lambda: self.notifications.create_for_user(user_id, assignment_message(title)))

    def _serialized(self, task_id: str):
        if self.locks is None:
            return nullcontext()
        return self.locks.hold(task_id)

    # ---- mutations -------------------------------------------------------------------

    def create(self, fields: TaskCreate) -> Task:
        task = self.tasks.create(fields)
        task_id = str(task.id)
        title = task.title
        assignee = task.assigned_to_id
        logger.info("Task %s created by %s (assignee=%s)", task_id, task.creator_id, assignee)

        effects = [self._emit(EVENT_TASK_CREATED, lambda: task_payload(task))]
        if assignee:
            effects.append(self._notify_assignee(assignee, title))
        self._run_effects(f"create {task_id}", effects)
        return task

    def update(self, task_id: str, changes: TaskUpdate) -> Task:
        with self._serialized(task_id):
            before = self.tasks.find_by_id(task_id)
            # Copy now: the store may return the same row object it is about to modify.
            before_assignee = before.assigned_to_id if before is not None else None
            after = self.tasks.update(task_id, changes)

            new_assignee = changes.assigned_to_id if changes.sets("assigned_to_id") else None
            reassigned = bool(new_assignee) and (before is None or new_assignee != before_assignee)

        title = after.title
        if reassigned:
            logger.info("Task %s reassigned %s -> %s", task_id, before_assignee, new_assignee)

        effects = [self._emit(EVENT_TASK_UPDATED, lambda: task_payload(after))]
        if reassigned:
            effects.append(
                self._emit(EVENT_TASK_ASSIGNED, lambda: {"taskId": str(task_id), "assignedToId": new_assignee})
            )
            effects.append(self._notify_assignee(new_assignee, title))
        self._run_effects(f"update {task_id}", effects)
        return after

    def delete(self, task_id: str) -> Task:
        with self._serialized(task_id):
            task = self.tasks.delete(task_id)
        logger.info("Task %s deleted", task_id)

        self._run_effects(f"delete {task_id}", [self._emit(EVENT_TASK_DELETED, lambda: {"id": str(task_id)})])
        return task

    # ---- reads -----------------------------------------------------------------------

    def get(self, task_id: str) -> Optional[Task]:
        return self.tasks.find_by_id(task_id)

    def list(self, filter: TaskFilter | None = None) -> list[Task]:
        return self.tasks.list(filter or TaskFilter())

    def dashboard(self, user_id: str, *, now: datetime | None = None) -> Dashboard:
        as_of = now or now_utc()
        return Dashboard(
            mine=self.tasks.find_by_creator_or_assignee(user_id),
            overdue=self.tasks.find_overdue(as_of, user_id),
        )
