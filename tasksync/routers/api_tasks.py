from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..auth import get_current_user_api
from ..deps import get_task_service
from ..models import TaskPriority, TaskStatus, User
from ..repositories import NotFoundError
from ..schemas import DashboardOut, TaskCreate, TaskFilter, TaskOut, TaskUpdate
from ..tasks import TaskLifecycleService


router = APIRouter()


@router.get("/", response_model=list[TaskOut])
def api_list_tasks(
    status_: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = Query(default=None),
    sort: Literal["asc", "desc"] | None = Query(default=None, description="Sort by due date"),
    service: TaskLifecycleService = Depends(get_task_service),
    current_user: User = Depends(get_current_user_api),
):
    return service.list(TaskFilter(status=status_, priority=priority, sort_by_due_date=sort))


@router.get("/dashboard", response_model=DashboardOut)
def api_dashboard(
    service: TaskLifecycleService = Depends(get_task_service),
    current_user: User = Depends(get_current_user_api),
):
    data = service.dashboard(current_user.id)
    return DashboardOut(
        mine=[TaskOut.model_validate(t) for t in data.mine],
        overdue=[TaskOut.model_validate(t) for t in data.overdue],
    )


@router.get("/{task_id}", response_model=TaskOut)
def api_get_task(
    task_id: str,
    service: TaskLifecycleService = Depends(get_task_service),
    current_user: User = Depends(get_current_user_api),
):
    task = service.get(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.post("/", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def api_create_task(
    payload: TaskCreate,
    service: TaskLifecycleService = Depends(get_task_service),
    current_user: User = Depends(get_current_user_api),
):
    if not payload.creator_id:
        payload = payload.model_copy(update={"creator_id": current_user.id})
    return service.create(payload)


@router.put("/{task_id}", response_model=TaskOut)
def api_update_task(
    task_id: str,
    payload: TaskUpdate,
    service: TaskLifecycleService = Depends(get_task_service),
    current_user: User = Depends(get_current_user_api),
):
    try:
        return service.update(task_id, payload)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_delete_task(
    task_id: str,
    service: TaskLifecycleService = Depends(get_task_service),
    current_user: User = Depends(get_current_user_api),
):
    try:
        service.delete(task_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
