"""Task API routes — /api/tasks.

Key patterns:
- GET scoped by role in the service layer
- PUT /{id}/status is open to every role (USERs on their own tasks)
- PUT /{id}/assign and DELETE need MANAGER or ADMIN
- Query params for filtering (status, projectId)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.api.errors import to_http
from taskboard.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    require_any_role,
    require_manager_or_admin,
)
from taskboard.db.engine import get_db
from taskboard.schemas.common import Envelope
from taskboard.schemas.task import StatusChange, TaskAssign, TaskRead
from taskboard.services.errors import ServiceError
from taskboard.services.task_service import TaskService

router = APIRouter(prefix="/tasks")


def _task_svc(db: AsyncSession = Depends(get_db)) -> TaskService:
    return TaskService(db)


@router.get("", response_model=Envelope[list[TaskRead]])
async def list_tasks(
    status: Optional[str] = Query(None, description="Filter by status"),
    project_id: Optional[int] = Query(None, alias="projectId", description="Filter by project"),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    """Tasks visible to the caller, newest first."""
    try:
        tasks = await svc.list_tasks(identity, status=status, project_id=project_id)
    except ServiceError as e:
        raise to_http(e)
    return {"data": tasks}


@router.get("/{task_id}", response_model=Envelope[TaskRead])
async def get_task(
    task_id: int,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: TaskService = Depends(_task_svc),
):
    try:
        return {"data": await svc.get_task(identity, task_id)}
    except ServiceError as e:
        raise to_http(e)


@router.put("/{task_id}/status", response_model=Envelope[TaskRead])
async def change_task_status(
    task_id: int,
    body: StatusChange,
    identity: CurrentIdentity = Depends(require_any_role),
    svc: TaskService = Depends(_task_svc),
):
    """Move a task between TODO, IN_PROGRESS and DONE."""
    try:
        task = await svc.change_status(identity, task_id, body.status)
    except ServiceError as e:
        raise to_http(e)
    return {"data": task, "message": "Task status updated successfully"}


@router.put("/{task_id}/assign", response_model=Envelope[TaskRead])
async def assign_task(
    task_id: int,
    body: TaskAssign,
    identity: CurrentIdentity = Depends(require_manager_or_admin),
    svc: TaskService = Depends(_task_svc),
):
    """Re-assign a task; assigneeId null unassigns it."""
    try:
        task = await svc.assign_task(identity, task_id, body.assignee_id)
    except ServiceError as e:
        raise to_http(e)
    return {"data": task, "message": "Task assignment updated successfully"}


@router.delete("/{task_id}", response_model=Envelope[None])
async def delete_task(
    task_id: int,
    identity: CurrentIdentity = Depends(require_manager_or_admin),
    svc: TaskService = Depends(_task_svc),
):
    try:
        await svc.delete_task(identity, task_id)
    except ServiceError as e:
        raise to_http(e)
    return {"message": "Task deleted successfully"}
